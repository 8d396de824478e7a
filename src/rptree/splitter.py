"""
rptree.splitter
===============

Exhaustive binary split search.

For every candidate feature the evaluator scans all binary partitions of the
node's rows and scores them by the reduction in node risk:

* regression: weighted sum of squared errors around the weighted mean;
* classification: weighted impurity ``W * I(p)`` with ``I`` the Gini index or
  the entropy of the weighted class proportions.

Numeric features are sorted once per node and scored with prefix sums, so one
feature costs O(n log n).  Categorical features are aggregated per category
first.  Everything here is a pure function of its inputs.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

from .config import REGRESSION
from .dataset import CATEGORICAL, NUMERIC
from .exceptions import DegenerateSplitError

# relative tolerance below which an improvement is treated as rounding noise
_REL_TOL = 1e-12


# -----------------------------------------------------------------------------
# Risk helpers
# -----------------------------------------------------------------------------
def _gini_risk(counts: np.ndarray) -> np.ndarray:
    # W * (1 - sum p^2) == W - sum(c^2) / W
    tot = counts.sum(axis=-1)
    safe = np.where(tot > 0, tot, 1.0)
    return np.where(tot > 0, tot - (counts * counts).sum(axis=-1) / safe, 0.0)


def _entropy_risk(counts: np.ndarray) -> np.ndarray:
    # W * H(p) == -sum c * log2(c / W)
    tot = counts.sum(axis=-1, keepdims=True)
    safe = np.where(tot > 0, tot, 1.0)
    with np.errstate(divide="ignore", invalid="ignore"):
        terms = np.where(counts > 0, counts * np.log2(counts / safe), 0.0)
    return -terms.sum(axis=-1)


def _sse_risk(sw: np.ndarray, sy: np.ndarray, sy2: np.ndarray) -> np.ndarray:
    safe = np.where(sw > 0, sw, 1.0)
    return np.maximum(np.where(sw > 0, sy2 - sy * sy / safe, 0.0), 0.0)


def _midpoint(lo: float, hi: float) -> float:
    # must stay in [lo, hi) so that hi goes right; overflow and rounding can break that
    with np.errstate(over="ignore", invalid="ignore"):
        mid = lo + 0.5 * (hi - lo)
    if not np.isfinite(mid) or not mid < hi:
        return float(lo)
    return float(mid)


def class_counts(codes: np.ndarray, w: np.ndarray, n_classes: int) -> np.ndarray:
    """Weighted class counts of integer-coded labels."""
    return np.bincount(codes, weights=w, minlength=n_classes).astype(float)


# -----------------------------------------------------------------------------
# Split
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class Split:
    """A binary partition of a node on one feature.

    Numeric splits send ``value <= threshold`` left; categorical splits send
    values contained in ``categories`` left.  Everything else goes right.
    """

    feature: str
    kind: str
    improvement: float
    left_weight: float
    right_weight: float
    threshold: float | None = None
    categories: frozenset | None = None

    def goes_left(self, value: Any) -> bool:
        if self.kind == NUMERIC:
            return float(value) <= self.threshold
        return value in self.categories

    def left_mask(self, values: np.ndarray) -> np.ndarray:
        """Vectorised :meth:`goes_left` for non-missing values."""
        if self.kind == NUMERIC:
            return values.astype(float) <= self.threshold
        return np.fromiter((v in self.categories for v in values), count=values.shape[0], dtype=bool)

    def describe(self, left: bool = True) -> str:
        if self.kind == NUMERIC:
            op = "<=" if left else ">"
            return f"{self.feature} {op} {self.threshold:.6g}"
        cats = ", ".join(map(str, sorted(self.categories, key=str)))
        return f"{self.feature} {'IN' if left else 'NOT IN'} {{{cats}}}"


# -----------------------------------------------------------------------------
# Evaluator
# -----------------------------------------------------------------------------
class SplitEvaluator:
    """Finds the best split of a node.

    Parameters
    ----------
    method : {"regression", "classification"}
        Which risk to minimise.
    n_classes : int, default=0
        Number of target classes; classification targets are integer codes
        in ``range(n_classes)``.
    criterion : {"gini", "entropy"}, default="gini"
        Impurity for classification.  Ignored for regression.
    min_bucket : float, default=1
        Minimum weighted size of each side of a valid split.
    max_categories_exhaustive : int, default=12
        Up to this many categories a multi-class categorical feature is
        searched over all subsets; above it one-vs-rest groupings are used.
    """

    def __init__(self, method: str, *, n_classes: int = 0, criterion: str = "gini",
                 min_bucket: float = 1, max_categories_exhaustive: int = 12):
        self.method = method
        self.n_classes = int(n_classes)
        self.criterion = criterion
        self.min_bucket = float(min_bucket)
        self.max_categories_exhaustive = int(max_categories_exhaustive)
        self._impurity = _entropy_risk if criterion == "entropy" else _gini_risk

    # ----------------------------- node statistics -----------------------------

    def node_risk(self, y: np.ndarray, w: np.ndarray) -> float:
        if self.method == REGRESSION:
            sw = w.sum()
            if sw <= 0:
                return 0.0
            yc = y - (w * y).sum() / sw
            return float(max((w * yc * yc).sum(), 0.0))
        return float(self._impurity(class_counts(y, w, self.n_classes)))

    def is_pure(self, y: np.ndarray, w: np.ndarray) -> bool:
        live = y[w > 0]
        return live.size == 0 or bool(np.all(live == live[0]))

    # ----------------------------- search -----------------------------

    def best_split(self, columns: dict[str, np.ndarray], schema: dict[str, str],
                   y: np.ndarray, w: np.ndarray) -> Split:
        """Return the best split over all features in schema order.

        ``columns`` holds this node's slice of every feature column.

        Raises
        ------
        DegenerateSplitError
            If no feature yields a split with positive improvement that
            respects ``min_bucket``.
        """
        best: Split | None = None
        for name, kind in schema.items():
            cand = self.evaluate(name, kind, columns[name], y, w)
            # strict ">" keeps the earliest feature on ties
            if cand is not None and (best is None or cand.improvement > best.improvement):
                best = cand
        if best is None:
            raise DegenerateSplitError("no valid split for this node")
        return best

    def evaluate(self, name: str, kind: str, values: np.ndarray,
                 y: np.ndarray, w: np.ndarray) -> Split | None:
        """Best split on a single feature, or ``None`` if there is none."""
        if kind == NUMERIC:
            known = ~np.isnan(values)
        else:
            known = np.array([v is not None for v in values], dtype=bool)
        if not known.all():
            values, y, w = values[known], y[known], w[known]
        if values.size < 2 or w.sum() < 2 * self.min_bucket:
            return None
        if kind == NUMERIC:
            return self._numeric(name, values.astype(float), y, w)
        return self._categorical(name, values, y, w)

    def _valid(self, gains: np.ndarray, wl: np.ndarray, wr: np.ndarray, parent: float) -> np.ndarray:
        tol = _REL_TOL * max(parent, 1e-300)
        return (wl >= self.min_bucket) & (wr >= self.min_bucket) & (gains > tol)

    def _numeric(self, name, v, y, w) -> Split | None:
        order = np.argsort(v, kind="mergesort")
        v, y, w = v[order], y[order], w[order]
        bd = np.nonzero(v[:-1] != v[1:])[0]
        if bd.size == 0:
            return None
        if self.method == REGRESSION:
            sw_all = w.sum()
            yc = y - (w * y).sum() / sw_all
            sw, sy, sy2 = np.cumsum(w), np.cumsum(w * yc), np.cumsum(w * yc * yc)
            parent = float(_sse_risk(sw[-1], sy[-1], sy2[-1]))
            wl, syl, sy2l = sw[bd], sy[bd], sy2[bd]
            wr, syr, sy2r = sw[-1] - wl, sy[-1] - syl, sy2[-1] - sy2l
            gains = parent - _sse_risk(wl, syl, sy2l) - _sse_risk(wr, syr, sy2r)
        else:
            M = np.zeros((y.shape[0], self.n_classes), dtype=float)
            M[np.arange(y.shape[0]), y] = w
            SW = M.cumsum(axis=0)
            total = SW[-1]
            parent = float(self._impurity(total))
            left = SW[bd]
            right = total - left
            wl, wr = left.sum(axis=1), right.sum(axis=1)
            gains = parent - self._impurity(left) - self._impurity(right)
        ok = self._valid(gains, wl, wr, parent)
        if not ok.any():
            return None
        # argmax returns the first maximum, i.e. the smallest threshold on ties
        i = int(np.argmax(np.where(ok, gains, -np.inf)))
        b = bd[i]
        return Split(name, NUMERIC, float(gains[i]), float(wl[i]), float(wr[i]),
                     threshold=_midpoint(v[b], v[b + 1]))

    def _categorical(self, name, values, y, w) -> Split | None:
        index: dict[Any, int] = {}
        codes = np.fromiter((index.setdefault(v, len(index)) for v in values),
                            count=values.shape[0], dtype=int)
        cats = list(index)
        k = len(cats)
        if k < 2:
            return None
        cw = np.bincount(codes, weights=w, minlength=k)

        if self.method == REGRESSION:
            yc = y - (w * y).sum() / w.sum()
            stats = np.stack([cw,
                              np.bincount(codes, weights=w * yc, minlength=k),
                              np.bincount(codes, weights=w * yc * yc, minlength=k)], axis=1)
            parent = float(_sse_risk(*stats.sum(axis=0)))
            present = cw > 0
            means = np.where(present, stats[:, 1] / np.where(present, cw, 1.0), 0.0)
            masks = self._ordered_masks(means, k)

            def risk(s):
                return _sse_risk(s[..., 0], s[..., 1], s[..., 2])
        else:
            stats = np.zeros((k, self.n_classes), dtype=float)
            np.add.at(stats, (codes, y), w)
            parent = float(self._impurity(stats.sum(axis=0)))
            if self.n_classes <= 2:
                share = np.where(cw > 0, stats[:, -1] / np.where(cw > 0, cw, 1.0), 0.0)
                masks = self._ordered_masks(share, k)
            elif k <= self.max_categories_exhaustive:
                masks = self._subset_masks(k)
            else:
                masks = np.eye(k, dtype=bool)
            risk = self._impurity

        total = stats.sum(axis=0)
        left = masks.astype(float) @ stats
        right = total - left
        wl, wr = masks.astype(float) @ cw, cw.sum() - masks.astype(float) @ cw
        gains = parent - risk(left) - risk(right)
        ok = self._valid(gains, wl, wr, parent)
        if not ok.any():
            return None
        i = int(np.argmax(np.where(ok, gains, -np.inf)))
        chosen = frozenset(c for c, m in zip(cats, masks[i]) if m)
        return Split(name, CATEGORICAL, float(gains[i]), float(wl[i]), float(wr[i]),
                     categories=chosen)

    @staticmethod
    def _ordered_masks(key: np.ndarray, k: int) -> np.ndarray:
        # prefixes of the categories sorted by key; stable, so ties keep first-seen order
        order = np.argsort(key, kind="mergesort")
        masks = np.zeros((k - 1, k), dtype=bool)
        for t in range(1, k):
            masks[t - 1, order[:t]] = True
        return masks

    @staticmethod
    def _subset_masks(k: int) -> np.ndarray:
        # every proper subset containing category 0, enumerated by bitmask
        n = (1 << (k - 1)) - 1
        masks = np.zeros((n, k), dtype=bool)
        masks[:, 0] = True
        for bits in range(n):
            for j in range(1, k):
                if (bits >> (j - 1)) & 1:
                    masks[bits, j] = True
        return masks
