"""
rptree.config
=============

Configuration structures for tree growing.

:class:`StoppingConfig` holds the scalars that decide when a node stops
splitting.  The remaining fit options (method, impurity criterion and the
missing-value policy) are plain strings validated by the ``resolve_*``
helpers below.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, replace
from numbers import Integral, Real

from .exceptions import ConfigurationError

REGRESSION = "regression"
CLASSIFICATION = "classification"
METHODS = (REGRESSION, CLASSIFICATION)
# accepted spellings for the two methods
_METHOD_ALIASES = {
    "regression": REGRESSION, "anova": REGRESSION,
    "classification": CLASSIFICATION, "class": CLASSIFICATION,
}

CRITERIA = ("gini", "entropy")

# "error" fails on a missing split value; the others name a fallback child
MISSING_POLICIES = ("error", "majority", "left", "right")


@dataclass(frozen=True)
class StoppingConfig:
    """Immutable stopping rules for the node builder.

    Parameters
    ----------
    max_depth : int, default=30
        Nodes at this depth become leaves.  The root has depth 0, so
        ``max_depth=0`` yields a single-leaf tree.
    min_split : float, default=20
        Minimum weighted size a node needs before a split is attempted.
    min_bucket : float or None, default=None
        Minimum weighted size of each side of a split.  ``None`` resolves to
        ``max(1, round(min_split / 3))``.
    cp : float, default=0.01
        Complexity parameter.  A split must improve the fit by at least
        ``cp`` times the risk of the root node.

    Notes
    -----
    The defaults suit tables of a few hundred rows or more.  On a handful of
    rows a node weighing less than ``min_split`` is never split, so small
    datasets need a lower ``min_split`` (and ``min_bucket``), e.g.
    ``StoppingConfig(min_split=2, min_bucket=1)``.
    """

    max_depth: int = 30
    min_split: float = 20
    min_bucket: float | None = None
    cp: float = 0.01

    @property
    def effective_min_bucket(self) -> float:
        if self.min_bucket is None:
            return max(1, round(self.min_split / 3))
        return self.min_bucket

    def validate(self) -> "StoppingConfig":
        """Check field types and ranges; return ``self`` for chaining.

        Raises
        ------
        ConfigurationError
            If any field is out of range or of the wrong type.
        """
        if isinstance(self.max_depth, bool) or not isinstance(self.max_depth, Integral):
            raise ConfigurationError(f"max_depth must be an integer, got {self.max_depth!r}")
        if self.max_depth < 0:
            raise ConfigurationError(f"max_depth must be >= 0, got {self.max_depth}")
        for name in ("min_split", "cp"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, Real) or math.isnan(value):
                raise ConfigurationError(f"{name} must be a number, got {value!r}")
        if self.min_split < 1:
            raise ConfigurationError(f"min_split must be >= 1, got {self.min_split}")
        if self.min_bucket is not None:
            if isinstance(self.min_bucket, bool) or not isinstance(self.min_bucket, Real):
                raise ConfigurationError(f"min_bucket must be a number, got {self.min_bucket!r}")
            if not self.min_bucket >= 1:
                raise ConfigurationError(f"min_bucket must be >= 1, got {self.min_bucket}")
        if self.cp < 0:
            raise ConfigurationError(f"cp must be >= 0, got {self.cp}")
        return self

    def with_cp(self, cp: float) -> "StoppingConfig":
        return replace(self, cp=cp)


def resolve_method(method: str | None) -> str | None:
    if method is None:
        return None
    try:
        return _METHOD_ALIASES[str(method).lower()]
    except KeyError:
        raise ConfigurationError(
            f"method must be one of {sorted(_METHOD_ALIASES)}, got {method!r}"
        ) from None


def resolve_criterion(criterion: str) -> str:
    if criterion not in CRITERIA:
        raise ConfigurationError(f"criterion must be one of {CRITERIA}, got {criterion!r}")
    return criterion


def resolve_missing(policy: str) -> str:
    if policy not in MISSING_POLICIES:
        raise ConfigurationError(f"missing must be one of {MISSING_POLICIES}, got {policy!r}")
    return policy
