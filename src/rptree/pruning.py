"""
rptree.pruning
==============

Cost-complexity pruning.

For a node ``t`` with subtree ``T_t`` the complexity measure is

.. math::

    g(t) = \\frac{R(t) - R(T_t)}{(|T_t| - 1) \\, R(\\text{root})}

where ``R`` is the risk (weighted SSE or weighted impurity) and ``|T_t|`` the
number of leaves.  Pruning at ``cp`` collapses, bottom-up, every node with
``g(t) <= cp``; the result is the smallest subtree minimising
``R(T) + cp * R(root) * |T|``.

:func:`cp_table` lists the nested subtrees obtained by raising ``cp``, and
:func:`cross_validated_cp_table` adds k-fold estimates of their error.
"""
from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass, replace

import numpy as np
from sklearn.model_selection import KFold

from .builder import NodeBuilder
from .config import CLASSIFICATION, REGRESSION
from .dataset import Dataset
from .exceptions import ConfigurationError
from .tree import Node, TreeModel

logger = logging.getLogger(__name__)

# relative slack when grouping nodes that collapse at the same cp
_CP_TOL = 1e-9


@dataclass(frozen=True)
class CpRow:
    """One nested subtree of the pruning sequence.

    ``cp`` is the smallest complexity parameter that prunes the full tree
    down to this subtree; ``rel_error`` is its training risk relative to the
    root.  ``xerror``/``xstd`` are filled in by cross-validation.
    """

    cp: float
    nsplit: int
    rel_error: float
    xerror: float | None = None
    xstd: float | None = None


def _check_cp(cp: float) -> float:
    try:
        cp = float(cp)
    except (TypeError, ValueError):
        raise ConfigurationError(f"cp must be a number, got {cp!r}") from None
    if math.isnan(cp) or cp < 0:
        raise ConfigurationError(f"cp must be >= 0, got {cp}")
    return cp


# -----------------------------------------------------------------------------
# Pruning
# -----------------------------------------------------------------------------
def _link_strength(node: Node, sub_risk: float, leaves: int, scale: float) -> float:
    # g(t): risk removed per added leaf, relative to the root risk
    return (node.risk - sub_risk) / (leaves - 1) / scale


def _prune_node(node: Node, cp: float, scale: float) -> tuple[float, int]:
    """Prune below ``node`` in place; return (subtree risk, leaves)."""
    if node.is_leaf:
        return node.risk, 1
    risk_l, leaves_l = _prune_node(node.left, cp, scale)
    risk_r, leaves_r = _prune_node(node.right, cp, scale)
    sub_risk, leaves = risk_l + risk_r, leaves_l + leaves_r
    if _link_strength(node, sub_risk, leaves, scale) <= cp:
        node.collapse()
        return node.risk, 1
    return sub_risk, leaves


def prune(tree: TreeModel, cp: float) -> TreeModel:
    """Return a pruned copy of ``tree``; ``tree`` itself is not modified.

    A split survives only if the risk it removes exceeds
    ``cp * R(root) * (leaves it adds)``.  ``cp=0`` keeps every split that
    improves the fit; ``cp=inf`` leaves only the root.  Pruning an already
    pruned tree with the same ``cp`` returns an identical tree.

    Raises
    ------
    ConfigurationError
        If ``cp`` is negative or NaN.
    """
    cp = _check_cp(cp)
    pruned = copy.deepcopy(tree)
    before = pruned.n_leaves
    scale = pruned.root.risk if pruned.root.risk > 0 else 1.0
    _prune_node(pruned.root, cp, scale)
    if pruned.config is not None:
        pruned.config = pruned.config.with_cp(cp)
    logger.debug("Pruned at cp=%g: %d -> %d leaves", cp, before, pruned.n_leaves)
    return pruned


def _weakest_links(node: Node, scale: float, out: list) -> tuple[float, int]:
    if node.is_leaf:
        return node.risk, 1
    risk_l, leaves_l = _weakest_links(node.left, scale, out)
    risk_r, leaves_r = _weakest_links(node.right, scale, out)
    sub_risk, leaves = risk_l + risk_r, leaves_l + leaves_r
    out.append((_link_strength(node, sub_risk, leaves, scale), node))
    return sub_risk, leaves


def cp_table(tree: TreeModel) -> list[CpRow]:
    """Weakest-link pruning sequence of ``tree``, largest cp first.

    Also sets :attr:`Node.complexity` on the internal nodes of ``tree``:
    the cp at which each node is collapsed.  The last row describes the full
    tree and carries the cp it was grown with.
    """
    work = copy.deepcopy(tree)
    originals = {node.node_id: node for node in tree.traverse()}
    scale = tree.root.risk if tree.root.risk > 0 else 1.0
    grown_cp = tree.config.cp if tree.config is not None else 0.0

    rows = []
    assigned: set[int] = set()
    cp_here = grown_cp
    while True:
        links: list = []
        sub_risk, leaves = _weakest_links(work.root, scale, links)
        rows.append(CpRow(cp=cp_here, nsplit=leaves - 1, rel_error=sub_risk / scale))
        if not links:
            break
        g_min = min(g for g, _ in links)
        weakest = [(g, node) for g, node in links if g <= g_min + _CP_TOL * max(abs(g_min), 1.0)]
        # the largest g of the group, so that prune() at this cp removes all of it
        cp_here = max(max(g for g, _ in weakest), 0.0)
        for _, node in weakest:
            originals[node.node_id].complexity = cp_here
            assigned.add(node.node_id)
            node.collapse()

    # nodes removed together with a weaker ancestor collapse at its cp
    for node in tree.traverse():
        if not node.is_leaf:
            for child in (node.left, node.right):
                if not child.is_leaf and child.node_id not in assigned:
                    child.complexity = node.complexity

    rows.reverse()
    # each row keeps the cp that first produces it
    for i in range(len(rows) - 1):
        if rows[i].cp < rows[i + 1].cp:
            rows[i] = replace(rows[i], cp=rows[i + 1].cp)
    return rows


# -----------------------------------------------------------------------------
# Cross-validation
# -----------------------------------------------------------------------------
def _row_losses(tree: TreeModel, data: Dataset) -> np.ndarray:
    """Per-row loss in the units of the tree's risk."""
    if tree.method == REGRESSION:
        pred = tree.predict_many(data)
        return (data.target.astype(float) - pred) ** 2
    index = {c: i for i, c in enumerate(tree.classes)}
    losses = np.empty(data.n_rows, dtype=float)
    for i, obs in enumerate(data.observations()):
        p = tree.predict_proba(obs)
        label = data.target[i]
        label = label.item() if isinstance(label, np.generic) else label
        p_true = p[index[label]] if label in index else 0.0
        if tree.criterion == "entropy":
            losses[i] = -math.log2(max(p_true, 1e-12))
        else:
            # Brier score; its weighted sum over a node equals W * Gini
            losses[i] = 1.0 - 2.0 * p_true + float((p * p).sum())
    return losses


def cross_validated_cp_table(dataset: Dataset, builder: NodeBuilder, *, n_folds: int = 10,
                             random_state: int | None = None,
                             tree: TreeModel | None = None) -> list[CpRow]:
    """:func:`cp_table` of the full-data tree with k-fold ``xerror``/``xstd``.

    Each fold grows a tree with ``builder`` on the training part, prunes it at
    the geometric mean of neighbouring cp values and scores the held-out
    rows.  Errors are relative to the root risk of the full-data tree.
    """
    if int(n_folds) < 2:
        raise ConfigurationError(f"n_folds must be >= 2, got {n_folds}")
    if dataset.n_rows < n_folds:
        raise ConfigurationError(f"need at least {n_folds} rows for {n_folds}-fold cross-validation")
    if tree is None:
        tree = builder.build(dataset)
    rows = cp_table(tree)
    scale = tree.root.risk if tree.root.risk > 0 else 1.0
    # representative cp for each row, between it and the next larger one
    probes = [math.inf if i == 0 else math.sqrt(max(r.cp, 0.0) * rows[i - 1].cp)
              for i, r in enumerate(rows)]

    losses = np.zeros((len(rows), dataset.n_rows), dtype=float)
    folds = KFold(n_splits=int(n_folds), shuffle=True, random_state=random_state)
    for k, (train_idx, test_idx) in enumerate(folds.split(np.arange(dataset.n_rows))):
        fold_tree = builder.build(dataset.subset(train_idx))
        held_out = dataset.subset(test_idx)
        if tree.method == CLASSIFICATION:
            # a fold may miss a class; score against the full label set
            fold_tree.classes = list(tree.classes)
        for i, probe in enumerate(probes):
            losses[i, test_idx] = _row_losses(prune(fold_tree, probe), held_out)
        logger.debug("cross-validation fold %d done", k + 1)

    w = dataset.weights
    sw = w.sum() if w.sum() > 0 else 1.0
    out = []
    for i, row in enumerate(rows):
        total = float((w * losses[i]).sum())
        mean = total / sw
        spread = math.sqrt(float((w * (losses[i] - mean) ** 2).sum()))
        out.append(replace(row, xerror=total / scale, xstd=spread / scale))
    return out


def select_cp(table: list[CpRow], rule: str = "min") -> float:
    """Pick a cp from a cross-validated table.

    ``rule="min"`` takes the row with the lowest ``xerror``; ``"1se"`` takes
    the simplest row within one ``xstd`` of that minimum.
    """
    if not table or table[0].xerror is None:
        raise ValueError("select_cp needs a cross-validated cp table")
    best = min(table, key=lambda r: r.xerror)
    if rule == "min":
        return best.cp
    if rule == "1se":
        bound = best.xerror + best.xstd
        return next(r.cp for r in table if r.xerror <= bound)
    raise ValueError(f"rule must be 'min' or '1se', got {rule!r}")
