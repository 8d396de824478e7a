"""
rptree.builder
==============

Recursive growth of a tree from a :class:`~rptree.dataset.Dataset`.

Nodes hold index arrays into the dataset rather than copies of rows.  A node
becomes a leaf when it reaches ``max_depth``, weighs less than
``min_split``, is pure, has no valid split, or when its best split improves
the fit by less than ``cp`` times the risk of the root.
"""
from __future__ import annotations

import logging

import numpy as np

from .config import (CLASSIFICATION, REGRESSION, StoppingConfig, resolve_criterion,
                     resolve_method, resolve_missing)
from .dataset import NUMERIC, Dataset
from .exceptions import ConfigurationError, DegenerateSplitError, InvalidDatasetError, MissingFeatureError
from .splitter import SplitEvaluator, class_counts
from .tree import Node, TreeModel, _plain, missing_goes_left

logger = logging.getLogger(__name__)


def infer_method(target: np.ndarray) -> str:
    """Numeric targets give regression; anything else classification."""
    if target.dtype.kind in "iuf":
        return REGRESSION
    return CLASSIFICATION


def encode_classes(target: np.ndarray) -> tuple[list, np.ndarray]:
    """Return the class labels and an integer code per row.

    Labels are sorted when they are mutually comparable and otherwise kept in
    order of first appearance.
    """
    labels = [_plain(v) for v in target]
    classes = list(dict.fromkeys(labels))
    try:
        classes = sorted(classes)
    except TypeError:
        pass
    index = {c: i for i, c in enumerate(classes)}
    codes = np.fromiter((index[v] for v in labels), count=len(labels), dtype=int)
    return classes, codes


class NodeBuilder:
    """Grows a :class:`~rptree.tree.TreeModel`.

    Parameters
    ----------
    config : StoppingConfig, optional
        Stopping rules; defaults to ``StoppingConfig()``.
    method : {"regression", "classification"} or None, default=None
        ``None`` infers the method from the target dtype.
    criterion : {"gini", "entropy"}, default="gini"
        Impurity for classification trees.
    missing : {"error", "majority", "left", "right"}, default="error"
        What to do with rows whose split value is missing.  ``"error"``
        refuses training data with missing predictor values.
    max_categories_exhaustive : int, default=12
        Passed to :class:`~rptree.splitter.SplitEvaluator`.
    """

    def __init__(self, config: StoppingConfig | None = None, *, method: str | None = None,
                 criterion: str = "gini", missing: str = "error",
                 max_categories_exhaustive: int = 12):
        self.config = config if config is not None else StoppingConfig()
        self.method = method
        self.criterion = criterion
        self.missing = missing
        self.max_categories_exhaustive = max_categories_exhaustive

    def build(self, dataset: Dataset) -> TreeModel:
        """Fit a tree to ``dataset``.

        Either a complete tree is returned or an exception is raised; all
        option checks happen before any node is created.

        Raises
        ------
        ConfigurationError
            For invalid stopping rules or options, or a non-numeric target
            with ``method="regression"``.
        InvalidDatasetError
            If the dataset has no rows.
        MissingFeatureError
            If a predictor has missing values and ``missing="error"``.
        """
        cfg = self.config.validate()
        method = resolve_method(self.method) or infer_method(dataset.target)
        criterion = resolve_criterion(self.criterion)
        missing = resolve_missing(self.missing)
        if int(self.max_categories_exhaustive) < 1:
            raise ConfigurationError("max_categories_exhaustive must be >= 1")
        if dataset.n_rows == 0:
            raise InvalidDatasetError("cannot fit a tree to an empty dataset")
        if missing == "error":
            for name in dataset.feature_names:
                if dataset.missing_mask(name).any():
                    raise MissingFeatureError(name)

        classes = None
        if method == CLASSIFICATION:
            classes, y = encode_classes(dataset.target)
        else:
            try:
                y = dataset.target.astype(float)
            except (TypeError, ValueError):
                raise ConfigurationError(
                    f"regression needs a numeric target; {dataset.target_name!r} is not"
                ) from None

        self._dataset = dataset
        self._cfg = cfg
        self._method = method
        self._missing = missing
        self._classes = classes
        self._y = y
        self._w = dataset.weights
        self._evaluator = SplitEvaluator(
            method, n_classes=len(classes or ()), criterion=criterion,
            min_bucket=cfg.effective_min_bucket,
            max_categories_exhaustive=self.max_categories_exhaustive,
        )
        self._min_gain = cfg.cp * self._evaluator.node_risk(y, self._w)
        root = self._grow(np.arange(dataset.n_rows), depth=0, node_id=1)

        tree = TreeModel(root, schema=dataset.schema, method=method, classes=classes,
                         criterion=criterion, missing=missing, config=cfg,
                         target_name=dataset.target_name)
        logger.info("Grew %s tree on %d rows: %d leaves, depth %d",
                    method, dataset.n_rows, tree.n_leaves, tree.depth)
        return tree

    # ------------------------------------------------------------------
    # Recursion
    # ------------------------------------------------------------------
    def _make_node(self, rows: np.ndarray, depth: int, node_id: int) -> Node:
        y, w = self._y[rows], self._w[rows]
        sw = float(w.sum())
        risk = self._evaluator.node_risk(y, w)
        if self._method == REGRESSION:
            value = float((w * y).sum() / sw) if sw > 0 else float(y.mean())
            return Node(node_id, depth, sw, int(rows.size), risk, value)
        counts = class_counts(y, w, len(self._classes))
        # argmax takes the first class on ties
        value = self._classes[int(np.argmax(counts))]
        return Node(node_id, depth, sw, int(rows.size), risk, value,
                    class_weights={c: float(n) for c, n in zip(self._classes, counts)})

    def _grow(self, rows: np.ndarray, depth: int, node_id: int) -> Node:
        node = self._make_node(rows, depth, node_id)
        cfg = self._cfg
        y, w = self._y[rows], self._w[rows]
        if depth >= cfg.max_depth or node.n_samples < cfg.min_split or self._evaluator.is_pure(y, w):
            return node

        columns = {name: col[rows] for name, col in self._dataset.columns.items()}
        try:
            split = self._evaluator.best_split(columns, self._dataset.schema, y, w)
        except DegenerateSplitError:
            logger.debug("node %d: no valid split, making a leaf", node_id)
            return node
        if split.improvement < self._min_gain:
            logger.debug("node %d: improvement %.6g below cp threshold %.6g",
                         node_id, split.improvement, self._min_gain)
            return node

        values = columns[split.feature]
        if self._dataset.schema[split.feature] == NUMERIC:
            miss = np.isnan(values)
        else:
            miss = np.array([v is None for v in values], dtype=bool)
        go_left = np.zeros(rows.size, dtype=bool)
        go_left[~miss] = split.left_mask(values[~miss])
        if miss.any():
            go_left[miss] = missing_goes_left(split, self._missing, node_id)
        if go_left.all() or not go_left.any():
            logger.debug("node %d: split on %s leaves one side empty, making a leaf",
                         node_id, split.describe())
            return node

        logger.debug("node %d: split on %s (improvement %.6g)",
                     node_id, split.describe(), split.improvement)
        node.split = split
        node.left = self._grow(rows[go_left], depth + 1, 2 * node_id)
        node.right = self._grow(rows[~go_left], depth + 1, 2 * node_id + 1)
        return node
