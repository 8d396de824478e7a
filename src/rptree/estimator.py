# -*- coding: utf-8 -*-
"""
rptree.estimator
================

User-facing entry points.

* :func:`rpart` fits a tree from a formula and a DataFrame, the way the
  Titanic tutorial does: ``rpart("survived ~ .", data, weights="n")``.
* :class:`RPartClassifier` and :class:`RPartRegressor` wrap the same engine
  in the scikit-learn estimator API (``fit``/``predict``/``predict_proba``,
  ``get_params``/``set_params``, ``score``).

Both grow a tree with :class:`~rptree.builder.NodeBuilder`, compute its cp
table (optionally cross-validated) and prune it at the requested ``cp``.
"""
from __future__ import annotations

import logging
from typing import Iterable, Sequence

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, ClassifierMixin, RegressorMixin

from .builder import NodeBuilder
from .config import CLASSIFICATION, REGRESSION, StoppingConfig
from .dataset import Dataset
from .pruning import cp_table, cross_validated_cp_table, prune
from .tree import TreeModel

logger = logging.getLogger(__name__)


def _fit(dataset: Dataset, builder: NodeBuilder, xval: int, random_state) -> TreeModel:
    tree = builder.build(dataset)
    if xval:
        table = cross_validated_cp_table(dataset, builder, n_folds=xval,
                                         random_state=random_state, tree=tree)
    else:
        table = cp_table(tree)
    pruned = prune(tree, builder.config.cp)
    pruned.cptable = table
    logger.info("Fitted %s tree: %d leaves after pruning at cp=%g",
                pruned.method, pruned.n_leaves, builder.config.cp)
    return pruned


def rpart(formula: str, data: pd.DataFrame, *, weights: str | Sequence[float] | None = None,
          method: str | None = None, control: StoppingConfig | None = None,
          categorical: Iterable[str] | None = None, criterion: str = "gini",
          missing: str = "error", xval: int = 0, random_state: int | None = None) -> TreeModel:
    """Fit a recursive-partitioning tree from a formula.

    Parameters
    ----------
    formula : str
        ``"target ~ predictors"``; ``.`` means all other columns and
        ``- name`` drops one, e.g. ``"survived ~ . - name"``.
    data : pandas.DataFrame
        Training table.
    weights : str or sequence of float, optional
        Name of a weight column (excluded from ``.``) or one weight per row.
    method : {"regression", "classification", "anova", "class"}, optional
        Inferred from the target dtype when omitted.
    control : StoppingConfig, optional
        Stopping rules and the cp the returned tree is pruned at.
    categorical : iterable of str, optional
        Columns to treat as categorical regardless of dtype.
    criterion : {"gini", "entropy"}, default="gini"
    missing : {"error", "majority", "left", "right"}, default="error"
    xval : int, default=0
        Number of cross-validation folds for the cp table; 0 skips it.
    random_state : int, optional
        Seed for the cross-validation folds.

    Returns
    -------
    TreeModel
        The pruned tree; its ``cptable`` attribute holds the cp table of the
        unpruned tree.
    """
    dataset = Dataset.from_formula(formula, data, weights=weights, categorical=categorical)
    builder = NodeBuilder(control, method=method, criterion=criterion, missing=missing)
    return _fit(dataset, builder, xval, random_state)


# -----------------------------------------------------------------------------
# scikit-learn estimators
# -----------------------------------------------------------------------------
class _RPartBase(BaseEstimator):
    _method: str = ""

    def __init__(self, *, max_depth: int = 30, min_split: float = 20,
                 min_bucket: float | None = None, cp: float = 0.01,
                 criterion: str = "gini", missing: str = "error",
                 feature_names: list[str] | None = None,
                 categorical_features: list[int | str] | None = None,
                 max_categories_exhaustive: int = 12, xval: int = 0,
                 random_state: int | None = None):
        self.max_depth = max_depth
        self.min_split = min_split
        self.min_bucket = min_bucket
        self.cp = cp
        self.criterion = criterion
        self.missing = missing
        self.feature_names = feature_names
        self.categorical_features = categorical_features
        self.max_categories_exhaustive = max_categories_exhaustive
        self.xval = xval
        self.random_state = random_state

    def fit(self, X, y, sample_weight=None):
        """Grow, cross-validate (when ``xval > 0``) and prune a tree."""
        dataset = Dataset.from_arrays(X, y, feature_names=self.feature_names,
                                      categorical=self.categorical_features,
                                      sample_weight=sample_weight)
        config = StoppingConfig(max_depth=self.max_depth, min_split=self.min_split,
                                min_bucket=self.min_bucket, cp=self.cp)
        builder = NodeBuilder(config, method=self._method, criterion=self.criterion,
                              missing=self.missing,
                              max_categories_exhaustive=self.max_categories_exhaustive)
        self.tree_ = _fit(dataset, builder, self.xval, self.random_state)
        self.cptable_ = self.tree_.cptable
        self.feature_names_ = dataset.feature_names
        self.n_features_in_ = len(self.feature_names_)
        self._set_importances()
        return self

    def _set_importances(self):
        imp = np.array(list(self.tree_.variable_importance().values()), dtype=float)
        self.feature_importances_ = imp / imp.sum() if imp.sum() > 0 else imp

    def _check_fitted(self):
        if getattr(self, "tree_", None) is None:
            raise ValueError("Estimator not fitted. Call fit(...) first.")

    def _observations(self, X) -> list:
        if isinstance(X, pd.DataFrame):
            if X.shape[1] != self.n_features_in_:
                raise ValueError(f"X must have {self.n_features_in_} columns, got {X.shape[1]}")
            return [row for _, row in X.set_axis(self.feature_names_, axis=1).iterrows()]
        X = np.asarray(X, dtype=object)
        if X.ndim != 2 or X.shape[1] != self.n_features_in_:
            raise ValueError(f"X must have shape (n_samples, {self.n_features_in_})")
        return [dict(zip(self.feature_names_, x)) for x in X]

    def prune(self, cp: float):
        """Re-prune the fitted tree at ``cp``; returns ``self``."""
        self._check_fitted()
        table = self.tree_.cptable
        self.tree_ = prune(self.tree_, cp)
        self.tree_.cptable = table
        self._set_importances()
        return self

    def apply(self, X) -> np.ndarray:
        """Leaf node id for each sample."""
        self._check_fitted()
        return self.tree_.apply(self._observations(X))

    def predict_rule(self, X) -> list[str]:
        self._check_fitted()
        return [self.tree_.predict_rule(obs) for obs in self._observations(X)]

    def export_rules(self) -> list[str]:
        self._check_fitted()
        return self.tree_.export_rules()

    def print_tree(self) -> None:
        self._check_fitted()
        self.tree_.print_tree()

    def export_graphviz(self, filename: str | None = None, *, format: str = "png") -> str:
        self._check_fitted()
        return self.tree_.export_graphviz(filename, format=format)


class RPartClassifier(ClassifierMixin, _RPartBase):
    """Classification tree with cost-complexity pruning.

    Parameters
    ----------
    max_depth : int, default=30
        Maximum depth; the root has depth 0.
    min_split : float, default=20
        Minimum total sample weight a node needs to be split.
    min_bucket : float or None, default=None
        Minimum total sample weight on each side of a split;
        ``None`` means ``round(min_split / 3)``.
    cp : float, default=0.01
        Complexity parameter used both as a growing threshold and for the
        final pruning.
    criterion : {"gini", "entropy"}, default="gini"
        Impurity measure.
    missing : {"error", "majority", "left", "right"}, default="error"
        Routing of samples whose split value is missing.
    feature_names : list[str] or None, default=None
        Names for the columns of ``X``; DataFrame column names are used when
        ``X`` is a DataFrame and this is None.
    categorical_features : list[int | str] or None, default=None
        Columns to treat as categorical.  Columns holding strings or booleans
        are categorical anyway.
    max_categories_exhaustive : int, default=12
        Above this many categories (with three or more classes) only
        one-vs-rest category splits are searched.
    xval : int, default=0
        Cross-validation folds used to fill ``cptable_`` with ``xerror``.
    random_state : int or None, default=None
        Seed for the cross-validation folds.

    Attributes
    ----------
    tree_ : TreeModel
    classes_ : ndarray
    cptable_ : list[CpRow]
    feature_importances_ : ndarray
    """

    _method = CLASSIFICATION

    def fit(self, X, y, sample_weight=None):
        super().fit(X, y, sample_weight=sample_weight)
        self.classes_ = np.asarray(self.tree_.classes)
        return self

    def predict(self, X) -> np.ndarray:
        self._check_fitted()
        return np.asarray([self.tree_.predict(obs) for obs in self._observations(X)])

    def predict_proba(self, X) -> np.ndarray:
        self._check_fitted()
        return np.vstack([self.tree_.predict_proba(obs) for obs in self._observations(X)])


class RPartRegressor(RegressorMixin, _RPartBase):
    """Regression tree (weighted least squares) with cost-complexity pruning.

    Takes the same parameters as :class:`RPartClassifier`; ``criterion`` is
    ignored.
    """

    _method = REGRESSION

    def predict(self, X) -> np.ndarray:
        self._check_fitted()
        return np.asarray([self.tree_.predict(obs) for obs in self._observations(X)], dtype=float)
