"""
rptree.dataset
==============

Tabular training data for the tree builder.

A :class:`Dataset` is a set of named feature columns sharing one schema
(feature name -> ``"numeric"`` or ``"categorical"``), a target column and a
non-negative weight per row.  Numeric columns are stored as float arrays with
``nan`` for missing values; categorical columns are stored as object arrays
with ``None`` for missing values.

The module also contains the glue used to get data into that shape: a
formula parser (``"survived ~ ."``), a table loader for CSV and spreadsheet
files, and :func:`aggregate_observations`, which collapses identical rows into
weighted observations.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Sequence

import numpy as np
import pandas as pd

from .exceptions import InvalidDatasetError, SchemaMismatchError

logger = logging.getLogger(__name__)

NUMERIC = "numeric"
CATEGORICAL = "categorical"
FEATURE_KINDS = (NUMERIC, CATEGORICAL)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def is_missing(v) -> bool:
    """Return True for ``None``, float NaN and ``pandas.NA``/``NaT``."""
    if v is None:
        return True
    if isinstance(v, (float, np.floating)):
        return bool(np.isnan(v))
    return v is pd.NA or v is pd.NaT


def _infer_kind(values) -> str:
    if isinstance(values, pd.Series):
        if isinstance(values.dtype, pd.CategoricalDtype):
            return CATEGORICAL
        if pd.api.types.is_bool_dtype(values.dtype):
            return CATEGORICAL
        if pd.api.types.is_numeric_dtype(values.dtype):
            return NUMERIC
        values = values.to_numpy(dtype=object)
    arr = np.asarray(values)
    if arr.dtype.kind in "iuf":
        return NUMERIC
    if arr.dtype.kind == "b":
        return CATEGORICAL
    known = [v for v in arr if not is_missing(v)]
    if any(isinstance(v, (str, bool, np.bool_)) for v in known):
        return CATEGORICAL
    try:
        np.asarray(known, dtype=float)
    except (TypeError, ValueError):
        return CATEGORICAL
    return NUMERIC


def _numeric_column(name: str, values) -> np.ndarray:
    if isinstance(values, pd.Series):
        values = values.to_numpy(dtype=object)
    arr = np.asarray(values, dtype=object)
    out = np.empty(arr.shape[0], dtype=float)
    for i, v in enumerate(arr):
        if is_missing(v):
            out[i] = np.nan
            continue
        try:
            out[i] = float(v)
        except (TypeError, ValueError):
            raise SchemaMismatchError(
                f"Column {name!r} is declared numeric but holds {v!r}"
            ) from None
    return out


def _categorical_column(values) -> np.ndarray:
    if isinstance(values, pd.Series):
        values = values.to_numpy(dtype=object)
    arr = np.asarray(values, dtype=object)
    out = np.empty(arr.shape[0], dtype=object)
    for i, v in enumerate(arr):
        # numpy scalars become plain Python values so categories compare/serialize cleanly
        out[i] = None if is_missing(v) else (v.item() if isinstance(v, np.generic) else v)
    return out


def _target_missing(y: np.ndarray) -> np.ndarray:
    if y.dtype.kind == "f":
        return np.isnan(y)
    if y.dtype.kind in "iub":
        return np.zeros(y.shape[0], dtype=bool)
    return np.array([is_missing(v) for v in y], dtype=bool)


# -----------------------------------------------------------------------------
# Dataset
# -----------------------------------------------------------------------------
class Dataset:
    """Ordered observations with a fixed feature schema.

    Parameters
    ----------
    columns : mapping of str to array-like
        Feature columns in schema order.
    target : array-like
        Target values, one per row.  Missing targets are rejected.
    weights : array-like or None, default=None
        Non-negative row weights.  ``None`` gives every row weight 1.
    schema : mapping of str to {"numeric", "categorical"}, optional
        Feature kinds.  Inferred from the column values when omitted.
    categorical : iterable of str, optional
        Feature names forced to ``"categorical"`` during inference.
    target_name : str, default="y"
        Name of the target column (used in formulas and exports).

    Raises
    ------
    SchemaMismatchError
        If columns and schema disagree or a column has the wrong length.
    InvalidDatasetError
        If a weight is negative or not finite, or a target is missing.
    """

    def __init__(self, columns: Mapping[str, Any], target, *, weights=None,
                 schema: Mapping[str, str] | None = None,
                 categorical: Iterable[str] | None = None,
                 target_name: str = "y"):
        names = list(columns)
        if schema is None:
            forced = set(categorical or ())
            unknown = forced - set(names)
            if unknown:
                raise SchemaMismatchError(
                    f"categorical names not among the columns: {sorted(unknown)}",
                    missing=sorted(unknown),
                )
            schema = {n: (CATEGORICAL if n in forced else _infer_kind(columns[n])) for n in names}
        else:
            schema = dict(schema)
            missing = [n for n in schema if n not in columns]
            unexpected = [n for n in names if n not in schema]
            if missing or unexpected:
                raise SchemaMismatchError(
                    f"columns do not match schema (missing={missing}, unexpected={unexpected})",
                    missing=missing, unexpected=unexpected,
                )
            bad = {n: k for n, k in schema.items() if k not in FEATURE_KINDS}
            if bad:
                raise SchemaMismatchError(f"unknown feature kinds: {bad}")
        self.schema: dict[str, str] = schema
        self.target_name = str(target_name)

        if isinstance(target, pd.Series):
            target = target.to_numpy()
        y = np.asarray(target)
        if y.ndim != 1:
            raise SchemaMismatchError("target must be one-dimensional")
        n = y.shape[0]
        if _target_missing(y).any():
            raise InvalidDatasetError(f"target {self.target_name!r} has missing values")
        self.target = y

        self.columns: dict[str, np.ndarray] = {}
        for name, kind in schema.items():
            col = columns[name]
            self.columns[name] = _numeric_column(name, col) if kind == NUMERIC else _categorical_column(col)
            if self.columns[name].shape[0] != n:
                raise SchemaMismatchError(
                    f"column {name!r} has {self.columns[name].shape[0]} rows, target has {n}"
                )

        if weights is None:
            w = np.ones(n, dtype=float)
        else:
            w = np.asarray(weights, dtype=float).copy()
            if w.shape != (n,):
                raise SchemaMismatchError("weights must have the same length as the target")
            if not np.all(np.isfinite(w)) or (w < 0).any():
                raise InvalidDatasetError("weights must be finite and non-negative")
        self.weights = w

    # ----------------------------- constructors -----------------------------

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, target: str, features: Sequence[str] | None = None, *,
                   weights: str | Sequence[float] | None = None,
                   categorical: Iterable[str] | None = None) -> "Dataset":
        """Build a dataset from a :class:`pandas.DataFrame`.

        ``features=None`` uses every column except the target (and the weight
        column when ``weights`` names one).  Rows with a missing target are
        dropped with a warning.
        """
        if target not in frame.columns:
            raise SchemaMismatchError(f"target column {target!r} not found", missing=[target])
        weight_col = weights if isinstance(weights, str) else None
        if weight_col is not None and weight_col not in frame.columns:
            raise SchemaMismatchError(f"weight column {weight_col!r} not found", missing=[weight_col])
        if features is None:
            features = [c for c in frame.columns if c not in (target, weight_col)]
        else:
            features = list(features)
            absent = [c for c in features if c not in frame.columns]
            if absent:
                raise SchemaMismatchError(f"feature columns not found: {absent}", missing=absent)

        keep = ~frame[target].isna().to_numpy()
        if not keep.all():
            logger.warning("Dropping %d rows with missing target %r", int((~keep).sum()), target)
        sub = frame.loc[keep]
        if weight_col is not None:
            w = sub[weight_col].to_numpy(dtype=float)
        elif weights is not None:
            w = np.asarray(weights, dtype=float)[keep]
        else:
            w = None
        return cls({c: sub[c] for c in features}, sub[target], weights=w,
                   categorical=categorical, target_name=target)

    @classmethod
    def from_formula(cls, formula: str, frame: pd.DataFrame, *,
                     weights: str | Sequence[float] | None = None,
                     categorical: Iterable[str] | None = None) -> "Dataset":
        exclude = [weights] if isinstance(weights, str) else []
        target, features = parse_formula(formula, list(frame.columns), exclude=exclude)
        return cls.from_frame(frame, target, features, weights=weights, categorical=categorical)

    @classmethod
    def from_arrays(cls, X, y, *, feature_names: Sequence[str] | None = None,
                    categorical: Iterable[int | str] | None = None,
                    sample_weight=None) -> "Dataset":
        """Build a dataset from a 2-D array (or DataFrame) and a target vector.

        ``categorical`` may hold column indices or names.
        """
        if isinstance(X, pd.DataFrame):
            names = [str(c) for c in X.columns] if feature_names is None else list(feature_names)
            cols = [X.iloc[:, j] for j in range(X.shape[1])]
        else:
            X = np.asarray(X, dtype=object)
            if X.ndim != 2:
                raise SchemaMismatchError("X must be two-dimensional")
            names = [f"X{j}" for j in range(X.shape[1])] if feature_names is None else list(feature_names)
            cols = [X[:, j] for j in range(X.shape[1])]
        if len(names) != len(cols):
            raise SchemaMismatchError("feature_names length must match X.shape[1]")
        cats = []
        for c in categorical or ():
            cats.append(c if isinstance(c, str) else names[int(c)])
        return cls(dict(zip(names, cols)), y, weights=sample_weight, categorical=cats)

    # ----------------------------- accessors -----------------------------

    @property
    def feature_names(self) -> list[str]:
        return list(self.schema)

    @property
    def n_rows(self) -> int:
        return int(self.target.shape[0])

    def __len__(self) -> int:
        return self.n_rows

    @property
    def total_weight(self) -> float:
        return float(self.weights.sum())

    def column(self, name: str) -> np.ndarray:
        try:
            return self.columns[name]
        except KeyError:
            raise SchemaMismatchError(f"unknown feature {name!r}", missing=[name]) from None

    def missing_mask(self, name: str) -> np.ndarray:
        col = self.column(name)
        if self.schema[name] == NUMERIC:
            return np.isnan(col)
        return np.array([v is None for v in col], dtype=bool)

    def observation(self, i: int) -> dict[str, Any]:
        return {name: col[i] for name, col in self.columns.items()}

    def observations(self) -> Iterator[dict[str, Any]]:
        for i in range(self.n_rows):
            yield self.observation(i)

    def subset(self, rows) -> "Dataset":
        rows = np.asarray(rows)
        return Dataset({n: c[rows] for n, c in self.columns.items()}, self.target[rows],
                       weights=self.weights[rows], schema=self.schema,
                       target_name=self.target_name)

    def __repr__(self) -> str:
        return (f"Dataset(n_rows={self.n_rows}, target={self.target_name!r}, "
                f"features={self.feature_names})")


# -----------------------------------------------------------------------------
# Formula / loading / aggregation glue
# -----------------------------------------------------------------------------
_TERM = re.compile(r"([+-]?)\s*([^+\-\s]+)")


def parse_formula(formula: str, columns: Sequence[str], *,
                  exclude: Iterable[str] = ()) -> tuple[str, list[str]]:
    """Split ``"target ~ a + b"`` into the target name and predictor names.

    ``.`` stands for every column other than the target and ``exclude``;
    ``- name`` removes a predictor, so ``"survived ~ . - name"`` is valid.

    Raises
    ------
    SchemaMismatchError
        If the formula is malformed or names an unknown column.
    """
    if formula.count("~") != 1:
        raise SchemaMismatchError(f"formula must contain exactly one '~': {formula!r}")
    lhs, rhs = (part.strip() for part in formula.split("~"))
    columns = list(columns)
    if lhs not in columns:
        raise SchemaMismatchError(f"target {lhs!r} not among the columns", missing=[lhs])
    terms = _TERM.findall(rhs)
    if not terms or "".join(sign + name for sign, name in terms) != re.sub(r"\s+", "", rhs):
        raise SchemaMismatchError(f"cannot parse right-hand side of {formula!r}")
    skip = {lhs, *exclude}
    features: list[str] = []
    for sign, name in terms:
        names = [c for c in columns if c not in skip] if name == "." else [name]
        for n in names:
            if n not in columns:
                raise SchemaMismatchError(f"unknown predictor {n!r} in formula", missing=[n])
            if sign == "-":
                if n in features:
                    features.remove(n)
            elif n not in features and n != lhs:
                features.append(n)
    if not features:
        raise SchemaMismatchError(f"formula {formula!r} selects no predictors")
    return lhs, features


def load_table(path: str | Path, **kwargs) -> pd.DataFrame:
    """Read a CSV/TSV file or a spreadsheet into a DataFrame."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(path, **kwargs)
    if suffix in (".tsv", ".tab"):
        return pd.read_csv(path, sep="\t", **kwargs)
    if suffix in (".xls", ".xlsx", ".xlsm", ".ods"):
        return pd.read_excel(path, **kwargs)
    raise ValueError(f"Unsupported table format: {path.suffix!r}")


def aggregate_observations(frame: pd.DataFrame, by: Sequence[str], *,
                           weight_name: str = "n",
                           weights: str | None = None) -> pd.DataFrame:
    """Collapse rows with identical values in ``by`` into weighted observations.

    The result has one row per distinct combination (missing values form their
    own group) and a ``weight_name`` column holding the row count, or the sum
    of the existing ``weights`` column when one is given.
    """
    by = list(by)
    if weight_name in by:
        raise ValueError(f"weight_name {weight_name!r} collides with a grouping column")
    grouped = frame.groupby(by, dropna=False, sort=True, observed=True)
    if weights is None:
        out = grouped.size()
    else:
        out = grouped[weights].sum()
    return out.rename(weight_name).reset_index()
