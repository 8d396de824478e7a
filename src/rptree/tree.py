# -*- coding: utf-8 -*-
"""
rptree.tree
===========

The fitted tree: nodes, prediction, traversal and exports.

A :class:`TreeModel` owns a binary tree of :class:`Node` objects.  Internal
nodes carry a :class:`~rptree.splitter.Split`; leaves carry only their
fitted statistics.  Every node, internal or not, stores the prediction it
would make as a leaf so that pruning can collapse a subtree without
revisiting the training data.

Observations are plain mappings from feature name to value (``dict``,
:class:`pandas.Series` or anything with ``get``).  A feature missing from the
mapping, ``None`` and ``nan`` are all treated as a missing value and routed
by the model's missing-value policy; the default policy ``"error"`` raises
:class:`~rptree.exceptions.MissingFeatureError`.

Besides prediction the model provides the helpers used for inspection and
plotting: a pre-order traversal, per-node summaries, rule export, a text
listing and Graphviz export.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterator, Mapping

import numpy as np
import pandas as pd

from .config import CLASSIFICATION, REGRESSION, StoppingConfig
from .dataset import Dataset, is_missing
from .exceptions import MissingFeatureError, SchemaMismatchError
from .splitter import Split


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _plain(v):
    """Convert numpy scalars to Python scalars for JSON output."""
    return v.item() if isinstance(v, np.generic) else v


def _write_dot(dot, filename: str, format: str) -> str:
    """Save or render a graphviz graph; return the written path."""
    if format.lower() == "dot":
        path = f"{filename}.dot"
        dot.save(path)
        return path
    try:
        dot.render(filename, cleanup=True)
        return f"{filename}.{format}"
    except Exception:
        # missing dot executable and similar
        fallback_path = f"{filename}.dot"
        dot.save(fallback_path)
        return fallback_path


def missing_goes_left(split: Split, missing: str, node_id: int | None = None) -> bool:
    """Direction for a row whose split value is missing."""
    if missing == "error":
        raise MissingFeatureError(split.feature, node_id)
    if missing == "majority":
        return split.left_weight >= split.right_weight
    return missing == "left"


def route(node: "Node", value: Any, missing: str) -> "Node":
    """Return the child of ``node`` that ``value`` is sent to.

    The builder partitions training rows with the same two rules
    (:meth:`Split.left_mask` and :func:`missing_goes_left`), so a training row
    is always predicted by the leaf it was counted in.
    """
    split = node.split
    if is_missing(value):
        go_left = missing_goes_left(split, missing, node.node_id)
    else:
        try:
            go_left = split.goes_left(value)
        except (TypeError, ValueError):
            raise SchemaMismatchError(
                f"value {value!r} cannot be routed on feature {split.feature!r}"
            ) from None
    return node.left if go_left else node.right


# -----------------------------------------------------------------------------
# Node
# -----------------------------------------------------------------------------
@dataclass(eq=False)
class Node:
    """A node of a fitted tree.

    Attributes
    ----------
    node_id : int
        Heap-style id: the root is 1 and the children of ``k`` are ``2k``
        and ``2k + 1``.
    depth : int
        Distance from the root.
    n_samples : float
        Total weight of the training rows that reached the node.
    n_obs : int
        Number of training rows that reached the node.
    risk : float
        Weighted SSE (regression) or weighted impurity (classification).
    value : Any
        Weighted mean (regression) or majority class label (classification).
    class_weights : dict or None
        Weighted class counts, classification only.
    split : Split or None
        Split rule; ``None`` for leaves.
    complexity : float
        Largest cp at which the node still splits; filled in by
        :func:`rptree.pruning.cp_table`.
    """

    node_id: int
    depth: int
    n_samples: float
    n_obs: int
    risk: float
    value: Any
    class_weights: dict | None = None
    split: Split | None = None
    left: "Node | None" = None
    right: "Node | None" = None
    complexity: float = 0.0

    @property
    def is_leaf(self) -> bool:
        return self.split is None

    @property
    def probabilities(self) -> dict | None:
        if self.class_weights is None:
            return None
        tot = sum(self.class_weights.values())
        if tot <= 0:
            k = len(self.class_weights)
            return {c: 1.0 / k for c in self.class_weights}
        return {c: cw / tot for c, cw in self.class_weights.items()}

    @property
    def n_leaves(self) -> int:
        if self.is_leaf:
            return 1
        return self.left.n_leaves + self.right.n_leaves

    def collapse(self) -> None:
        """Turn the node into a leaf, dropping its subtree."""
        self.split = None
        self.left = None
        self.right = None

    def leaves(self) -> Iterator["Node"]:
        if self.is_leaf:
            yield self
        else:
            yield from self.left.leaves()
            yield from self.right.leaves()

    def subtree_risk(self) -> float:
        return float(sum(leaf.risk for leaf in self.leaves()))

    # ----------------------------- serialization -----------------------------

    def to_dict(self) -> dict:
        out = {
            "id": self.node_id, "depth": self.depth,
            "n_samples": float(self.n_samples), "n_obs": int(self.n_obs),
            "risk": float(self.risk), "value": _plain(self.value),
            "complexity": float(self.complexity),
        }
        if self.class_weights is not None:
            out["class_weights"] = [[_plain(c), float(cw)] for c, cw in self.class_weights.items()]
        if self.split is not None:
            s = self.split
            out["split"] = {
                "feature": s.feature, "kind": s.kind, "improvement": float(s.improvement),
                "left_weight": float(s.left_weight), "right_weight": float(s.right_weight),
                "threshold": s.threshold,
                "categories": None if s.categories is None else [_plain(c) for c in s.categories],
            }
            out["left"] = self.left.to_dict()
            out["right"] = self.right.to_dict()
        return out

    @classmethod
    def from_dict(cls, d: Mapping) -> "Node":
        node = cls(node_id=int(d["id"]), depth=int(d["depth"]), n_samples=float(d["n_samples"]),
                   n_obs=int(d["n_obs"]), risk=float(d["risk"]), value=d["value"],
                   complexity=float(d.get("complexity", 0.0)))
        if d.get("class_weights") is not None:
            node.class_weights = {c: float(cw) for c, cw in d["class_weights"]}
        s = d.get("split")
        if s is not None:
            cats = s.get("categories")
            node.split = Split(s["feature"], s["kind"], float(s["improvement"]),
                               float(s["left_weight"]), float(s["right_weight"]),
                               threshold=s.get("threshold"),
                               categories=None if cats is None else frozenset(cats))
            node.left = cls.from_dict(d["left"])
            node.right = cls.from_dict(d["right"])
        return node


# -----------------------------------------------------------------------------
# Tree model
# -----------------------------------------------------------------------------
class TreeModel:
    """A fitted regression or classification tree.

    Instances are produced by :class:`rptree.builder.NodeBuilder` and by
    :func:`rptree.pruning.prune`; they are not modified after construction.

    Parameters
    ----------
    root : Node
        Root of the tree.
    schema : dict
        Feature name -> ``"numeric"``/``"categorical"`` used for fitting.
    method : {"regression", "classification"}
    classes : sequence, optional
        Class labels in code order (classification).
    criterion : str, default="gini"
    missing : {"error", "majority", "left", "right"}, default="error"
        Routing policy for missing split values.
    config : StoppingConfig, optional
        Stopping rules the tree was grown with.
    target_name : str, default="y"
    """

    def __init__(self, root: Node, *, schema: Mapping[str, str], method: str,
                 classes=None, criterion: str = "gini", missing: str = "error",
                 config: StoppingConfig | None = None, target_name: str = "y"):
        self.root = root
        self.schema = dict(schema)
        self.method = method
        self.classes = None if classes is None else list(classes)
        self.criterion = criterion
        self.missing = missing
        self.config = config
        self.target_name = target_name
        # set by rptree.estimator; not serialized
        self.cptable = None

    # ----------------------------- structure -----------------------------

    @property
    def feature_names(self) -> list[str]:
        return list(self.schema)

    @property
    def n_leaves(self) -> int:
        return self.root.n_leaves

    @property
    def n_nodes(self) -> int:
        return sum(1 for _ in self.traverse())

    @property
    def depth(self) -> int:
        return max(node.depth for node in self.traverse())

    def traverse(self) -> Iterator[Node]:
        """Yield nodes in pre-order (node, then left subtree, then right)."""
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            if not node.is_leaf:
                stack.append(node.right)
                stack.append(node.left)

    def node_summaries(self) -> list[dict]:
        """Pre-order list of per-node facts for rendering.

        Each entry holds ``node_id``, ``depth``, ``is_leaf``, ``condition``
        (the rule that leads into the node, ``"root"`` for the root),
        ``split`` (the node's own rule or ``None``), ``prediction``,
        ``probabilities`` (classification), ``n_samples`` and ``percent`` of
        the root's weight.
        """
        total = self.root.n_samples or 1.0
        conditions = {self.root.node_id: "root"}
        out = []
        for node in self.traverse():
            if not node.is_leaf:
                conditions[node.left.node_id] = node.split.describe(left=True)
                conditions[node.right.node_id] = node.split.describe(left=False)
            out.append({
                "node_id": node.node_id,
                "depth": node.depth,
                "is_leaf": node.is_leaf,
                "condition": conditions[node.node_id],
                "split": None if node.is_leaf else node.split.describe(left=True),
                "prediction": node.value,
                "probabilities": node.probabilities,
                "n_samples": node.n_samples,
                "percent": 100.0 * node.n_samples / total,
            })
        return out

    def variable_importance(self) -> dict[str, float]:
        """Sum of split improvements per feature, in schema order."""
        imp = {name: 0.0 for name in self.schema}
        for node in self.traverse():
            if not node.is_leaf:
                imp[node.split.feature] += node.split.improvement
        return imp

    # ----------------------------- prediction -----------------------------

    def leaf_for(self, observation: Mapping[str, Any]) -> Node:
        node = self.root
        while not node.is_leaf:
            node = route(node, observation.get(node.split.feature), self.missing)
        return node

    def predict(self, observation: Mapping[str, Any]):
        """Predicted mean (regression) or class label (classification)."""
        return self.leaf_for(observation).value

    def predict_proba(self, observation: Mapping[str, Any]) -> np.ndarray:
        """Class probabilities in :attr:`classes` order."""
        if self.method != CLASSIFICATION:
            raise ValueError("predict_proba is only available for classification trees")
        probs = self.leaf_for(observation).probabilities
        return np.array([probs.get(c, 0.0) for c in self.classes], dtype=float)

    def _observations(self, data) -> Iterator[Mapping[str, Any]]:
        if isinstance(data, Dataset):
            yield from data.observations()
        elif isinstance(data, pd.DataFrame):
            for _, row in data.iterrows():
                yield row
        elif isinstance(data, Mapping):
            yield data
        else:
            yield from data

    def predict_many(self, data) -> np.ndarray:
        """Predict every row of a Dataset, DataFrame or iterable of mappings."""
        preds = [self.predict(obs) for obs in self._observations(data)]
        if self.method == REGRESSION:
            return np.asarray(preds, dtype=float)
        out = np.empty(len(preds), dtype=object)
        out[:] = preds
        return out

    def apply(self, data) -> np.ndarray:
        """Leaf node id reached by each row."""
        return np.array([self.leaf_for(obs).node_id for obs in self._observations(data)], dtype=int)

    # ----------------------------- rules / text -----------------------------

    def _label(self, node: Node) -> str:
        if self.method == REGRESSION:
            return f"value={node.value:.6g}"
        return f"class={node.value}"

    def export_rules(self) -> list[str]:
        """One ``"<antecedent> => <prediction> (N=<weight>)"`` string per leaf."""
        rules: list[str] = []

        def collect(node, parts):
            if node.is_leaf:
                body = " AND ".join(parts) if parts else "<root>"
                rules.append(f"{body} => {self._label(node)} (N={node.n_samples:.2f})")
                return
            collect(node.left, parts + [node.split.describe(left=True)])
            collect(node.right, parts + [node.split.describe(left=False)])

        collect(self.root, [])
        return rules

    def predict_rule(self, observation: Mapping[str, Any]) -> str:
        """The antecedent of the rule that ``observation`` satisfies."""
        parts = []
        node = self.root
        while not node.is_leaf:
            child = route(node, observation.get(node.split.feature), self.missing)
            parts.append(node.split.describe(left=child is node.left))
            node = child
        return " AND ".join(parts) if parts else "<root>"

    def format_tree(self) -> str:
        """Indented listing with node ids; ``*`` marks leaves."""
        if self.method == REGRESSION:
            header = "node), split, n, deviance, yval"
        else:
            header = "node), split, n, loss, yval, (yprob)"
        lines = [f"n= {self.root.n_obs}", "", header, "      * denotes terminal node", ""]
        for s, node in zip(self.node_summaries(), self.traverse()):
            indent = "  " * s["depth"]
            star = " *" if node.is_leaf else ""
            if self.method == REGRESSION:
                stats = f"{node.n_samples:.6g} {node.risk:.6g} {node.value:.6g}"
            else:
                loss = node.n_samples - node.class_weights.get(node.value, 0.0)
                probs = " ".join(f"{p:.4f}" for p in node.probabilities.values())
                stats = f"{node.n_samples:.6g} {loss:.6g} {node.value} ({probs})"
            lines.append(f"{indent}{node.node_id}) {s['condition']} {stats}{star}")
        return "\n".join(lines)

    def print_tree(self) -> None:
        print(self.format_tree())

    def export_graphviz(self, filename: str | None = None, *, format: str = "png") -> str:
        """
        Export the tree structure in Graphviz format.

        Parameters
        ----------
        filename : str or None, default=None
            Basename of the output file.  If None, the DOT source is returned
            and nothing is written.
        format : str, default="png"
            Graphviz output format.  ``'dot'`` writes the DOT source without
            calling the external ``dot`` binary; other formats fall back to a
            ``.dot`` file when rendering fails.

        Returns
        -------
        str
            Path to the written file, or the DOT source if filename is None.
        """
        try:
            import graphviz
        except ImportError:
            raise RuntimeError("Graphviz is required for export_graphviz but not installed.")
        dot = graphviz.Digraph(comment="rptree", format=format)
        for s, node in zip(self.node_summaries(), self.traverse()):
            name = str(node.node_id)
            head = f"{self._label(node)}\n{s['percent']:.0f}%"
            if node.is_leaf:
                dot.node(name, head, shape="box", style="filled", color="lightgrey")
            else:
                dot.node(name, f"{head}\n{s['split']}", shape="ellipse", style="filled",
                         color="lightblue")
                dot.edge(name, str(node.left.node_id), label="True")
                dot.edge(name, str(node.right.node_id), label="False")

        if filename is None:
            return dot.source
        return _write_dot(dot, filename, format)

    # ----------------------------- serialization -----------------------------

    def to_dict(self) -> dict:
        cfg = self.config
        return {
            "method": self.method,
            "criterion": self.criterion,
            "missing": self.missing,
            "target_name": self.target_name,
            "schema": dict(self.schema),
            "classes": None if self.classes is None else [_plain(c) for c in self.classes],
            "config": None if cfg is None else {
                "max_depth": cfg.max_depth, "min_split": cfg.min_split,
                "min_bucket": cfg.min_bucket, "cp": cfg.cp,
            },
            "root": self.root.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: Mapping) -> "TreeModel":
        cfg = d.get("config")
        return cls(Node.from_dict(d["root"]), schema=d["schema"], method=d["method"],
                   classes=d.get("classes"), criterion=d.get("criterion", "gini"),
                   missing=d.get("missing", "error"),
                   config=None if cfg is None else StoppingConfig(**cfg),
                   target_name=d.get("target_name", "y"))

    def to_json(self, **kwargs) -> str:
        return json.dumps(self.to_dict(), **kwargs)

    @classmethod
    def from_json(cls, text: str) -> "TreeModel":
        return cls.from_dict(json.loads(text))

    def __repr__(self) -> str:
        return (f"TreeModel(method={self.method!r}, n_leaves={self.n_leaves}, "
                f"depth={self.depth}, features={self.feature_names})")
