# rptree/__init__.py
"""
rptree: recursive-partitioning decision trees with cost-complexity pruning.

Exports:
    - rpart, RPartClassifier, RPartRegressor
    - Dataset, StoppingConfig, NodeBuilder, TreeModel
    - prune, cp_table, cross_validated_cp_table
"""
from .builder import NodeBuilder
from .config import StoppingConfig
from .dataset import Dataset, aggregate_observations, load_table, parse_formula
from .estimator import RPartClassifier, RPartRegressor, rpart
from .exceptions import (ConfigurationError, DegenerateSplitError, InvalidDatasetError,
                         MissingFeatureError, RPTreeError, SchemaMismatchError)
from .pruning import CpRow, cp_table, cross_validated_cp_table, prune, select_cp
from .splitter import Split, SplitEvaluator
from .tree import Node, TreeModel

__all__ = [
    "rpart", "RPartClassifier", "RPartRegressor",
    "Dataset", "aggregate_observations", "load_table", "parse_formula",
    "StoppingConfig", "NodeBuilder", "Split", "SplitEvaluator", "Node", "TreeModel",
    "prune", "cp_table", "cross_validated_cp_table", "select_cp", "CpRow",
    "RPTreeError", "SchemaMismatchError", "ConfigurationError", "InvalidDatasetError",
    "MissingFeatureError", "DegenerateSplitError",
]
__version__ = "0.1.0"
