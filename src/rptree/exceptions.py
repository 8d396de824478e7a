"""
rptree.exceptions
=================

Error kinds raised while building datasets, fitting and querying trees.

All user-facing errors derive from :class:`RPTreeError` and also from
``ValueError`` so that code written against scikit-learn conventions keeps
working.  :class:`DegenerateSplitError` is the exception: it is an internal
signal raised by the split search and turned into a leaf by the builder.
"""
from __future__ import annotations


class RPTreeError(Exception):
    """Base class for every error raised by rptree."""


class SchemaMismatchError(RPTreeError, ValueError):
    """Raised when columns or observations disagree with the dataset schema.

    Attributes
    ----------
    missing : list[str]
        Schema features that have no matching column.
    unexpected : list[str]
        Columns that are not part of the schema.
    """

    def __init__(self, message: str, *, missing=None, unexpected=None):
        super().__init__(message)
        self.missing = list(missing or [])
        self.unexpected = list(unexpected or [])


class ConfigurationError(RPTreeError, ValueError):
    """Raised for an inconsistent stopping configuration or fit option."""


class InvalidDatasetError(RPTreeError, ValueError):
    """Raised for negative weights or missing targets in a training set."""


class MissingFeatureError(RPTreeError, ValueError):
    """Raised when a split feature is missing and no fallback policy is set.

    Attributes
    ----------
    feature : str
        Name of the feature whose value was missing.
    node_id : int or None
        Id of the node that needed the value.
    """

    def __init__(self, feature: str, node_id: int | None = None):
        where = f" at node {node_id}" if node_id is not None else ""
        super().__init__(
            f"Missing value for feature {feature!r}{where}; "
            "set missing='majority', 'left' or 'right' to route it"
        )
        self.feature = feature
        self.node_id = node_id


class DegenerateSplitError(RPTreeError):
    """No feature yields a valid split for the current node."""
