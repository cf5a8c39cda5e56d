"""
Exception hierarchy for the lineage engine.

Lookups on absent ids are not errors (commands are no-ops); exceptions are
reserved for persistence and decoding failures, which always carry the
underlying cause via exception chaining.
"""
from typing import Optional


class GraphError(Exception):
    """Base exception for graph operations."""
    pass


class NodeNotFoundError(GraphError):
    """Raised when a catalog lookup requires a node that does not exist."""
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class CatalogError(GraphError):
    """Raised when a catalog document cannot be loaded."""
    pass


class PersistenceError(GraphError):
    """Raised when the state store cannot be read or written."""
    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message)


class StateDecodeError(PersistenceError):
    """Raised when a serialized graph state is malformed."""
    pass


class ConfigError(GraphError):
    """Raised when configuration values are invalid."""
    pass
