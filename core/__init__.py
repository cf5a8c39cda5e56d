"""
LINEAGE CORE - Central exports for the graph engine.

This module provides access to:
- Vocabulary and record types (ontology, schemas)
- The read-only Catalog and the RelationshipResolver
- The HistoryManager and the state codec

The GraphStore lives in core.graph_store and is imported from there; it
depends on the infrastructure package.
"""

from core.ontology import (
    ObjectType,
    NodeState,
    EdgeState,
    Direction,
    ReferenceSource,
    UnresolvedReferencePolicy,
    LayoutDirection,
)
from core.schemas import (
    CatalogNode,
    CatalogEdge,
    ColumnLineage,
    NodeMetadata,
    GraphNode,
    GraphEdge,
    GraphState,
    Position,
    Viewport,
    FilterCriteria,
    FilterOptions,
    QualityRange,
    clone_state,
)
from core.exceptions import (
    GraphError,
    NodeNotFoundError,
    CatalogError,
    PersistenceError,
    StateDecodeError,
    ConfigError,
)
from core.catalog import Catalog
from core.resolver import RelationshipResolver
from core.history import HistoryManager
from core.codec import encode_state, decode_state, build_share_url, state_from_url

__all__ = [
    "ObjectType",
    "NodeState",
    "EdgeState",
    "Direction",
    "ReferenceSource",
    "UnresolvedReferencePolicy",
    "LayoutDirection",
    "CatalogNode",
    "CatalogEdge",
    "ColumnLineage",
    "NodeMetadata",
    "GraphNode",
    "GraphEdge",
    "GraphState",
    "Position",
    "Viewport",
    "FilterCriteria",
    "FilterOptions",
    "QualityRange",
    "clone_state",
    "GraphError",
    "NodeNotFoundError",
    "CatalogError",
    "PersistenceError",
    "StateDecodeError",
    "ConfigError",
    "Catalog",
    "RelationshipResolver",
    "HistoryManager",
    "encode_state",
    "decode_state",
    "build_share_url",
    "state_from_url",
]
