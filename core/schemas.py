"""
LINEAGE SCHEMAS - The Grammar of the Graph

If ontology.py is the Dictionary (defining the words we can use),
schemas.py is the Grammar (defining how we structure records).

This module defines the data structures that flow through the engine:
- Catalog records: CatalogNode, CatalogEdge (read-only universe)
- Live graph records: GraphNode, GraphEdge, GraphState
- Filter records: FilterCriteria, FilterOptions
- Result records returned by the resolver and the store

Design Principles:
1. STRICT TYPING: msgspec.Struct, decoded by field type (sets stay sets)
2. KW_ONLY: Enforce keyword arguments to prevent positional mix-ups
3. VALUE SEMANTICS: get_state() hands out clones, never live references
"""
import msgspec
from typing import Optional, Dict, Any, List, Set
from datetime import datetime, timezone
import uuid

from core.ontology import (
    ObjectType,
    NodeState,
    EdgeState,
    Direction,
    ReferenceSource,
    Freshness,
    CertificationStatus,
)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def now_utc() -> str:
    """Fast UTC timestamp as ISO8601 string."""
    return datetime.now(timezone.utc).isoformat()


def generate_id() -> str:
    """Generate a new UUID hex string."""
    return uuid.uuid4().hex


# =============================================================================
# GEOMETRY
# =============================================================================

class Position(msgspec.Struct, kw_only=True):
    x: float = 0.0
    y: float = 0.0

    def __post_init__(self):
        # Coordinates are always floats
        self.x = float(self.x)
        self.y = float(self.y)


class Viewport(msgspec.Struct, kw_only=True):
    x: float = 0.0
    y: float = 0.0
    zoom: float = 1.0

    def __post_init__(self):
        self.x = float(self.x)
        self.y = float(self.y)
        self.zoom = float(self.zoom)


# =============================================================================
# NODE METADATA
# =============================================================================

class ColumnLineage(msgspec.Struct, kw_only=True):
    """
    Column-level lineage for one column of a node.

    Column references are fully qualified: DATABASE.SCHEMA.TABLE.COLUMN
    """
    upstream_columns: List[str] = msgspec.field(default_factory=list)
    downstream_columns: List[str] = msgspec.field(default_factory=list)
    transformation_type: Optional[str] = None
    data_quality: Optional[str] = None


class NodeMetadata(msgspec.Struct, kw_only=True):
    """
    Governance and relationship metadata embedded in every node.

    upstream_references / downstream_references hold textual references
    (id, fully-qualified name or label) resolved against the catalog.
    The group fields are only populated on synthetic GROUP nodes.
    """
    quality_score: Optional[float] = None
    freshness: Optional[Freshness] = None
    certification: Optional[CertificationStatus] = None
    tags: List[str] = msgspec.field(default_factory=list)
    description: Optional[str] = None
    owner: Optional[str] = None
    row_count: Optional[int] = None
    last_refreshed: Optional[str] = None

    # Relationship hints
    upstream_references: List[str] = msgspec.field(default_factory=list)
    downstream_references: List[str] = msgspec.field(default_factory=list)
    column_lineage: Dict[str, ColumnLineage] = msgspec.field(default_factory=dict)
    unresolved_references: List[str] = msgspec.field(default_factory=list)

    # Group node bookkeeping
    parent_id: Optional[str] = None
    direction: Optional[Direction] = None
    member_ids: List[str] = msgspec.field(default_factory=list)

    extra: Dict[str, Any] = msgspec.field(default_factory=dict)


# =============================================================================
# CATALOG RECORDS
# =============================================================================

class CatalogNode(msgspec.Struct, kw_only=True):
    """An object known to the catalog (may or may not be in the graph)."""
    id: str
    label: str
    name: str = ""                  # Fully-qualified DATABASE.SCHEMA.LABEL
    object_type: ObjectType = ObjectType.TABLE
    database: Optional[str] = None
    schema: Optional[str] = None
    metadata: NodeMetadata = msgspec.field(default_factory=NodeMetadata)


class CatalogEdge(msgspec.Struct, kw_only=True):
    """A static edge from the catalog. Relation is free-form."""
    id: str
    source: str
    target: str
    relation: str = "depends_on"


# =============================================================================
# LIVE GRAPH RECORDS
# =============================================================================

class GraphNode(msgspec.Struct, kw_only=True):
    """
    A node that lives in the graph.

    upstream_ids / downstream_ids are a derived cache of the resolver's
    direct neighbours; they are recomputed on insert, metadata update and
    explicit refresh.
    """
    id: str
    label: str
    name: str = ""
    object_type: ObjectType = ObjectType.TABLE
    database: Optional[str] = None
    schema: Optional[str] = None
    position: Position = msgspec.field(default_factory=Position)
    states: Set[NodeState] = msgspec.field(default_factory=set)
    upstream_ids: Set[str] = msgspec.field(default_factory=set)
    downstream_ids: Set[str] = msgspec.field(default_factory=set)
    metadata: NodeMetadata = msgspec.field(default_factory=NodeMetadata)

    @classmethod
    def from_catalog(cls, node: CatalogNode, position: Optional[Position] = None) -> "GraphNode":
        """Build a live node from a catalog record (metadata is copied)."""
        return cls(
            id=node.id,
            label=node.label,
            name=node.name,
            object_type=node.object_type,
            database=node.database,
            schema=node.schema,
            position=position if position is not None else Position(),
            metadata=msgspec.convert(msgspec.to_builtins(node.metadata), NodeMetadata),
        )

    @property
    def is_group(self) -> bool:
        return NodeState.GROUP_NODE in self.states


class GraphEdge(msgspec.Struct, kw_only=True):
    id: str
    source: str
    target: str
    relation: str = "depends_on"
    states: Set[EdgeState] = msgspec.field(default_factory=set)
    metadata: Dict[str, Any] = msgspec.field(default_factory=dict)

    @classmethod
    def from_catalog(cls, edge: CatalogEdge) -> "GraphEdge":
        return cls(id=edge.id, source=edge.source, target=edge.target, relation=edge.relation)


class GraphMetadata(msgspec.Struct, kw_only=True):
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    version: str = "1.0.0"
    created_at: str = msgspec.field(default_factory=now_utc)
    last_modified: str = msgspec.field(default_factory=now_utc)


class ExpansionRecord(msgspec.Struct, kw_only=True):
    """Ids claimed by one (pivot, direction) expansion."""
    node_ids: Set[str] = msgspec.field(default_factory=set)
    edge_ids: Set[str] = msgspec.field(default_factory=set)


# =============================================================================
# FILTERS
# =============================================================================

class QualityRange(msgspec.Struct, kw_only=True):
    min: float = 0.0
    max: float = 100.0


class FilterCriteria(msgspec.Struct, kw_only=True):
    """Conjunctive filter predicates. Absent or empty = no constraint."""
    search_query: Optional[str] = None
    node_types: List[ObjectType] = msgspec.field(default_factory=list)
    schemas: List[str] = msgspec.field(default_factory=list)
    databases: List[str] = msgspec.field(default_factory=list)
    quality_range: Optional[QualityRange] = None


class FilterOptions(msgspec.Struct, kw_only=True):
    node_types: List[ObjectType] = msgspec.field(default_factory=list)
    schemas: List[str] = msgspec.field(default_factory=list)
    databases: List[str] = msgspec.field(default_factory=list)
    quality_range: QualityRange = msgspec.field(default_factory=QualityRange)


# =============================================================================
# GRAPH STATE
# =============================================================================

class GraphState(msgspec.Struct, kw_only=True):
    """
    The whole live graph plus view state.

    expansions maps pivot id -> direction value -> ExpansionRecord and is
    the provenance used by collapse.
    """
    nodes: Dict[str, GraphNode] = msgspec.field(default_factory=dict)
    edges: Dict[str, GraphEdge] = msgspec.field(default_factory=dict)
    metadata: GraphMetadata = msgspec.field(default_factory=GraphMetadata)
    viewport: Viewport = msgspec.field(default_factory=Viewport)
    selected_node_ids: Set[str] = msgspec.field(default_factory=set)
    selected_edge_ids: Set[str] = msgspec.field(default_factory=set)
    focused_node_id: Optional[str] = None
    focused_edge_id: Optional[str] = None
    filters: FilterCriteria = msgspec.field(default_factory=FilterCriteria)
    expansions: Dict[str, Dict[str, ExpansionRecord]] = msgspec.field(default_factory=dict)


def clone_state(state: GraphState) -> GraphState:
    """Deep, independent copy of a state (structurally equal)."""
    return msgspec.convert(msgspec.to_builtins(state), GraphState)


# =============================================================================
# RESULT RECORDS
# =============================================================================

class Neighbors(msgspec.Struct, kw_only=True):
    """One-hop neighbours of a node from the first matching source."""
    ids: List[str] = msgspec.field(default_factory=list)
    source: Optional[ReferenceSource] = None
    unresolved: List[str] = msgspec.field(default_factory=list)


class Discovery(msgspec.Struct, kw_only=True):
    """
    Transitive closure from a pivot.

    links are (source, target) pairs in lineage orientation (data flows
    from source to target) observed while traversing.
    """
    pivot: str
    direction: Direction
    source: Optional[ReferenceSource] = None
    node_ids: List[str] = msgspec.field(default_factory=list)
    links: List[List[str]] = msgspec.field(default_factory=list)


class ExpansionPlan(msgspec.Struct, kw_only=True):
    pivot: str
    direction: Direction
    source: Optional[ReferenceSource] = None
    transitive_ids: List[str] = msgspec.field(default_factory=list)
    nodes_to_add: List[str] = msgspec.field(default_factory=list)
    edges_to_add: List[CatalogEdge] = msgspec.field(default_factory=list)


class ExpansionResult(msgspec.Struct, kw_only=True):
    pivot: str
    direction: Direction
    added_node_ids: List[str] = msgspec.field(default_factory=list)
    added_edge_ids: List[str] = msgspec.field(default_factory=list)
    group_id: Optional[str] = None


class ExpansionState(msgspec.Struct, kw_only=True):
    upstream_expanded: bool = False
    downstream_expanded: bool = False
    has_upstream: bool = False
    has_downstream: bool = False
    has_visible_upstream: bool = False
    has_visible_downstream: bool = False
