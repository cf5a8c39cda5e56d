"""
LINEAGE VISUALIZATION CORE - The Canvas Data Model

This module bridges the engine's GraphState with what a renderer needs,
without computing any geometry itself.

Architecture:
- VizNode/VizEdge: Lightweight render-focused representations
- GraphSnapshot: Full visible graph for an initial render
- GraphDelta: Difference between two states for incremental updates
- MutationEvent: Individual graph mutation for the mutation log
- LayoutRequest: Input handed to an external layout oracle; positions
  flow back through the store

Performance:
- Uses polars for Arrow IPC / Parquet serialization
- Colors are resolved here so renderers stay dumb
"""
import io
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple, Union

import msgspec
import polars as pl

from core.ontology import EdgeState, LayoutDirection, NodeState, ObjectType
from core.schemas import GraphEdge, GraphNode, GraphState, Position, now_utc

if TYPE_CHECKING:
    from core.graph_store import GraphStore


# =============================================================================
# COLOR PALETTES (Consistent across views)
# =============================================================================

NODE_COLORS: Dict[str, str] = {
    ObjectType.TABLE.value: "#2A9D8F",          # Teal
    ObjectType.VIEW.value: "#457B9D",           # Medium blue
    ObjectType.STAGE.value: "#F4A261",          # Orange
    ObjectType.DATASET.value: "#A8DADC",        # Light blue
    ObjectType.MODEL.value: "#9B59B6",          # Purple
    ObjectType.EXTERNAL.value: "#E63946",       # Red
    ObjectType.GROUP.value: "#ADB5BD",          # Light gray
    ObjectType.DOCUMENTATION.value: "#264653",  # Dark blue
    ObjectType.STICKY_NOTE.value: "#FFC107",    # Amber
    ObjectType.EMPTY_CARD.value: "#DEE2E6",
    "default": "#6C757D",
}

EDGE_COLORS: Dict[str, str] = {
    "depends_on": "#ADB5BD",
    "feeds_into": "#2A9D8F",
    "group": "#DEE2E6",
    "default": "#6C757D",
}

HIGHLIGHT_COLORS: Dict[str, str] = {
    "selected": "#3498DB",
    "focused": "#E83E8C",
}

DEFAULT_NODE_WIDTH = 400.0
DEFAULT_NODE_HEIGHT = 160.0


# =============================================================================
# MUTATION TYPES (For event logging)
# =============================================================================

class MutationType(str, Enum):
    """Types of graph mutations for event tracking."""
    NODE_CREATED = "NODE_CREATED"
    NODE_UPDATED = "NODE_UPDATED"
    NODE_DELETED = "NODE_DELETED"
    EDGE_CREATED = "EDGE_CREATED"
    EDGE_UPDATED = "EDGE_UPDATED"
    EDGE_DELETED = "EDGE_DELETED"
    EXPANDED = "EXPANDED"
    COLLAPSED = "COLLAPSED"
    SELECTION_CHANGED = "SELECTION_CHANGED"
    FOCUS_CHANGED = "FOCUS_CHANGED"
    FILTERS_CHANGED = "FILTERS_CHANGED"
    VIEWPORT_CHANGED = "VIEWPORT_CHANGED"
    STATE_REPLACED = "STATE_REPLACED"
    STATE_SAVED = "STATE_SAVED"


class MutationEvent(msgspec.Struct, kw_only=True):
    """Individual mutation event, buffered and optionally written to disk."""
    timestamp: str
    sequence: int
    mutation_type: str                  # MutationType value
    node_id: Optional[str] = None
    node_type: Optional[str] = None

    # Source/target for edges
    edge_id: Optional[str] = None
    source_id: Optional[str] = None
    target_id: Optional[str] = None
    relation: Optional[str] = None

    # Expansion / bulk events
    direction: Optional[str] = None
    node_ids: List[str] = msgspec.field(default_factory=list)
    detail: Optional[str] = None


# =============================================================================
# VISUALIZATION DATA STRUCTURES
# =============================================================================

class VizNode(msgspec.Struct, kw_only=True):
    """
    Lightweight node representation for rendering.
    """
    id: str
    type: str
    label: str
    name: str
    color: str
    x: float = 0.0
    y: float = 0.0
    width: float = DEFAULT_NODE_WIDTH
    height: float = DEFAULT_NODE_HEIGHT
    selected: bool = False
    focused: bool = False
    is_group: bool = False
    expanded_upstream: bool = False
    expanded_downstream: bool = False
    has_upstream: bool = False
    has_downstream: bool = False
    quality_score: Optional[float] = None

    @classmethod
    def from_graph_node(cls, node: GraphNode) -> "VizNode":
        states = node.states
        if NodeState.FOCUSED in states:
            color = HIGHLIGHT_COLORS["focused"]
        elif NodeState.SELECTED in states:
            color = HIGHLIGHT_COLORS["selected"]
        else:
            color = NODE_COLORS.get(node.object_type.value, NODE_COLORS["default"])

        return cls(
            id=node.id,
            type=node.object_type.value,
            label=node.label,
            name=node.name,
            color=color,
            x=node.position.x,
            y=node.position.y,
            selected=NodeState.SELECTED in states,
            focused=NodeState.FOCUSED in states,
            is_group=NodeState.GROUP_NODE in states,
            expanded_upstream=NodeState.EXPANDED_UPSTREAM in states,
            expanded_downstream=NodeState.EXPANDED_DOWNSTREAM in states,
            has_upstream=bool(node.upstream_ids),
            has_downstream=bool(node.downstream_ids),
            quality_score=node.metadata.quality_score,
        )


class VizEdge(msgspec.Struct, kw_only=True):
    id: str
    source: str
    target: str
    relation: str
    color: str
    selected: bool = False

    @classmethod
    def from_graph_edge(cls, edge: GraphEdge) -> "VizEdge":
        if EdgeState.SELECTED in edge.states or EdgeState.FOCUSED in edge.states:
            color = HIGHLIGHT_COLORS["selected"]
        else:
            color = EDGE_COLORS.get(edge.relation, EDGE_COLORS["default"])
        return cls(
            id=edge.id,
            source=edge.source,
            target=edge.target,
            relation=edge.relation,
            color=color,
            selected=EdgeState.SELECTED in edge.states,
        )


class GraphSnapshot(msgspec.Struct, kw_only=True):
    """
    Complete visible graph for an initial render.
    """
    timestamp: str
    node_count: int
    edge_count: int
    nodes: List[VizNode]
    edges: List[VizEdge]
    label: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return msgspec.to_builtins(self)


class GraphDelta(msgspec.Struct, kw_only=True):
    """
    Incremental update between two states.
    """
    timestamp: str
    sequence: int = 0

    nodes_added: List[VizNode] = msgspec.field(default_factory=list)
    nodes_updated: List[VizNode] = msgspec.field(default_factory=list)
    nodes_removed: List[str] = msgspec.field(default_factory=list)
    edges_added: List[VizEdge] = msgspec.field(default_factory=list)
    edges_removed: List[str] = msgspec.field(default_factory=list)

    def is_empty(self) -> bool:
        """Check if delta contains any changes."""
        return (
            not self.nodes_added and
            not self.nodes_updated and
            not self.nodes_removed and
            not self.edges_added and
            not self.edges_removed
        )


def _is_hidden_node(node: GraphNode) -> bool:
    return NodeState.HIDDEN in node.states


def _is_hidden_edge(edge: GraphEdge) -> bool:
    return EdgeState.HIDDEN in edge.states


def create_snapshot(state: GraphState, include_hidden: bool = False, label: str = "") -> GraphSnapshot:
    """
    Build a render snapshot from a graph state.

    Edges touching a hidden node are left out along with the node.
    """
    nodes = [
        VizNode.from_graph_node(n)
        for n in state.nodes.values()
        if include_hidden or not _is_hidden_node(n)
    ]
    shown = {n.id for n in nodes}
    edges = [
        VizEdge.from_graph_edge(e)
        for e in state.edges.values()
        if (include_hidden or not _is_hidden_edge(e))
        and e.source in shown and e.target in shown
    ]
    return GraphSnapshot(
        timestamp=now_utc(),
        node_count=len(nodes),
        edge_count=len(edges),
        nodes=nodes,
        edges=edges,
        label=label,
    )


def diff_states(before: GraphState, after: GraphState, sequence: int = 0) -> GraphDelta:
    """
    Compute what changed between two states.

    A node counts as updated when its render representation differs.
    """
    delta = GraphDelta(timestamp=now_utc(), sequence=sequence)

    for node_id, node in after.nodes.items():
        viz = VizNode.from_graph_node(node)
        previous = before.nodes.get(node_id)
        if previous is None:
            delta.nodes_added.append(viz)
        elif VizNode.from_graph_node(previous) != viz:
            delta.nodes_updated.append(viz)
    delta.nodes_removed = [n for n in before.nodes if n not in after.nodes]

    delta.edges_added = [
        VizEdge.from_graph_edge(e) for eid, e in after.edges.items() if eid not in before.edges
    ]
    delta.edges_removed = [e for e in before.edges if e not in after.edges]
    return delta


# =============================================================================
# LAYOUT ORACLE PLUMBING
# =============================================================================

class LayoutNode(msgspec.Struct, kw_only=True):
    id: str
    width: float = DEFAULT_NODE_WIDTH
    height: float = DEFAULT_NODE_HEIGHT


class LayoutEdge(msgspec.Struct, kw_only=True):
    id: str
    source: str
    target: str


class LayoutRequest(msgspec.Struct, kw_only=True):
    """Ordered nodes and edges for an external layered layout engine."""
    direction: LayoutDirection = LayoutDirection.RIGHT
    nodes: List[LayoutNode] = msgspec.field(default_factory=list)
    edges: List[LayoutEdge] = msgspec.field(default_factory=list)


def build_layout_request(
    state: GraphState,
    direction: LayoutDirection = LayoutDirection.RIGHT,
    sizes: Optional[Mapping[str, Tuple[float, float]]] = None,
) -> LayoutRequest:
    """
    Describe the visible graph for a layout engine.

    Args:
        state: Graph to lay out
        direction: Flow direction
        sizes: Optional measured (width, height) per node id; missing nodes
               use the default card size
    """
    sizes = sizes or {}
    nodes = []
    for node in state.nodes.values():
        if _is_hidden_node(node):
            continue
        width, height = sizes.get(node.id, (DEFAULT_NODE_WIDTH, DEFAULT_NODE_HEIGHT))
        nodes.append(LayoutNode(id=node.id, width=width, height=height))
    shown = {n.id for n in nodes}
    edges = [
        LayoutEdge(id=e.id, source=e.source, target=e.target)
        for e in state.edges.values()
        if e.source in shown and e.target in shown
    ]
    return LayoutRequest(direction=direction, nodes=nodes, edges=edges)


def apply_layout(
    store: "GraphStore",
    positions: Mapping[str, Union[Position, Tuple[float, float]]],
) -> int:
    """
    Write layout results back through the store as one mutation.

    Returns:
        Number of nodes moved
    """
    resolved = {
        node_id: pos if isinstance(pos, Position) else Position(x=pos[0], y=pos[1])
        for node_id, pos in positions.items()
    }
    return store.update_node_positions(resolved)


# =============================================================================
# ARROW / PARQUET EXPORT
# =============================================================================

def nodes_frame(snapshot: GraphSnapshot) -> pl.DataFrame:
    return pl.DataFrame(
        {
            "id": [n.id for n in snapshot.nodes],
            "type": [n.type for n in snapshot.nodes],
            "label": [n.label for n in snapshot.nodes],
            "name": [n.name for n in snapshot.nodes],
            "color": [n.color for n in snapshot.nodes],
            "x": [n.x for n in snapshot.nodes],
            "y": [n.y for n in snapshot.nodes],
            "is_group": [n.is_group for n in snapshot.nodes],
            "quality_score": [n.quality_score for n in snapshot.nodes],
        },
        schema={
            "id": pl.Utf8,
            "type": pl.Utf8,
            "label": pl.Utf8,
            "name": pl.Utf8,
            "color": pl.Utf8,
            "x": pl.Float64,
            "y": pl.Float64,
            "is_group": pl.Boolean,
            "quality_score": pl.Float64,
        },
    )


def edges_frame(snapshot: GraphSnapshot) -> pl.DataFrame:
    return pl.DataFrame(
        {
            "id": [e.id for e in snapshot.edges],
            "source": [e.source for e in snapshot.edges],
            "target": [e.target for e in snapshot.edges],
            "relation": [e.relation for e in snapshot.edges],
            "color": [e.color for e in snapshot.edges],
        },
        schema={
            "id": pl.Utf8,
            "source": pl.Utf8,
            "target": pl.Utf8,
            "relation": pl.Utf8,
            "color": pl.Utf8,
        },
    )


def serialize_to_arrow(snapshot: GraphSnapshot) -> Tuple[bytes, bytes]:
    """
    Serialize a snapshot to Apache Arrow IPC format.

    Returns:
        Tuple of (nodes_arrow_bytes, edges_arrow_bytes)
    """
    nodes_buffer = io.BytesIO()
    edges_buffer = io.BytesIO()
    nodes_frame(snapshot).write_ipc(nodes_buffer)
    edges_frame(snapshot).write_ipc(edges_buffer)
    return nodes_buffer.getvalue(), edges_buffer.getvalue()


def write_parquet(snapshot: GraphSnapshot, directory: Union[str, Path]) -> Tuple[Path, Path]:
    """Write nodes.parquet and edges.parquet into directory."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    nodes_path = directory / "nodes.parquet"
    edges_path = directory / "edges.parquet"
    nodes_frame(snapshot).write_parquet(nodes_path)
    edges_frame(snapshot).write_parquet(edges_path)
    return nodes_path, edges_path
