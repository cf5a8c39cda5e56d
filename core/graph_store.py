"""
LINEAGE GRAPH STORE - The authoritative in-memory graph

This is the centre of the engine. It owns the live GraphState and is the
only thing that mutates it. Everything else reads values handed out by
get_state() or reacts to mutation events.

Architecture:
  Catalog (read-only universe)
      |
  RelationshipResolver  -- who is upstream / downstream of whom
      |
  GraphStore (this file)
      - nodes / edges / view state in a GraphState struct
      - expansion provenance: pivot -> direction -> ExpansionRecord
      - HistoryManager snapshots after structural commands
      - MutationLogger events for every mutation
      - StatePersistence for save / load

Invariants kept by every command:
- an edge never outlives either endpoint
- selection and focus only name present ids
- upstream_ids / downstream_ids equal the resolver's direct neighbours
- collapse removes only what expansions introduced and nothing another
  active expansion still claims

Operations on absent ids are no-ops. Single-threaded by contract.
"""
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

import msgspec

from core.catalog import Catalog
from core.codec import build_share_url, decode_state, encode_state, state_from_url
from core.exceptions import StateDecodeError
from core.history import HistoryManager
from core.ontology import (
    Direction,
    EdgeState,
    NodeState,
    ObjectType,
    UnresolvedReferencePolicy,
)
from core.resolver import RelationshipResolver
from core.schemas import (
    CatalogEdge,
    CatalogNode,
    ExpansionRecord,
    ExpansionResult,
    ExpansionState,
    FilterCriteria,
    FilterOptions,
    GraphEdge,
    GraphNode,
    GraphState,
    NodeMetadata,
    Position,
    QualityRange,
    Viewport,
    clone_state,
    now_utc,
)
from infrastructure.config import EngineConfig
from infrastructure.logger import MutationLogger
from infrastructure.state_store import SavedStateInfo, StatePersistence

logger = logging.getLogger(__name__)

GROUP_RELATION = "group"


def _copy(value, type_):
    return msgspec.convert(msgspec.to_builtins(value), type_)


class GraphStore:
    """
    Stateful lineage graph with dynamic expansion.

    Usage:
        catalog = Catalog.load("catalog.json")
        store = GraphStore(catalog)

        store.add_node_by_id("orders")
        store.expand_upstream("orders")
        store.collapse_upstream("orders")
        store.undo()

        text = store.export_state_as_json()

    Thread Safety:
        NOT thread-safe. Callers serialize access.
    """

    def __init__(
        self,
        catalog: Catalog,
        resolver: Optional[RelationshipResolver] = None,
        *,
        config: Optional[EngineConfig] = None,
        history: Optional[HistoryManager] = None,
        persistence: Optional[StatePersistence] = None,
        mutation_logger: Optional[MutationLogger] = None,
        initial_state: Optional[GraphState] = None,
    ):
        """
        Args:
            catalog: Read-only universe of objects and static edges
            resolver: Relationship resolver (built from catalog if omitted)
            config: Engine configuration (defaults if omitted)
            history: Undo/redo manager; created from config when omitted
                     unless config.record_history is False
            persistence: Saved-state storage (in-memory if omitted)
            mutation_logger: Event sink and observer channel
            initial_state: Starting state (copied)
        """
        self.catalog = catalog
        self.resolver = resolver if resolver is not None else RelationshipResolver(catalog)
        self.config = config if config is not None else EngineConfig()
        if history is None and self.config.record_history:
            history = HistoryManager(self.config.history_capacity)
        self.history = history
        self.persistence = persistence if persistence is not None else StatePersistence()
        self.mutation_logger = mutation_logger if mutation_logger is not None else MutationLogger()

        self._state = clone_state(initial_state) if initial_state is not None else GraphState()
        if self.history is not None:
            self.history.push_state(self._state)

    # =========================================================================
    # READ INTERFACE
    # =========================================================================

    def get_state(self) -> GraphState:
        """Independent copy of the current state."""
        return clone_state(self._state)

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        node = self._state.nodes.get(node_id)
        return _copy(node, GraphNode) if node is not None else None

    def get_edge(self, edge_id: str) -> Optional[GraphEdge]:
        edge = self._state.edges.get(edge_id)
        return _copy(edge, GraphEdge) if edge is not None else None

    def has_node(self, node_id: str) -> bool:
        return node_id in self._state.nodes

    def has_edge(self, edge_id: str) -> bool:
        return edge_id in self._state.edges

    def node_count(self) -> int:
        return len(self._state.nodes)

    def edge_count(self) -> int:
        return len(self._state.edges)

    def node_ids(self) -> Set[str]:
        return set(self._state.nodes)

    def edge_ids(self) -> Set[str]:
        return set(self._state.edges)

    def get_nodes_in_graph(self) -> List[GraphNode]:
        return [_copy(n, GraphNode) for n in self._state.nodes.values() if NodeState.IN_GRAPH in n.states]

    def get_edges_in_graph(self) -> List[GraphEdge]:
        return [_copy(e, GraphEdge) for e in self._state.edges.values() if EdgeState.IN_GRAPH in e.states]

    @staticmethod
    def _is_visible(node: GraphNode) -> bool:
        if NodeState.HIDDEN in node.states:
            return False
        return NodeState.VISIBLE in node.states or NodeState.IN_GRAPH in node.states

    def get_visible_nodes(self) -> List[GraphNode]:
        return [_copy(n, GraphNode) for n in self._state.nodes.values() if self._is_visible(n)]

    def get_visible_edges(self) -> List[GraphEdge]:
        return [
            _copy(e, GraphEdge)
            for e in self._state.edges.values()
            if EdgeState.HIDDEN not in e.states
            and (EdgeState.VISIBLE in e.states or EdgeState.IN_GRAPH in e.states)
        ]

    @property
    def selected_node_ids(self) -> Set[str]:
        return set(self._state.selected_node_ids)

    @property
    def selected_edge_ids(self) -> Set[str]:
        return set(self._state.selected_edge_ids)

    @property
    def focused_node_id(self) -> Optional[str]:
        return self._state.focused_node_id

    @property
    def focused_edge_id(self) -> Optional[str]:
        return self._state.focused_edge_id

    # =========================================================================
    # INTERNAL BOOKKEEPING
    # =========================================================================

    def _commit(self, record: bool = True) -> None:
        """Stamp last_modified and, for structural changes, snapshot history."""
        self._state.metadata.last_modified = now_utc()
        if record and self.history is not None:
            self.history.push_state(self._state)

    def _neutral_position(self) -> Position:
        x, y = self.config.neutral_position
        return Position(x=x, y=y)

    def _compute_relationships(self, node: GraphNode) -> None:
        up = self.resolver.direct_neighbors(node.id, Direction.UPSTREAM, node.metadata)
        down = self.resolver.direct_neighbors(node.id, Direction.DOWNSTREAM, node.metadata)
        node.upstream_ids = set(up.ids)
        node.downstream_ids = set(down.ids)

        if self.config.unresolved_references is UnresolvedReferencePolicy.WARN:
            unresolved = list(dict.fromkeys(up.unresolved + down.unresolved))
            node.metadata.unresolved_references = unresolved
            if unresolved:
                logger.warning("Node %s has unresolved references: %s", node.id, ", ".join(unresolved))
        else:
            node.metadata.unresolved_references = []

    def _insert_node(self, node: GraphNode) -> None:
        node.states.update((NodeState.IN_GRAPH, NodeState.VISIBLE))
        self._compute_relationships(node)
        self._state.nodes[node.id] = node
        self.mutation_logger.log_node_created(node.id, node.object_type.value)

    def _insert_edge(self, edge: GraphEdge) -> bool:
        nodes = self._state.nodes
        if edge.source not in nodes or edge.target not in nodes:
            return False
        edge.states.update((EdgeState.IN_GRAPH, EdgeState.VISIBLE))
        self._state.edges[edge.id] = edge
        self.mutation_logger.log_edge_created(edge.id, edge.source, edge.target, edge.relation)
        return True

    def _delete_edge(self, edge_id: str) -> bool:
        edge = self._state.edges.pop(edge_id, None)
        if edge is None:
            return False
        self._state.selected_edge_ids.discard(edge_id)
        if self._state.focused_edge_id == edge_id:
            self._state.focused_edge_id = None
        for records in self._state.expansions.values():
            for record in records.values():
                record.edge_ids.discard(edge_id)
        self.mutation_logger.log_edge_deleted(edge.id, edge.source, edge.target, edge.relation)
        return True

    def _delete_node(self, node_id: str) -> bool:
        node = self._state.nodes.pop(node_id, None)
        if node is None:
            return False

        touching = [
            e.id for e in self._state.edges.values()
            if e.source == node_id or e.target == node_id
        ]
        for edge_id in touching:
            self._delete_edge(edge_id)

        self._state.selected_node_ids.discard(node_id)
        if self._state.focused_node_id == node_id:
            self._state.focused_node_id = None

        self._state.expansions.pop(node_id, None)
        for records in self._state.expansions.values():
            for record in records.values():
                record.node_ids.discard(node_id)

        self.mutation_logger.log_node_deleted(node_id, node.object_type.value)
        return True

    def _records_claiming(self, node_id: str) -> List[ExpansionRecord]:
        return [
            record
            for records in self._state.expansions.values()
            for record in records.values()
            if node_id in record.node_ids
        ]

    def _claimed(self, field: str, exclude: Optional[tuple] = None) -> Set[str]:
        """Ids claimed by any active expansion record (optionally skipping one)."""
        claimed: Set[str] = set()
        for pivot, records in self._state.expansions.items():
            for direction, record in records.items():
                if exclude is not None and (pivot, direction) == exclude:
                    continue
                claimed.update(getattr(record, field))
        return claimed

    # =========================================================================
    # NODE COMMANDS
    # =========================================================================

    def add_node(
        self,
        node: Union[CatalogNode, GraphNode],
        position: Optional[Position] = None,
    ) -> str:
        """
        Insert a node with states {in-graph, visible}.

        An existing node with the same id is overwritten. Relationship
        caches are computed from the node's metadata.

        Returns:
            The node id
        """
        if isinstance(node, CatalogNode):
            graph_node = GraphNode.from_catalog(node, position)
        else:
            graph_node = _copy(node, GraphNode)
            if position is not None:
                graph_node.position = position
        self._insert_node(graph_node)
        self._commit()
        return graph_node.id

    def add_node_by_id(self, node_id: str, position: Optional[Position] = None) -> bool:
        """Insert a catalog object by id. Unknown ids are a no-op."""
        catalog_node = self.catalog.get(node_id)
        if catalog_node is None:
            return False
        self.add_node(catalog_node, position)
        return True

    def remove_node(self, node_id: str) -> bool:
        """Remove a node, its edges, and its selection / focus / provenance."""
        if not self._delete_node(node_id):
            return False
        self._commit()
        return True

    def update_node_position(self, node_id: str, position: Position) -> bool:
        node = self._state.nodes.get(node_id)
        if node is None:
            return False
        node.position = Position(x=position.x, y=position.y)
        self._commit()
        return True

    def update_node_positions(self, positions: Mapping[str, Position]) -> int:
        """Move several nodes as one history step. Absent ids are skipped."""
        moved = 0
        for node_id, position in positions.items():
            node = self._state.nodes.get(node_id)
            if node is None:
                continue
            node.position = Position(x=position.x, y=position.y)
            moved += 1
        if moved:
            self._commit()
        return moved

    def update_node_states(self, node_id: str, states: Iterable[NodeState]) -> bool:
        """
        Replace a node's state flags.

        in-graph is always kept, and selected / focused keep mirroring the
        selection and focus slots.
        """
        node = self._state.nodes.get(node_id)
        if node is None:
            return False
        new_states = set(states) - {NodeState.SELECTED, NodeState.FOCUSED}
        new_states.add(NodeState.IN_GRAPH)
        if node_id in self._state.selected_node_ids:
            new_states.add(NodeState.SELECTED)
        if self._state.focused_node_id == node_id:
            new_states.add(NodeState.FOCUSED)
        node.states = new_states
        self.mutation_logger.log_node_updated(node_id, node.object_type.value, detail="states")
        self._commit()
        return True

    def update_node_metadata(
        self,
        node_id: str,
        patch: Union[NodeMetadata, Mapping[str, Any]],
    ) -> bool:
        """
        Merge metadata into a node and recompute its relationship caches.

        A NodeMetadata replaces the metadata wholesale; a mapping is merged
        field by field.

        Raises:
            msgspec.ValidationError: If the merged metadata is ill-typed
        """
        node = self._state.nodes.get(node_id)
        if node is None:
            return False
        if isinstance(patch, NodeMetadata):
            node.metadata = _copy(patch, NodeMetadata)
        else:
            merged = msgspec.to_builtins(node.metadata)
            merged.update(msgspec.to_builtins(dict(patch)))
            node.metadata = msgspec.convert(merged, NodeMetadata)
        self._compute_relationships(node)
        self.mutation_logger.log_node_updated(node_id, node.object_type.value, detail="metadata")
        self._commit()
        return True

    def refresh_node_relationships(self, node_id: str) -> bool:
        node = self._state.nodes.get(node_id)
        if node is None:
            return False
        self._compute_relationships(node)
        self._commit(record=False)
        return True

    def refresh_all_relationships(self) -> int:
        for node in self._state.nodes.values():
            self._compute_relationships(node)
        self._commit(record=False)
        return len(self._state.nodes)

    def update_viewport(self, viewport: Viewport) -> None:
        self._state.viewport = Viewport(x=viewport.x, y=viewport.y, zoom=viewport.zoom)
        self.mutation_logger.log_viewport_changed(f"{viewport.x},{viewport.y}@{viewport.zoom}")
        self._commit()

    # =========================================================================
    # EDGE COMMANDS
    # =========================================================================

    def add_edge(self, edge: Union[CatalogEdge, GraphEdge]) -> bool:
        """Insert an edge. Ignored when either endpoint is absent."""
        if isinstance(edge, CatalogEdge):
            graph_edge = GraphEdge.from_catalog(edge)
        else:
            graph_edge = _copy(edge, GraphEdge)
        if not self._insert_edge(graph_edge):
            return False
        self._commit()
        return True

    def remove_edge(self, edge_id: str) -> bool:
        if not self._delete_edge(edge_id):
            return False
        self._commit()
        return True

    def update_edge_states(self, edge_id: str, states: Iterable[EdgeState]) -> bool:
        edge = self._state.edges.get(edge_id)
        if edge is None:
            return False
        new_states = set(states) - {EdgeState.SELECTED, EdgeState.FOCUSED}
        new_states.add(EdgeState.IN_GRAPH)
        if edge_id in self._state.selected_edge_ids:
            new_states.add(EdgeState.SELECTED)
        if self._state.focused_edge_id == edge_id:
            new_states.add(EdgeState.FOCUSED)
        edge.states = new_states
        self.mutation_logger.log_edge_updated(edge_id, detail="states")
        self._commit()
        return True

    # =========================================================================
    # DISCOVERY
    # =========================================================================

    def _pivot_metadata(self, node_id: str) -> Optional[NodeMetadata]:
        node = self._state.nodes.get(node_id)
        return node.metadata if node is not None else None

    def discover_upstream(self, node_id: str) -> List[str]:
        """Transitive upstream set (uses in-graph metadata when present)."""
        return self.resolver.upstream(node_id, self._pivot_metadata(node_id))

    def discover_downstream(self, node_id: str) -> List[str]:
        return self.resolver.downstream(node_id, self._pivot_metadata(node_id))

    def get_available_upstream_nodes(self, node_id: str) -> List[str]:
        """Direct upstream neighbours not yet in the graph."""
        node = self._state.nodes.get(node_id)
        if node is None:
            return []
        return sorted(n for n in node.upstream_ids if n not in self._state.nodes)

    def get_available_downstream_nodes(self, node_id: str) -> List[str]:
        node = self._state.nodes.get(node_id)
        if node is None:
            return []
        return sorted(n for n in node.downstream_ids if n not in self._state.nodes)

    def get_expansion_state(self, node_id: str) -> Optional[ExpansionState]:
        node = self._state.nodes.get(node_id)
        if node is None:
            return None
        nodes = self._state.nodes
        return ExpansionState(
            upstream_expanded=NodeState.EXPANDED_UPSTREAM in node.states,
            downstream_expanded=NodeState.EXPANDED_DOWNSTREAM in node.states,
            has_upstream=bool(node.upstream_ids),
            has_downstream=bool(node.downstream_ids),
            has_visible_upstream=any(n in nodes and self._is_visible(nodes[n]) for n in node.upstream_ids),
            has_visible_downstream=any(n in nodes and self._is_visible(nodes[n]) for n in node.downstream_ids),
        )

    # =========================================================================
    # EXPANSION / COLLAPSE
    # =========================================================================

    def _expansion_position(self, pivot: GraphNode, direction: Direction, index: int) -> Position:
        offset = self.config.expansion_offset_x + index * self.config.expansion_spacing_x
        if direction is Direction.UPSTREAM:
            offset = -offset
        return Position(x=pivot.position.x + offset, y=pivot.position.y)

    def expand(self, node_id: str, direction: Direction) -> Optional[ExpansionResult]:
        """
        Add the transitive lineage of node_id in one direction.

        Already-present nodes are not re-added; expanding twice is a no-op
        apart from the flag. Claims are recorded for collapse.

        Returns:
            ExpansionResult, or None if node_id is not in the graph
        """
        pivot = self._state.nodes.get(node_id)
        if pivot is None:
            return None

        key = direction.value
        plan = self.resolver.plan_expansion(node_id, direction, self._state.nodes.keys(), pivot.metadata)
        records = self._state.expansions.setdefault(node_id, {})
        record = records.get(key) or ExpansionRecord()
        claimed_nodes = self._claimed("node_ids", exclude=(node_id, key))
        claimed_edges = self._claimed("edge_ids", exclude=(node_id, key))

        for nid in plan.transitive_ids:
            if nid in self._state.nodes and nid in claimed_nodes:
                record.node_ids.add(nid)

        to_add = plan.nodes_to_add
        grouped: List[str] = []
        threshold = self.config.group_threshold
        if threshold and len(to_add) > threshold:
            keep = self.config.group_visible_count
            to_add, grouped = to_add[:keep], to_add[keep:]

        result = ExpansionResult(pivot=node_id, direction=direction)
        index = 0
        for nid in to_add:
            catalog_node = self.catalog.get(nid)
            if catalog_node is None:
                continue
            position = self._expansion_position(pivot, direction, index)
            self._insert_node(GraphNode.from_catalog(catalog_node, position))
            record.node_ids.add(nid)
            result.added_node_ids.append(nid)
            index += 1

        for edge in plan.edges_to_add:
            if edge.id in self._state.edges:
                if edge.id in claimed_edges:
                    record.edge_ids.add(edge.id)
                continue
            if self._insert_edge(GraphEdge.from_catalog(edge)):
                record.edge_ids.add(edge.id)
                result.added_edge_ids.append(edge.id)

        if grouped:
            group_id = f"{node_id}-group-{direction.short}"
            position = self._expansion_position(pivot, direction, index)
            edge_id = self._build_group(group_id, node_id, direction, grouped, position)
            record.node_ids.add(group_id)
            result.added_node_ids.append(group_id)
            if edge_id is not None:
                record.edge_ids.add(edge_id)
                result.added_edge_ids.append(edge_id)
            result.group_id = group_id

        records[key] = record
        pivot.states.add(direction.expanded_state)
        self.mutation_logger.log_expanded(node_id, key, result.added_node_ids)
        self._commit()
        return result

    def expand_upstream(self, node_id: str) -> Optional[ExpansionResult]:
        return self.expand(node_id, Direction.UPSTREAM)

    def expand_downstream(self, node_id: str) -> Optional[ExpansionResult]:
        return self.expand(node_id, Direction.DOWNSTREAM)

    def _release(self, node_id: str, direction: Direction) -> List[str]:
        """Drop one expansion record and delete what nothing else claims."""
        key = direction.value
        records = self._state.expansions.get(node_id, {})
        record = records.pop(key, None)
        if not records:
            self._state.expansions.pop(node_id, None)
        pivot = self._state.nodes.get(node_id)
        if pivot is not None:
            pivot.states.discard(direction.expanded_state)
        if record is None:
            return []

        still_edges = self._claimed("edge_ids")
        for edge_id in sorted(record.edge_ids - still_edges):
            self._delete_edge(edge_id)

        # Only the record's own ids go; nodes other pivots introduced stay
        removed: List[str] = []
        still_nodes = self._claimed("node_ids")
        for nid in sorted(record.node_ids - still_nodes):
            if nid != node_id and self._delete_node(nid):
                removed.append(nid)
        return removed

    def collapse(self, node_id: str, direction: Direction) -> List[str]:
        """
        Undo the effect of expand(node_id, direction).

        Returns:
            Ids of the nodes removed
        """
        if node_id not in self._state.nodes:
            return []
        removed = self._release(node_id, direction)
        self.mutation_logger.log_collapsed(node_id, direction.value, removed)
        self._commit()
        return removed

    def collapse_upstream(self, node_id: str) -> List[str]:
        return self.collapse(node_id, Direction.UPSTREAM)

    def collapse_downstream(self, node_id: str) -> List[str]:
        return self.collapse(node_id, Direction.DOWNSTREAM)

    # =========================================================================
    # GROUP NODES
    # =========================================================================

    def _build_group(
        self,
        group_id: str,
        parent_id: str,
        direction: Direction,
        member_ids: List[str],
        position: Position,
    ) -> Optional[str]:
        """Insert a group node (and its link to the parent). Returns the link id."""
        group = GraphNode(
            id=group_id,
            label=f"Group ({len(member_ids)})",
            name=group_id,
            object_type=ObjectType.GROUP,
            position=position,
            states={NodeState.GROUP_NODE},
            metadata=NodeMetadata(parent_id=parent_id, direction=direction, member_ids=list(member_ids)),
        )
        self._insert_node(group)

        if direction is Direction.UPSTREAM:
            source, target = group_id, parent_id
        else:
            source, target = parent_id, group_id
        edge = GraphEdge(id=f"{source}-{target}", source=source, target=target, relation=GROUP_RELATION)
        return edge.id if self._insert_edge(edge) else None

    def add_group_node(
        self,
        parent_id: str,
        direction: Direction,
        member_ids: Iterable[str],
        position: Optional[Position] = None,
        group_id: Optional[str] = None,
    ) -> str:
        """
        Add one synthetic group node standing for member_ids.

        Members already in the graph are left in place. A group with the
        same id is replaced and keeps the expansion claims it had.

        Returns:
            The group node id ("{parent}-group-{up|down}" unless given)
        """
        members = list(dict.fromkeys(member_ids))
        group_id = group_id or f"{parent_id}-group-{direction.short}"
        claiming = self._records_claiming(group_id)
        self._delete_node(group_id)
        edge_id = self._build_group(group_id, parent_id, direction, members, position or self._neutral_position())
        for record in claiming:
            record.node_ids.add(group_id)
            if edge_id is not None:
                record.edge_ids.add(edge_id)
        self._commit()
        return group_id

    def remove_group_node(self, group_id: str) -> List[str]:
        """
        Remove a group and re-add its absent members at the neutral position.

        Re-added members are claimed by whichever expansions claimed the
        group, so collapsing those expansions removes them again.

        Returns:
            Ids of the members re-added
        """
        group = self._state.nodes.get(group_id)
        if group is None or not group.is_group:
            return []
        members = list(group.metadata.member_ids)
        claiming = self._records_claiming(group_id)
        self._delete_node(group_id)

        restored = []
        for member in members:
            catalog_node = self.catalog.get(member)
            if catalog_node is None or member in self._state.nodes:
                continue
            self._insert_node(GraphNode.from_catalog(catalog_node, self._neutral_position()))
            for record in claiming:
                record.node_ids.add(member)
            restored.append(member)
        self._commit()
        return restored

    def update_group_node(self, group_id: str, member_ids: Iterable[str]) -> bool:
        group = self._state.nodes.get(group_id)
        if group is None or not group.is_group:
            return False
        members = list(dict.fromkeys(member_ids))
        group.metadata.member_ids = members
        group.label = f"Group ({len(members)})"
        self.mutation_logger.log_node_updated(group_id, ObjectType.GROUP.value, detail="members")
        self._commit()
        return True

    def promote_group_member(self, group_id: str, member_id: str) -> bool:
        """
        Move one member out of a group into the graph.

        The member is claimed by the group parent's expansion when there is
        one, so collapsing that expansion removes it again. The group is
        removed once empty.
        """
        group = self._state.nodes.get(group_id)
        if group is None or not group.is_group or member_id not in group.metadata.member_ids:
            return False
        catalog_node = self.catalog.get(member_id)
        if catalog_node is None or member_id in self._state.nodes:
            return False

        parent_id = group.metadata.parent_id
        direction = group.metadata.direction or Direction.UPSTREAM
        record = self._state.expansions.get(parent_id or "", {}).get(direction.value)

        position = Position(x=group.position.x, y=group.position.y)
        self._insert_node(GraphNode.from_catalog(catalog_node, position))
        if record is not None:
            record.node_ids.add(member_id)

        linked_to_parent = False
        for edge in self.catalog.edges:
            if member_id not in (edge.source, edge.target) or edge.id in self._state.edges:
                continue
            if self._insert_edge(GraphEdge.from_catalog(edge)):
                if parent_id in (edge.source, edge.target):
                    linked_to_parent = True
                if record is not None:
                    record.edge_ids.add(edge.id)

        if parent_id in self._state.nodes and not linked_to_parent:
            if direction is Direction.UPSTREAM:
                source, target = member_id, parent_id
            else:
                source, target = parent_id, member_id
            edge = GraphEdge(id=f"{source}-{target}", source=source, target=target, relation=direction.relation)
            if edge.id not in self._state.edges and self._insert_edge(edge) and record is not None:
                record.edge_ids.add(edge.id)

        remaining = [m for m in group.metadata.member_ids if m != member_id]
        if remaining:
            group.metadata.member_ids = remaining
            group.label = f"Group ({len(remaining)})"
        else:
            self._delete_node(group_id)
        self._commit()
        return True

    def get_group_nodes(self) -> List[GraphNode]:
        return [_copy(n, GraphNode) for n in self._state.nodes.values() if n.is_group]

    def get_group_nodes_for_parent(self, parent_id: str) -> List[GraphNode]:
        return [
            _copy(n, GraphNode)
            for n in self._state.nodes.values()
            if n.is_group and n.metadata.parent_id == parent_id
        ]

    # =========================================================================
    # SELECTION & FOCUS
    # =========================================================================

    def _set_node_selected(self, node_id: str, selected: bool) -> None:
        node = self._state.nodes[node_id]
        if selected:
            self._state.selected_node_ids.add(node_id)
            node.states.add(NodeState.SELECTED)
        else:
            self._state.selected_node_ids.discard(node_id)
            node.states.discard(NodeState.SELECTED)

    def _set_edge_selected(self, edge_id: str, selected: bool) -> None:
        edge = self._state.edges[edge_id]
        if selected:
            self._state.selected_edge_ids.add(edge_id)
            edge.states.add(EdgeState.SELECTED)
        else:
            self._state.selected_edge_ids.discard(edge_id)
            edge.states.discard(EdgeState.SELECTED)

    def _selection_changed(self) -> None:
        self.mutation_logger.log_selection_changed(
            self._state.selected_node_ids, detail=f"{len(self._state.selected_edge_ids)} edges"
        )
        self._commit(record=False)

    def select_node(self, node_id: str, additive: bool = False) -> bool:
        """Select a node; without additive the previous selection is cleared."""
        if node_id not in self._state.nodes:
            return False
        if not additive:
            for other in list(self._state.selected_node_ids):
                self._set_node_selected(other, False)
            for other in list(self._state.selected_edge_ids):
                self._set_edge_selected(other, False)
        self._set_node_selected(node_id, True)
        self._selection_changed()
        return True

    def deselect_node(self, node_id: str) -> bool:
        if node_id not in self._state.selected_node_ids:
            return False
        self._set_node_selected(node_id, False)
        self._selection_changed()
        return True

    def select_nodes(self, node_ids: Iterable[str]) -> Set[str]:
        """Replace the node selection with the present ids among node_ids."""
        wanted = {n for n in node_ids if n in self._state.nodes}
        for other in list(self._state.selected_node_ids - wanted):
            self._set_node_selected(other, False)
        for node_id in wanted:
            self._set_node_selected(node_id, True)
        self._selection_changed()
        return set(wanted)

    def select_edge(self, edge_id: str, additive: bool = False) -> bool:
        if edge_id not in self._state.edges:
            return False
        if not additive:
            for other in list(self._state.selected_node_ids):
                self._set_node_selected(other, False)
            for other in list(self._state.selected_edge_ids):
                self._set_edge_selected(other, False)
        self._set_edge_selected(edge_id, True)
        self._selection_changed()
        return True

    def deselect_edge(self, edge_id: str) -> bool:
        if edge_id not in self._state.selected_edge_ids:
            return False
        self._set_edge_selected(edge_id, False)
        self._selection_changed()
        return True

    def clear_selection(self) -> None:
        for node_id in list(self._state.selected_node_ids):
            self._set_node_selected(node_id, False)
        for edge_id in list(self._state.selected_edge_ids):
            self._set_edge_selected(edge_id, False)
        self._selection_changed()

    def focus_node(self, node_id: str) -> bool:
        if node_id not in self._state.nodes:
            return False
        self.unfocus_node(notify=False)
        self._state.focused_node_id = node_id
        self._state.nodes[node_id].states.add(NodeState.FOCUSED)
        self.mutation_logger.log_focus_changed(node_id, self._state.focused_edge_id)
        self._commit(record=False)
        return True

    def unfocus_node(self, notify: bool = True) -> None:
        previous = self._state.focused_node_id
        if previous is not None and previous in self._state.nodes:
            self._state.nodes[previous].states.discard(NodeState.FOCUSED)
        self._state.focused_node_id = None
        if notify:
            self.mutation_logger.log_focus_changed(None, self._state.focused_edge_id)
            self._commit(record=False)

    def focus_edge(self, edge_id: str) -> bool:
        if edge_id not in self._state.edges:
            return False
        self.unfocus_edge(notify=False)
        self._state.focused_edge_id = edge_id
        self._state.edges[edge_id].states.add(EdgeState.FOCUSED)
        self.mutation_logger.log_focus_changed(self._state.focused_node_id, edge_id)
        self._commit(record=False)
        return True

    def unfocus_edge(self, notify: bool = True) -> None:
        previous = self._state.focused_edge_id
        if previous is not None and previous in self._state.edges:
            self._state.edges[previous].states.discard(EdgeState.FOCUSED)
        self._state.focused_edge_id = None
        if notify:
            self.mutation_logger.log_focus_changed(self._state.focused_node_id, None)
            self._commit(record=False)

    # =========================================================================
    # FILTERING & SEARCH
    # =========================================================================

    @staticmethod
    def _matches_search(node: GraphNode, query: str) -> bool:
        query = query.lower()
        haystack = [node.label, node.name, node.metadata.description or ""]
        haystack.extend(node.metadata.tags)
        return any(query in value.lower() for value in haystack)

    @classmethod
    def _matches(cls, node: GraphNode, criteria: FilterCriteria) -> bool:
        if criteria.search_query and not cls._matches_search(node, criteria.search_query):
            return False
        if criteria.node_types and node.object_type not in criteria.node_types:
            return False
        if criteria.schemas and node.schema not in criteria.schemas:
            return False
        if criteria.databases and node.database not in criteria.databases:
            return False
        if criteria.quality_range is not None:
            quality = node.metadata.quality_score or 0
            if not (criteria.quality_range.min <= quality <= criteria.quality_range.max):
                return False
        return True

    def set_filters(self, criteria: FilterCriteria) -> None:
        """Store the active filter predicates in the state."""
        self._state.filters = _copy(criteria, FilterCriteria)
        self.mutation_logger.log_filters_changed(msgspec.json.encode(criteria).decode("utf-8"))
        self._commit(record=False)

    def clear_filters(self) -> None:
        self.set_filters(FilterCriteria())

    def apply_filters(self, criteria: Optional[FilterCriteria] = None) -> List[GraphNode]:
        """
        Visible nodes matching every supplied predicate.

        Args:
            criteria: Predicates to apply; the stored filters when omitted
        """
        criteria = criteria if criteria is not None else self._state.filters
        return [
            _copy(n, GraphNode)
            for n in self._state.nodes.values()
            if self._is_visible(n) and self._matches(n, criteria)
        ]

    def search_nodes(self, query: str) -> List[GraphNode]:
        """Visible nodes whose label, name, description or tags contain query."""
        if not query:
            return self.get_visible_nodes()
        return [
            _copy(n, GraphNode)
            for n in self._state.nodes.values()
            if self._is_visible(n) and self._matches_search(n, query)
        ]

    def get_filter_options(self) -> FilterOptions:
        visible = [n for n in self._state.nodes.values() if self._is_visible(n)]
        scores = [
            n.metadata.quality_score for n in visible
            if n.metadata.quality_score is not None and n.metadata.quality_score > 0
        ]
        return FilterOptions(
            node_types=sorted({n.object_type for n in visible}, key=lambda t: t.value),
            schemas=sorted({n.schema for n in visible if n.schema}),
            databases=sorted({n.database for n in visible if n.database}),
            quality_range=QualityRange(min=min(scores), max=max(scores)) if scores else QualityRange(),
        )

    # =========================================================================
    # HISTORY
    # =========================================================================

    @property
    def can_undo(self) -> bool:
        return self.history is not None and self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history is not None and self.history.can_redo

    def _restore(self, snapshot: Optional[GraphState], reason: str) -> bool:
        if snapshot is None:
            return False
        self._state = snapshot
        self.mutation_logger.log_state_replaced(reason)
        self._commit(record=False)
        return True

    def undo(self) -> bool:
        if not self.can_undo:
            return False
        with self.history.restoring():
            return self._restore(self.history.undo(), "undo")

    def redo(self) -> bool:
        if not self.can_redo:
            return False
        with self.history.restoring():
            return self._restore(self.history.redo(), "redo")

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def _load(self, state: GraphState, reason: str) -> None:
        """Replace the state wholesale, repairing derived data."""
        present = set(state.nodes)
        state.edges = {
            edge_id: edge
            for edge_id, edge in state.edges.items()
            if edge.source in present and edge.target in present
        }

        expansions: Dict[str, Dict[str, ExpansionRecord]] = {}
        for pivot, records in state.expansions.items():
            if pivot not in present:
                continue
            for key, record in records.items():
                record.node_ids &= present
                record.edge_ids &= set(state.edges)
                expansions.setdefault(pivot, {})[key] = record
        state.expansions = expansions

        state.selected_node_ids &= present
        state.selected_edge_ids &= set(state.edges)
        if state.focused_node_id not in state.nodes:
            state.focused_node_id = None
        if state.focused_edge_id not in state.edges:
            state.focused_edge_id = None

        for node_id, node in state.nodes.items():
            node.states.discard(NodeState.SELECTED)
            node.states.discard(NodeState.FOCUSED)
            if node_id in state.selected_node_ids:
                node.states.add(NodeState.SELECTED)
            if node_id == state.focused_node_id:
                node.states.add(NodeState.FOCUSED)
        for edge_id, edge in state.edges.items():
            edge.states.discard(EdgeState.SELECTED)
            edge.states.discard(EdgeState.FOCUSED)
            if edge_id in state.selected_edge_ids:
                edge.states.add(EdgeState.SELECTED)
            if edge_id == state.focused_edge_id:
                edge.states.add(EdgeState.FOCUSED)

        self._state = state
        for node in self._state.nodes.values():
            self._compute_relationships(node)
        self.mutation_logger.log_state_replaced(reason)
        self._commit()

    def import_state(self, state: GraphState) -> None:
        self._load(clone_state(state), "import")

    def save_state(self, name: Optional[str] = None) -> str:
        """
        Persist the current state under a new id (also as current state).

        Raises:
            PersistenceError: If the store cannot be written
        """
        saved = self.persistence.save(self._state, name)
        self._state.metadata.id = saved.metadata.id
        self._state.metadata.name = saved.metadata.name
        self.mutation_logger.log_state_saved(saved.metadata.id)
        self._commit(record=False)
        return saved.metadata.id

    def load_state(self) -> bool:
        """Restore the last saved state. False when nothing was saved."""
        state = self.persistence.load_current()
        if state is None:
            return False
        self._load(state, "load current")
        return True

    def load_state_by_id(self, state_id: str) -> bool:
        state = self.persistence.load(state_id)
        if state is None:
            logger.warning("No saved state with id %s", state_id)
            return False
        self._load(state, f"load {state_id}")
        return True

    def get_saved_states(self) -> List[SavedStateInfo]:
        return self.persistence.list_states()

    def delete_saved_state(self, state_id: str) -> bool:
        return self.persistence.delete(state_id)

    def export_state_as_json(self) -> str:
        return encode_state(self._state)

    def import_state_from_json(self, text: Union[str, bytes]) -> None:
        """
        Replace the state with a decoded one.

        Raises:
            StateDecodeError: If text is malformed; the state is unchanged
        """
        self._load(decode_state(text), "import json")

    def generate_shareable_url(self, base_url: Optional[str] = None) -> str:
        return build_share_url(
            self._state,
            base_url or self.config.share_base_url,
            self.config.share_param,
        )

    def load_state_from_url(self, url: str) -> bool:
        """
        Load a state embedded in a share URL.

        Failures are logged and leave the state unchanged.
        """
        try:
            state = state_from_url(url, self.config.share_param)
        except StateDecodeError as e:
            logger.error("Failed to load state from URL: %s", e)
            return False
        if state is None:
            return False
        self._load(state, "load url")
        return True
