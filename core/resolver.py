"""
LINEAGE RESOLVER - Dynamic relationship discovery

The resolver answers "what is upstream / downstream of X" from the catalog.
Relationships come from three sources, consulted in priority order:

  1. metadata reference lists (upstream_references / downstream_references)
  2. column lineage (upstream_columns / downstream_columns of every column)
  3. static catalog edges (X is target -> upstream, X is source -> downstream)

The first source that yields at least one resolvable neighbour wins for a
node. The source chosen at the pivot governs the whole transitive closure,
so metadata-declared lineage is never widened by static edges further out.

Architecture (The Bridge Pattern):
  - _node_map: Dict[str, int]   (node id -> rustworkx index)
  - one rx.PyDiGraph per (direction, source), edges pointing in the
    direction of traversal (node -> its neighbour)

The resolver is a plain object built from a catalog and injected into the
graph store. It never mutates the catalog and holds no live-graph state, so
its answers for a given catalog and node id are independent of call order.
"""
import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

import rustworkx as rx

from core.catalog import Catalog
from core.ontology import Direction, ReferenceSource, SOURCE_PRIORITY
from core.schemas import (
    CatalogEdge,
    Discovery,
    ExpansionPlan,
    Neighbors,
    NodeMetadata,
)

logger = logging.getLogger(__name__)


def _dedupe(values: Iterable[str]) -> List[str]:
    seen: Set[str] = set()
    out: List[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            out.append(value)
    return out


def _lineage_link(node_id: str, neighbour_id: str, direction: Direction) -> Tuple[str, str]:
    """Orient a traversal step as (data source, data target)."""
    if direction is Direction.UPSTREAM:
        return (neighbour_id, node_id)
    return (node_id, neighbour_id)


class RelationshipResolver:
    """
    Resolves textual references and computes lineage closures.

    Usage:
        resolver = RelationshipResolver(catalog)
        resolver.direct_neighbors("orders", Direction.UPSTREAM).ids
        resolver.upstream("orders")            # full transitive set
        resolver.plan_expansion("orders", Direction.UPSTREAM, present_ids)
    """

    def __init__(self, catalog: Catalog):
        self._catalog = catalog
        self._node_map: Dict[str, int] = {}
        self._inv_map: Dict[int, str] = {}
        self._graphs: Dict[Tuple[Direction, ReferenceSource], rx.PyDiGraph] = {}
        self._build_graphs()

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    # =========================================================================
    # REFERENCE RESOLUTION
    # =========================================================================

    def resolve_reference(self, reference: str) -> Optional[str]:
        """
        Resolve a textual reference to a catalog id.

        Tried in order: exact id, exact fully-qualified name, exact label.
        No partial matching; a miss returns None.
        """
        if not reference:
            return None
        if reference in self._catalog:
            return reference
        node_id = self._catalog.find_by_name(reference)
        if node_id is not None:
            return node_id
        return self._catalog.find_by_label(reference)

    def resolve_column_reference(self, reference: str) -> Optional[str]:
        """
        Resolve DATABASE.SCHEMA.TABLE.COLUMN to the table's catalog id.

        Only the first three segments are used; fewer segments never resolve.
        """
        parts = reference.split(".") if reference else []
        if len(parts) < 3:
            return None
        return self.resolve_reference(".".join(parts[:3]))

    # =========================================================================
    # DIRECT NEIGHBOURS
    # =========================================================================

    def _metadata_for(self, node_id: str, metadata: Optional[NodeMetadata]) -> NodeMetadata:
        if metadata is not None:
            return metadata
        node = self._catalog.get(node_id)
        return node.metadata if node is not None else NodeMetadata()

    def _neighbors_from_source(
        self,
        node_id: str,
        metadata: NodeMetadata,
        direction: Direction,
        source: ReferenceSource,
    ) -> Tuple[List[str], List[str]]:
        """Returns (resolved neighbour ids, unresolved references) for one source."""
        found: List[str] = []
        missing: List[str] = []

        if source is ReferenceSource.METADATA:
            refs = (
                metadata.upstream_references
                if direction is Direction.UPSTREAM
                else metadata.downstream_references
            )
            for ref in refs:
                resolved = self.resolve_reference(ref)
                if resolved is None:
                    missing.append(ref)
                else:
                    found.append(resolved)

        elif source is ReferenceSource.COLUMN_LINEAGE:
            for column in metadata.column_lineage.values():
                refs = (
                    column.upstream_columns
                    if direction is Direction.UPSTREAM
                    else column.downstream_columns
                )
                for ref in refs:
                    resolved = self.resolve_column_reference(ref)
                    if resolved is None:
                        missing.append(ref)
                    else:
                        found.append(resolved)

        else:
            if direction is Direction.UPSTREAM:
                found.extend(edge.source for edge in self._catalog.edges_into(node_id))
            else:
                found.extend(edge.target for edge in self._catalog.edges_out_of(node_id))

        found = [n for n in _dedupe(found) if n != node_id]
        return found, _dedupe(missing)

    def direct_neighbors(
        self,
        node_id: str,
        direction: Direction,
        metadata: Optional[NodeMetadata] = None,
    ) -> Neighbors:
        """
        One-hop neighbours from the first source yielding a match.

        Args:
            node_id: Node to inspect (need not be in the catalog)
            direction: UPSTREAM or DOWNSTREAM
            metadata: Overrides the catalog metadata for this node only

        Returns:
            Neighbors with ids, the winning source and every unresolved
            reference seen across the reference-based sources
        """
        metadata = self._metadata_for(node_id, metadata)
        chosen: Optional[ReferenceSource] = None
        ids: List[str] = []
        unresolved: List[str] = []

        for source in SOURCE_PRIORITY:
            found, missing = self._neighbors_from_source(node_id, metadata, direction, source)
            unresolved.extend(missing)
            if found and chosen is None:
                chosen, ids = source, found

        return Neighbors(ids=ids, source=chosen, unresolved=_dedupe(unresolved))

    # =========================================================================
    # TRANSITIVE CLOSURE
    # =========================================================================

    def _build_graphs(self) -> None:
        """Build one relation graph per (direction, source) from the catalog."""
        ids = self._catalog.ids
        for direction in Direction:
            for source in SOURCE_PRIORITY:
                graph = rx.PyDiGraph(multigraph=False)
                indices = graph.add_nodes_from(ids)
                if not self._node_map:
                    for node_id, idx in zip(ids, indices):
                        self._node_map[node_id] = idx
                        self._inv_map[idx] = node_id

                pairs = []
                for node in self._catalog:
                    found, _ = self._neighbors_from_source(node.id, node.metadata, direction, source)
                    pairs.extend((self._node_map[node.id], self._node_map[n]) for n in found)
                graph.add_edges_from_no_data(pairs)
                self._graphs[(direction, source)] = graph

        logger.debug(
            "Built relation graphs for %d catalog nodes and %d static edges",
            len(ids),
            len(self._catalog.edges),
        )

    def discover(
        self,
        node_id: str,
        direction: Direction,
        metadata: Optional[NodeMetadata] = None,
    ) -> Discovery:
        """
        Depth-first transitive closure from node_id.

        The pivot's winning source is used for every hop. Cycles are
        tolerated through the visited set, and the pivot never appears in its
        own closure.
        """
        first = self.direct_neighbors(node_id, direction, metadata)
        discovery = Discovery(pivot=node_id, direction=direction, source=first.source)
        if first.source is None:
            return discovery

        graph = self._graphs[(direction, first.source)]
        visited: Set[str] = {node_id}
        order: List[str] = []

        for seed in first.ids:
            stack = [seed]
            while stack:
                current = stack.pop()
                if current in visited:
                    continue
                visited.add(current)
                order.append(current)
                idx = self._node_map.get(current)
                if idx is None:
                    continue
                successors = [self._inv_map[i] for i in graph.successor_indices(idx)]
                stack.extend(reversed(successors))

        links: List[Tuple[str, str]] = [_lineage_link(node_id, seed, direction) for seed in first.ids]
        for u, v in graph.edge_list():
            a, b = self._inv_map[u], self._inv_map[v]
            if a == node_id or a not in visited or b not in visited:
                continue
            links.append(_lineage_link(a, b, direction))

        discovery.node_ids = order
        discovery.links = [list(pair) for pair in _dedupe_pairs(links)]
        return discovery

    def upstream(self, node_id: str, metadata: Optional[NodeMetadata] = None) -> List[str]:
        """All nodes transitively upstream of node_id."""
        return self.discover(node_id, Direction.UPSTREAM, metadata).node_ids

    def downstream(self, node_id: str, metadata: Optional[NodeMetadata] = None) -> List[str]:
        """All nodes transitively downstream of node_id."""
        return self.discover(node_id, Direction.DOWNSTREAM, metadata).node_ids

    # =========================================================================
    # EXPANSION PLANNING
    # =========================================================================

    def plan_expansion(
        self,
        node_id: str,
        direction: Direction,
        present_ids: Iterable[str],
        metadata: Optional[NodeMetadata] = None,
    ) -> ExpansionPlan:
        """
        Compute what an expansion from node_id would add.

        Nodes to add are the transitive set minus what is already present.
        An edge is planned when both endpoints lie in the transitive set plus
        the pivot, and one endpoint is the pivot or both are newly added.
        Catalog edges come first; for reference-based sources, discovered
        links without a matching catalog edge are synthesized.
        """
        present = set(present_ids)
        discovery = self.discover(node_id, direction, metadata)
        new_ids = [n for n in discovery.node_ids if n not in present]
        new_set = set(new_ids)
        scope = set(discovery.node_ids) | {node_id}

        def wanted(source: str, target: str) -> bool:
            if source not in scope or target not in scope:
                return False
            if node_id in (source, target):
                return True
            return source in new_set and target in new_set

        edges: List[CatalogEdge] = []
        seen_pairs: Set[Tuple[str, str]] = set()
        for edge in self._catalog.edges:
            if wanted(edge.source, edge.target):
                edges.append(edge)
                seen_pairs.add((edge.source, edge.target))

        if discovery.source is not ReferenceSource.STATIC_EDGE:
            for source, target in discovery.links:
                if (source, target) in seen_pairs or not wanted(source, target):
                    continue
                seen_pairs.add((source, target))
                edges.append(
                    CatalogEdge(
                        id=f"{source}-{target}",
                        source=source,
                        target=target,
                        relation=direction.relation,
                    )
                )

        return ExpansionPlan(
            pivot=node_id,
            direction=direction,
            source=discovery.source,
            transitive_ids=discovery.node_ids,
            nodes_to_add=new_ids,
            edges_to_add=edges,
        )


def _dedupe_pairs(pairs: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    seen: Set[Tuple[str, str]] = set()
    out: List[Tuple[str, str]] = []
    for pair in pairs:
        if pair not in seen:
            seen.add(pair)
            out.append(pair)
    return out
