"""
Unit tests for core/resolver.py - RelationshipResolver

Tests:
- Reference resolution order (id, fully-qualified name, label)
- Column reference resolution
- Source priority (metadata, column lineage, static edges)
- Transitive closure over cycles
- Expansion planning
"""
import pytest

from core.catalog import Catalog
from core.ontology import Direction, ReferenceSource
from core.resolver import RelationshipResolver
from core.schemas import CatalogNode, ColumnLineage, NodeMetadata


# =============================================================================
# REFERENCE RESOLUTION
# =============================================================================

class TestReferenceResolution:
    """Textual references resolve by id, then name, then label."""

    @pytest.fixture
    def resolver(self):
        catalog = Catalog(nodes=[
            CatalogNode(id="t1", label="ORDERS", name="SALES.PUBLIC.ORDERS"),
            CatalogNode(id="t2", label="CUSTOMERS", name="SALES.PUBLIC.CUSTOMERS"),
            CatalogNode(id="ORDERS_COPY", label="ORDERS", name="ARCHIVE.PUBLIC.ORDERS"),
        ])
        return RelationshipResolver(catalog)

    def test_resolves_exact_id(self, resolver):
        assert resolver.resolve_reference("t2") == "t2"

    def test_resolves_fully_qualified_name(self, resolver):
        assert resolver.resolve_reference("SALES.PUBLIC.ORDERS") == "t1"
        assert resolver.resolve_reference("ARCHIVE.PUBLIC.ORDERS") == "ORDERS_COPY"

    def test_label_resolution_first_occurrence_wins(self, resolver):
        assert resolver.resolve_reference("ORDERS") == "t1"

    def test_no_partial_or_case_insensitive_match(self, resolver):
        assert resolver.resolve_reference("orders") is None
        assert resolver.resolve_reference("PUBLIC.ORDERS") is None
        assert resolver.resolve_reference("") is None

    def test_column_reference_uses_first_three_segments(self, resolver):
        assert resolver.resolve_column_reference("SALES.PUBLIC.ORDERS.amount") == "t1"
        assert resolver.resolve_column_reference("SALES.PUBLIC.CUSTOMERS.id") == "t2"

    def test_short_column_reference_does_not_resolve(self, resolver):
        assert resolver.resolve_column_reference("PUBLIC.ORDERS") is None
        assert resolver.resolve_column_reference("") is None


# =============================================================================
# SOURCE PRIORITY
# =============================================================================

class TestSourcePriority:

    def test_metadata_wins_over_static_edges(self, abc_catalog):
        resolver = RelationshipResolver(abc_catalog)
        neighbors = resolver.direct_neighbors("A", Direction.UPSTREAM)
        assert neighbors.ids == ["B"]
        assert neighbors.source is ReferenceSource.METADATA

    def test_static_edges_used_without_metadata(self, abc_catalog):
        resolver = RelationshipResolver(abc_catalog)
        up = resolver.direct_neighbors("B", Direction.UPSTREAM)
        down = resolver.direct_neighbors("C", Direction.DOWNSTREAM)
        assert up.ids == ["C"] and up.source is ReferenceSource.STATIC_EDGE
        assert down.ids == ["B"]

    def test_column_lineage_used_when_metadata_empty(self, node_factory, edge_factory):
        target = node_factory(
            "REPORT",
            column_lineage={
                "total": ColumnLineage(upstream_columns=["DB.PUBLIC.ORDERS.amount"]),
            },
        )
        catalog = Catalog(
            nodes=[target, node_factory("ORDERS"), node_factory("OTHER")],
            edges=[edge_factory("OTHER", "REPORT")],
        )
        neighbors = RelationshipResolver(catalog).direct_neighbors("REPORT", Direction.UPSTREAM)
        assert neighbors.ids == ["ORDERS"]
        assert neighbors.source is ReferenceSource.COLUMN_LINEAGE

    def test_unresolvable_metadata_falls_through(self, node_factory, edge_factory):
        catalog = Catalog(
            nodes=[node_factory("A", upstream=["GHOST"]), node_factory("B")],
            edges=[edge_factory("B", "A")],
        )
        neighbors = RelationshipResolver(catalog).direct_neighbors("A", Direction.UPSTREAM)
        assert neighbors.ids == ["B"]
        assert neighbors.source is ReferenceSource.STATIC_EDGE
        assert neighbors.unresolved == ["GHOST"]

    def test_self_reference_ignored(self, node_factory):
        catalog = Catalog(nodes=[node_factory("A", upstream=["A"])])
        neighbors = RelationshipResolver(catalog).direct_neighbors("A", Direction.UPSTREAM)
        assert neighbors.ids == []
        assert neighbors.source is None

    def test_metadata_override_for_pivot(self, abc_catalog):
        resolver = RelationshipResolver(abc_catalog)
        override = NodeMetadata(upstream_references=["C"])
        assert resolver.direct_neighbors("A", Direction.UPSTREAM, override).ids == ["C"]

    def test_unknown_node_has_no_neighbors(self, abc_catalog):
        neighbors = RelationshipResolver(abc_catalog).direct_neighbors("nope", Direction.DOWNSTREAM)
        assert neighbors.ids == []


# =============================================================================
# TRANSITIVE CLOSURE
# =============================================================================

class TestTransitiveClosure:

    def test_pivot_source_governs_whole_traversal(self, abc_catalog):
        resolver = RelationshipResolver(abc_catalog)
        assert resolver.upstream("A") == ["B"]
        assert resolver.upstream("B") == ["C"]

    def test_chain_closure_in_depth_first_order(self, chain_catalog):
        resolver = RelationshipResolver(chain_catalog)
        assert resolver.upstream("T") == ["S2", "S1"]
        assert resolver.downstream("T") == ["D1", "D2"]
        assert resolver.downstream("D2") == []

    def test_cycle_terminates_and_excludes_pivot(self, cyclic_catalog):
        resolver = RelationshipResolver(cyclic_catalog)
        assert resolver.upstream("X") == ["Z", "Y"]
        assert resolver.downstream("X") == ["Y", "Z"]

    def test_determinism_regardless_of_call_order(self, cyclic_catalog):
        resolver = RelationshipResolver(cyclic_catalog)
        first = resolver.upstream("Y")
        resolver.downstream("Z")
        resolver.upstream("X")
        assert resolver.upstream("Y") == first
        assert RelationshipResolver(cyclic_catalog).upstream("Y") == first

    def test_discovery_links_are_lineage_oriented(self, chain_catalog):
        discovery = RelationshipResolver(chain_catalog).discover("T", Direction.UPSTREAM)
        assert ["S2", "T"] in discovery.links
        assert ["S1", "S2"] in discovery.links


# =============================================================================
# EXPANSION PLANNING
# =============================================================================

class TestExpansionPlan:

    def test_plan_synthesizes_metadata_link(self, abc_catalog):
        plan = RelationshipResolver(abc_catalog).plan_expansion("A", Direction.UPSTREAM, {"A"})
        assert plan.nodes_to_add == ["B"]
        assert [(e.id, e.source, e.target, e.relation) for e in plan.edges_to_add] == [
            ("B-A", "B", "A", "depends_on")
        ]

    def test_plan_uses_catalog_edges_for_static_source(self, abc_catalog):
        plan = RelationshipResolver(abc_catalog).plan_expansion("B", Direction.UPSTREAM, {"A", "B"})
        assert plan.nodes_to_add == ["C"]
        assert [e.id for e in plan.edges_to_add] == ["C-B"]

    def test_plan_skips_present_nodes(self, chain_catalog):
        plan = RelationshipResolver(chain_catalog).plan_expansion("T", Direction.UPSTREAM, {"T", "S2"})
        assert plan.transitive_ids == ["S2", "S1"]
        assert plan.nodes_to_add == ["S1"]
        # S2-T touches the pivot; S1-S2 has a present endpoint that is not the pivot
        assert [e.id for e in plan.edges_to_add] == ["S2-T"]

    def test_downstream_synthesized_relation(self, node_factory):
        catalog = Catalog(nodes=[node_factory("SRC", downstream=["DST"]), node_factory("DST")])
        plan = RelationshipResolver(catalog).plan_expansion("SRC", Direction.DOWNSTREAM, {"SRC"})
        assert [(e.id, e.relation) for e in plan.edges_to_add] == [("SRC-DST", "feeds_into")]
