"""
Unit tests for viz/core.py - snapshots, deltas, layout plumbing and columnar export
"""
import io

import polars as pl

from core.ontology import EdgeState, LayoutDirection, NodeState, ObjectType
from core.schemas import GraphEdge, GraphNode, GraphState, Position
from viz.core import (
    DEFAULT_NODE_WIDTH,
    HIGHLIGHT_COLORS,
    NODE_COLORS,
    apply_layout,
    build_layout_request,
    create_snapshot,
    diff_states,
    serialize_to_arrow,
    write_parquet,
)


def node(node_id, *states, object_type=ObjectType.TABLE):
    return GraphNode(
        id=node_id,
        label=node_id,
        name=f"DB.PUBLIC.{node_id}",
        object_type=object_type,
        states={NodeState.IN_GRAPH, *states},
    )


def edge(source, target, *states):
    return GraphEdge(id=f"{source}-{target}", source=source, target=target, states=set(states))


def three_node_state():
    return GraphState(
        nodes={
            "a": node("a"),
            "b": node("b", NodeState.SELECTED, object_type=ObjectType.VIEW),
            "c": node("c", NodeState.HIDDEN),
        },
        edges={"a-b": edge("a", "b"), "b-c": edge("b", "c")},
    )


class TestSnapshot:

    def test_hidden_nodes_and_their_edges_are_left_out(self):
        snapshot = create_snapshot(three_node_state())
        assert [n.id for n in snapshot.nodes] == ["a", "b"]
        assert [e.id for e in snapshot.edges] == ["a-b"]
        assert snapshot.node_count == 2

    def test_include_hidden(self):
        snapshot = create_snapshot(three_node_state(), include_hidden=True)
        assert snapshot.node_count == 3
        assert snapshot.edge_count == 2

    def test_colors(self):
        by_id = {n.id: n for n in create_snapshot(three_node_state()).nodes}
        assert by_id["a"].color == NODE_COLORS["table"]
        assert by_id["b"].color == HIGHLIGHT_COLORS["selected"]
        assert by_id["b"].selected

    def test_hidden_edge(self):
        state = three_node_state()
        state.edges["a-b"].states.add(EdgeState.HIDDEN)
        assert create_snapshot(state).edge_count == 0


class TestDiff:

    def test_diff(self):
        before = three_node_state()
        after = three_node_state()
        del after.nodes["c"]
        del after.edges["b-c"]
        after.nodes["a"].position = Position(x=10, y=0)
        after.nodes["d"] = node("d")
        after.edges["a-d"] = edge("a", "d")

        delta = diff_states(before, after, sequence=7)
        assert [n.id for n in delta.nodes_added] == ["d"]
        assert [n.id for n in delta.nodes_updated] == ["a"]
        assert delta.nodes_removed == ["c"]
        assert [e.id for e in delta.edges_added] == ["a-d"]
        assert delta.edges_removed == ["b-c"]
        assert delta.sequence == 7

    def test_identical_states(self):
        assert diff_states(three_node_state(), three_node_state()).is_empty()


class TestLayout:

    def test_layout_request_skips_hidden(self):
        request = build_layout_request(
            three_node_state(), LayoutDirection.DOWN, sizes={"b": (250.0, 90.0)}
        )
        assert request.direction is LayoutDirection.DOWN
        sizes = {n.id: (n.width, n.height) for n in request.nodes}
        assert sizes["b"] == (250.0, 90.0)
        assert sizes["a"][0] == DEFAULT_NODE_WIDTH
        assert [e.id for e in request.edges] == ["a-b"]

    def test_apply_layout_is_one_history_step(self, store_factory, chain_catalog):
        store = store_factory(chain_catalog)
        store.add_node_by_id("S1")
        store.add_node_by_id("S2")

        moved = apply_layout(store, {"S1": (0.0, 0.0), "S2": Position(x=450.0, y=0.0), "missing": (1.0, 1.0)})
        assert moved == 2
        assert store.get_node("S2").position == Position(x=450.0, y=0.0)

        store.undo()
        assert store.get_node("S2").position == Position()


class TestColumnarExport:

    def test_arrow_ipc(self):
        nodes_bytes, edges_bytes = serialize_to_arrow(create_snapshot(three_node_state()))
        nodes = pl.read_ipc(io.BytesIO(nodes_bytes))
        edges = pl.read_ipc(io.BytesIO(edges_bytes))
        assert nodes["id"].to_list() == ["a", "b"]
        assert edges.columns == ["id", "source", "target", "relation", "color"]

    def test_parquet(self, tmp_path):
        nodes_path, edges_path = write_parquet(create_snapshot(GraphState()), tmp_path / "out")
        assert pl.read_parquet(nodes_path).height == 0
        assert pl.read_parquet(edges_path).schema["source"] == pl.Utf8
