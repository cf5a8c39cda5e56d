"""
Integration tests - catalog file to saved, shared and exported graphs.

These run the real SQLite store and the CLI entry point against a small
warehouse catalog written to tmp_path.
"""
import sys

import msgspec
import polars as pl
import pytest

import main
from core.catalog import Catalog, CatalogDocument
from core.graph_store import GraphStore
from core.ontology import Direction, NodeState
from infrastructure.config import EngineConfig
from infrastructure.logger import MutationLogger
from infrastructure.state_store import SqliteStateStore, StatePersistence


@pytest.fixture
def warehouse_catalog(node_factory, edge_factory):
    """
    RAW_ORDERS -> STG_ORDERS -> FCT_SALES -> DASH_REVENUE (static edges)
    FCT_SALES also declares DIM_CUSTOMER upstream by name in metadata.
    """
    return Catalog(
        nodes=[
            node_factory("RAW_ORDERS", schema="RAW"),
            node_factory("STG_ORDERS", schema="STAGING"),
            node_factory("DIM_CUSTOMER", schema="MART"),
            node_factory("FCT_SALES", schema="MART", upstream=["DB.STAGING.STG_ORDERS", "DB.MART.DIM_CUSTOMER"]),
            node_factory("DASH_REVENUE", schema="BI"),
        ],
        edges=[
            edge_factory("RAW_ORDERS", "STG_ORDERS"),
            edge_factory("STG_ORDERS", "FCT_SALES"),
            edge_factory("FCT_SALES", "DASH_REVENUE"),
        ],
    )

@pytest.fixture
def catalog_file(tmp_path, warehouse_catalog):
    path = tmp_path / "catalog.json"
    path.write_bytes(warehouse_catalog.to_json())
    return path

@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "lineage.toml"
    path.write_text(
        f'[engine]\nstore_path = "{(tmp_path / "state.db").as_posix()}"\n'
        f'log_path = "{(tmp_path / "logs").as_posix()}"\n',
        encoding="utf-8",
    )
    return path

def sqlite_store(catalog, db_path):
    return GraphStore(
        catalog,
        config=EngineConfig(),
        persistence=StatePersistence(SqliteStateStore(db_path)),
        mutation_logger=MutationLogger(),
    )

class TestSessionLifecycle:

    def test_expand_save_reload_share(self, tmp_path, catalog_file):
        catalog = Catalog.load(catalog_file)
        store = sqlite_store(catalog, tmp_path / "state.db")

        store.add_node_by_id("FCT_SALES")
        upstream = store.expand_upstream("FCT_SALES")
        downstream = store.expand_downstream("FCT_SALES")

        # Metadata governs the whole upstream closure, so RAW_ORDERS (static edge only) stays out
        assert set(upstream.added_node_ids) == {"STG_ORDERS", "DIM_CUSTOMER"}
        assert downstream.added_node_ids == ["DASH_REVENUE"]
        assert store.get_node("DIM_CUSTOMER").position.x < store.get_node("FCT_SALES").position.x

        state_id = store.save_state("sales lineage")
        url = store.generate_shareable_url("https://lineage.example.com/view")

        reopened = sqlite_store(catalog, tmp_path / "state.db")
        assert reopened.load_state()
        assert reopened.node_ids() == store.node_ids()
        assert reopened.get_state().metadata.id == state_id
        assert [s.name for s in reopened.get_saved_states()] == ["sales lineage"]

        shared = sqlite_store(catalog, tmp_path / "other.db")
        assert shared.load_state_from_url(url)
        assert shared.edge_ids() == store.edge_ids()

        # Collapse works from restored provenance
        removed = reopened.collapse_upstream("FCT_SALES")
        assert set(removed) == {"STG_ORDERS", "DIM_CUSTOMER"}
        assert NodeState.EXPANDED_UPSTREAM not in reopened.get_node("FCT_SALES").states
        assert reopened.has_node("DASH_REVENUE")

    def test_undo_walks_back_to_single_node(self, warehouse_catalog, tmp_path):
        store = sqlite_store(warehouse_catalog, tmp_path / "state.db")
        store.add_node_by_id("FCT_SALES")
        store.expand("FCT_SALES", Direction.UPSTREAM)
        store.expand("FCT_SALES", Direction.DOWNSTREAM)

        assert store.undo() and store.undo()
        assert store.node_ids() == {"FCT_SALES"}
        assert store.redo()
        assert "DIM_CUSTOMER" in store.node_ids()
        assert "DASH_REVENUE" not in store.node_ids()

class TestCommandLine:

    def run(self, monkeypatch, *argv):
        monkeypatch.setattr(sys, "argv", ["main.py", *argv])
        main.main()

    def test_discover(self, monkeypatch, capsys, catalog_file):
        self.run(monkeypatch, "discover", str(catalog_file), "STG_ORDERS", "--direction", "downstream")
        out = capsys.readouterr().out
        assert "downstream (static_edge): 2 nodes" in out
        assert "DASH_REVENUE" in out

    def test_expand_save_list_export(self, monkeypatch, capsys, tmp_path, catalog_file, config_file):
        graph_path = tmp_path / "graph.json"
        self.run(
            monkeypatch, "--config", str(config_file),
            "expand", str(catalog_file), "FCT_SALES", "--both",
            "--output", str(graph_path), "--save", "cli state",
        )
        assert "Saved as state_" in capsys.readouterr().out
        assert graph_path.exists()

        self.run(monkeypatch, "--config", str(config_file), "states")
        assert "cli state" in capsys.readouterr().out

        self.run(
            monkeypatch, "--config", str(config_file),
            "export", "--input", str(graph_path), "--output", str(tmp_path / "export"),
        )
        nodes = pl.read_parquet(tmp_path / "export" / "nodes.parquet")
        assert nodes.height == 4

    def test_unknown_node_exits_with_error(self, monkeypatch, capsys, catalog_file):
        with pytest.raises(SystemExit) as excinfo:
            self.run(monkeypatch, "discover", str(catalog_file), "NOPE")
        assert excinfo.value.code == 1
        assert "Error:" in capsys.readouterr().out

    def test_catalog_document_round_trip(self, catalog_file):
        doc = msgspec.json.decode(catalog_file.read_bytes(), type=CatalogDocument)
        assert len(doc.nodes) == 5
