"""
Unit tests for infrastructure/state_store.py - key/value backends and saved states
"""
import re

import pytest

from core.exceptions import PersistenceError, StateDecodeError
from core.schemas import GraphMetadata, GraphNode, GraphState
from infrastructure.state_store import (
    CURRENT_STATE_KEY,
    SAVED_STATES_KEY,
    InMemoryStateStore,
    SqliteStateStore,
    StatePersistence,
    generate_state_id,
)


def sample_state(*node_ids, last_modified="2026-01-01T00:00:00+00:00"):
    return GraphState(
        nodes={n: GraphNode(id=n, label=n, name=f"DB.PUBLIC.{n}") for n in node_ids},
        metadata=GraphMetadata(last_modified=last_modified),
    )


class TestSqliteStateStore:

    def test_set_get_delete(self, tmp_path):
        store = SqliteStateStore(tmp_path / "state.db")
        assert store.get("k") is None
        store.set("k", "v1")
        store.set("k", "v2")
        assert store.get("k") == "v2"
        store.delete("k")
        assert store.get("k") is None

    def test_persists_across_instances(self, tmp_path):
        SqliteStateStore(tmp_path / "state.db").set("k", "v")
        assert SqliteStateStore(tmp_path / "state.db").get("k") == "v"

    def test_unopenable_path_raises(self, tmp_path):
        with pytest.raises(PersistenceError) as excinfo:
            SqliteStateStore(tmp_path)
        assert excinfo.value.__cause__ is not None


class TestStatePersistence:

    def test_generate_state_id_format(self):
        assert re.fullmatch(r"state_\d+_[0-9a-z]{9}", generate_state_id())

    def test_save_writes_saved_and_current(self):
        backend = InMemoryStateStore()
        persistence = StatePersistence(backend)
        saved = persistence.save(sample_state("a"), name="first")

        assert saved.metadata.id.startswith("state_")
        assert saved.metadata.name == "first"
        assert backend.get(CURRENT_STATE_KEY) is not None
        assert saved.metadata.id in backend.get(SAVED_STATES_KEY)
        assert persistence.load(saved.metadata.id) == saved
        assert persistence.load_current() == saved

    def test_default_name(self):
        saved = StatePersistence().save(sample_state("a"))
        assert saved.metadata.name.startswith("Graph State ")

    def test_list_newest_first(self):
        persistence = StatePersistence()
        old = persistence.save(sample_state("a", last_modified="2026-01-01T00:00:00+00:00"), name="old")
        new = persistence.save(sample_state("a", "b", last_modified="2026-02-01T00:00:00+00:00"), name="new")

        infos = persistence.list_states()
        assert [i.id for i in infos] == [new.metadata.id, old.metadata.id]
        assert infos[0].node_count == 2

    def test_corrupt_entry_is_skipped(self):
        backend = InMemoryStateStore()
        persistence = StatePersistence(backend)
        good = persistence.save(sample_state("a"), name="good")
        backend.set(
            SAVED_STATES_KEY,
            backend.get(SAVED_STATES_KEY)[:-1] + ', "state_bad": "{not json"}',
        )

        assert [i.id for i in persistence.list_states()] == [good.metadata.id]
        with pytest.raises(StateDecodeError):
            persistence.load("state_bad")

    def test_delete(self):
        persistence = StatePersistence()
        saved = persistence.save(sample_state("a"))
        assert persistence.delete(saved.metadata.id) is True
        assert persistence.delete(saved.metadata.id) is False
        assert persistence.load(saved.metadata.id) is None

    def test_missing_current(self):
        assert StatePersistence().load_current() is None
