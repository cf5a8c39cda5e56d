"""
State Store - persisted layouts for the lineage graph.

Two fixed keys in a key/value backend:
- lineage-saved-states: JSON object mapping saved-state id -> saved record
- lineage-current-state: the last saved state, for reopening a session

Backends:
- SqliteStateStore: one kv table in a local SQLite file
- InMemoryStateStore: a dict, for tests and throwaway sessions

Any backend failure surfaces as PersistenceError with the cause chained.
"""
import logging
import random
import sqlite3
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Protocol

import msgspec

from core.codec import decode_state, encode_state
from core.exceptions import PersistenceError, StateDecodeError
from core.schemas import GraphState, now_utc

logger = logging.getLogger(__name__)

SAVED_STATES_KEY = "lineage-saved-states"
CURRENT_STATE_KEY = "lineage-current-state"


class StateStore(Protocol):
    """Minimal key/value contract used for persistence."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryStateStore:
    """Dict-backed store."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SqliteStateStore:
    """SQLite-backed key/value store."""

    DB_PATH = Path("data/lineage_state.db")

    def __init__(self, db_path: Path | str | None = None):
        """
        Initialize the store.

        Args:
            db_path: Optional path to database file (defaults to data/lineage_state.db)
        """
        self.db_path = Path(db_path) if db_path else self.DB_PATH
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_schema()
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Cannot open state store at {self.db_path}: {e}") from e

    def _init_schema(self) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def get(self, key: str) -> Optional[str]:
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read {key}: {e}", key=key) from e
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                                   updated_at = excluded.updated_at
                    """,
                    (key, value, now_utc()),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to write {key}: {e}", key=key) from e

    def delete(self, key: str) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to delete {key}: {e}", key=key) from e


# =============================================================================
# SAVED STATES
# =============================================================================

class SavedStateInfo(msgspec.Struct, kw_only=True):
    """Listing entry for a saved state."""
    id: str
    name: str
    saved_at: str
    node_count: int
    edge_count: int


def generate_state_id() -> str:
    """state_<epoch ms>_<random base36 suffix>"""
    alphabet = "0123456789abcdefghijklmnopqrstuvwxyz"
    suffix = "".join(random.choice(alphabet) for _ in range(9))
    return f"state_{int(time.time() * 1000)}_{suffix}"


class StatePersistence:
    """
    Saved-state bookkeeping over a StateStore.

    Saved states are kept as encoded JSON text inside one JSON object, so
    each entry goes through the typed codec on its own and a corrupt entry
    does not hide the others.
    """

    def __init__(self, store: Optional[StateStore] = None):
        self.store = store if store is not None else InMemoryStateStore()

    def _read_saved(self) -> Dict[str, str]:
        raw = self.store.get(SAVED_STATES_KEY)
        if not raw:
            return {}
        try:
            return msgspec.json.decode(raw, type=Dict[str, str])
        except (msgspec.DecodeError, msgspec.ValidationError) as e:
            raise StateDecodeError(f"Saved states record is malformed: {e}", key=SAVED_STATES_KEY) from e

    def _write_saved(self, saved: Dict[str, str]) -> None:
        self.store.set(SAVED_STATES_KEY, msgspec.json.encode(saved).decode("utf-8"))

    def save(self, state: GraphState, name: Optional[str] = None) -> GraphState:
        """
        Persist state under a new id and as the current state.

        Returns:
            The saved copy, with metadata.id and metadata.name filled in
        """
        state_id = generate_state_id()
        saved_state = msgspec.structs.replace(
            state,
            metadata=msgspec.structs.replace(
                state.metadata,
                id=state_id,
                name=name or state.metadata.name or f"Graph State {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S')}",
            ),
        )
        text = encode_state(saved_state)
        saved = self._read_saved()
        saved[state_id] = text
        self._write_saved(saved)
        self.store.set(CURRENT_STATE_KEY, text)
        logger.info("Saved graph state %s (%d nodes)", state_id, len(state.nodes))
        return saved_state

    def load_current(self) -> Optional[GraphState]:
        raw = self.store.get(CURRENT_STATE_KEY)
        if raw is None:
            return None
        return decode_state(raw)

    def load(self, state_id: str) -> Optional[GraphState]:
        text = self._read_saved().get(state_id)
        if text is None:
            return None
        return decode_state(text)

    def list_states(self) -> List[SavedStateInfo]:
        """Saved states, newest first. Undecodable entries are skipped with a warning."""
        infos = []
        for state_id, text in self._read_saved().items():
            try:
                state = decode_state(text)
            except StateDecodeError as e:
                logger.warning("Skipping unreadable saved state %s: %s", state_id, e)
                continue
            infos.append(
                SavedStateInfo(
                    id=state_id,
                    name=state.metadata.name or state_id,
                    saved_at=state.metadata.last_modified,
                    node_count=len(state.nodes),
                    edge_count=len(state.edges),
                )
            )
        infos.sort(key=lambda info: info.saved_at, reverse=True)
        return infos

    def delete(self, state_id: str) -> bool:
        saved = self._read_saved()
        if state_id not in saved:
            return False
        del saved[state_id]
        self._write_saved(saved)
        return True
