"""
LINEAGE MUTATION LOGGER - The Graph Flight Recorder

Records every graph mutation with a timestamp and sequence number so a
session can be replayed or inspected, and fans events out to subscribers
(the change-notification channel for presentation code).

Architecture:
- MutationLogger: Core logging interface
- FileLogger: Newline-delimited JSON log, one file per day
- EventBuffer: In-memory ring buffer for recent events

Usage:
    logger = MutationLogger()
    logger.subscribe(lambda event: print(event.mutation_type))
    logger.log_node_created("orders", "table")

    events = logger.get_events_for_node("orders")
"""
import io
import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

import msgspec

from viz.core import MutationEvent, MutationType

log = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class LoggerConfig:
    """Configuration for the mutation logger."""
    enable_file_log: bool = False       # Enable file-based logging
    log_path: Optional[Path] = None     # Directory for log files
    buffer_size: int = 10000            # In-memory buffer size

    def __post_init__(self):
        if self.log_path is None:
            self.log_path = Path("./workspace/logs")
        else:
            self.log_path = Path(self.log_path)


# =============================================================================
# EVENT BUFFER
# =============================================================================

class EventBuffer:
    """
    Thread-safe ring buffer for recent mutation events.

    Provides O(1) append and O(n) query for time-based filtering.
    """

    def __init__(self, max_size: int = 10000):
        self._buffer: deque = deque(maxlen=max_size)
        self._lock = threading.RLock()
        self._sequence = 0

    def append(self, event: MutationEvent) -> None:
        with self._lock:
            self._buffer.append(event)

    def get_since(self, timestamp: str) -> List[MutationEvent]:
        """Get all events since a timestamp."""
        with self._lock:
            return [e for e in self._buffer if e.timestamp >= timestamp]

    def get_last(self, n: int) -> List[MutationEvent]:
        with self._lock:
            items = list(self._buffer)
            return items[-n:] if n > 0 else []

    def get_by_node(self, node_id: str) -> List[MutationEvent]:
        """Events naming node_id directly or among their bulk node ids."""
        with self._lock:
            return [
                e for e in self._buffer
                if e.node_id == node_id or node_id in e.node_ids
            ]

    def get_by_type(self, mutation_type: str) -> List[MutationEvent]:
        with self._lock:
            return [e for e in self._buffer if e.mutation_type == mutation_type]

    def next_sequence(self) -> int:
        with self._lock:
            self._sequence += 1
            return self._sequence

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)


# =============================================================================
# FILE LOGGER
# =============================================================================

class FileLogger:
    """
    File-based event logger.

    Writes events as newline-delimited JSON. Rotates logs daily.
    """

    def __init__(self, log_path: Path):
        self._log_path = Path(log_path)
        self._current_file: Optional[io.TextIOWrapper] = None
        self._current_date: Optional[str] = None
        self._lock = threading.Lock()
        self._encoder = msgspec.json.Encoder()

        self._log_path.mkdir(parents=True, exist_ok=True)

    def write(self, event: MutationEvent) -> None:
        with self._lock:
            self._ensure_file()
            line = self._encoder.encode(event).decode("utf-8") + "\n"
            self._current_file.write(line)
            self._current_file.flush()

    def _ensure_file(self) -> None:
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        if self._current_date != today:
            if self._current_file:
                self._current_file.close()
            filepath = self._log_path / f"mutations_{today}.jsonl"
            self._current_file = open(filepath, "a", encoding="utf-8")
            self._current_date = today

    def close(self) -> None:
        with self._lock:
            if self._current_file:
                self._current_file.close()
                self._current_file = None

    def read_log(self, date: str) -> List[MutationEvent]:
        """Read events from a specific date's log, skipping corrupt lines."""
        filepath = self._log_path / f"mutations_{date}.jsonl"
        if not filepath.exists():
            return []

        events = []
        decoder = msgspec.json.Decoder(type=MutationEvent)
        with open(filepath, "r", encoding="utf-8") as f:
            for number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(decoder.decode(line.encode()))
                except (msgspec.DecodeError, msgspec.ValidationError) as exc:
                    log.warning("Skipping corrupt log line %s:%d (%s)", filepath, number, exc)
        return events


# =============================================================================
# MUTATION LOGGER (Main Interface)
# =============================================================================

class MutationLogger:
    """
    Main logging interface for graph mutations.

    Events always go to the in-memory buffer, optionally to a file, and to
    every subscriber. A failing subscriber is logged and does not stop the
    others.
    """

    def __init__(self, config: Optional[LoggerConfig] = None):
        self.config = config or LoggerConfig()
        self._buffer = EventBuffer(self.config.buffer_size)
        self._file_logger: Optional[FileLogger] = None
        if self.config.enable_file_log and self.config.log_path:
            self._file_logger = FileLogger(self.config.log_path)
        self._subscribers: List[Callable[[MutationEvent], None]] = []

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def _emit(self, event: MutationEvent) -> None:
        self._buffer.append(event)

        if self._file_logger:
            self._file_logger.write(event)

        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception:
                log.exception("Mutation subscriber %r failed", subscriber)

    def _event(self, mutation_type: MutationType, **fields: Any) -> MutationEvent:
        event = MutationEvent(
            timestamp=self._now(),
            sequence=self._buffer.next_sequence(),
            mutation_type=mutation_type.value,
            **fields,
        )
        self._emit(event)
        return event

    # =========================================================================
    # LOGGING METHODS
    # =========================================================================

    def log_node_created(self, node_id: str, node_type: str) -> MutationEvent:
        return self._event(MutationType.NODE_CREATED, node_id=node_id, node_type=node_type)

    def log_node_updated(self, node_id: str, node_type: str, detail: Optional[str] = None) -> MutationEvent:
        return self._event(MutationType.NODE_UPDATED, node_id=node_id, node_type=node_type, detail=detail)

    def log_node_deleted(self, node_id: str, node_type: str) -> MutationEvent:
        return self._event(MutationType.NODE_DELETED, node_id=node_id, node_type=node_type)

    def log_edge_created(self, edge_id: str, source_id: str, target_id: str, relation: str) -> MutationEvent:
        return self._event(
            MutationType.EDGE_CREATED,
            edge_id=edge_id, source_id=source_id, target_id=target_id, relation=relation,
        )

    def log_edge_updated(self, edge_id: str, detail: Optional[str] = None) -> MutationEvent:
        return self._event(MutationType.EDGE_UPDATED, edge_id=edge_id, detail=detail)

    def log_edge_deleted(self, edge_id: str, source_id: str, target_id: str, relation: str) -> MutationEvent:
        return self._event(
            MutationType.EDGE_DELETED,
            edge_id=edge_id, source_id=source_id, target_id=target_id, relation=relation,
        )

    def log_expanded(self, node_id: str, direction: str, node_ids: Iterable[str]) -> MutationEvent:
        return self._event(MutationType.EXPANDED, node_id=node_id, direction=direction, node_ids=list(node_ids))

    def log_collapsed(self, node_id: str, direction: str, node_ids: Iterable[str]) -> MutationEvent:
        return self._event(MutationType.COLLAPSED, node_id=node_id, direction=direction, node_ids=list(node_ids))

    def log_selection_changed(self, node_ids: Iterable[str], detail: Optional[str] = None) -> MutationEvent:
        return self._event(MutationType.SELECTION_CHANGED, node_ids=sorted(node_ids), detail=detail)

    def log_focus_changed(self, node_id: Optional[str], edge_id: Optional[str] = None) -> MutationEvent:
        return self._event(MutationType.FOCUS_CHANGED, node_id=node_id, edge_id=edge_id)

    def log_filters_changed(self, detail: Optional[str] = None) -> MutationEvent:
        return self._event(MutationType.FILTERS_CHANGED, detail=detail)

    def log_viewport_changed(self, detail: Optional[str] = None) -> MutationEvent:
        return self._event(MutationType.VIEWPORT_CHANGED, detail=detail)

    def log_state_replaced(self, detail: str) -> MutationEvent:
        return self._event(MutationType.STATE_REPLACED, detail=detail)

    def log_state_saved(self, state_id: str) -> MutationEvent:
        return self._event(MutationType.STATE_SAVED, detail=state_id)

    # =========================================================================
    # QUERY METHODS
    # =========================================================================

    def get_recent_events(self, n: int = 100) -> List[MutationEvent]:
        return self._buffer.get_last(n)

    def get_events_since(self, timestamp: str) -> List[MutationEvent]:
        return self._buffer.get_since(timestamp)

    def get_events_for_node(self, node_id: str) -> List[MutationEvent]:
        return self._buffer.get_by_node(node_id)

    def get_events_by_type(self, mutation_type: str) -> List[MutationEvent]:
        if isinstance(mutation_type, MutationType):
            mutation_type = mutation_type.value
        return self._buffer.get_by_type(mutation_type)

    def get_node_timeline(self, node_id: str) -> List[Dict[str, Any]]:
        """
        Get a timeline of mutations for a node.

        Returns a simplified list of mutations for debugging.
        """
        return [
            {
                "time": e.timestamp,
                "type": e.mutation_type,
                "direction": e.direction,
                "detail": e.detail,
            }
            for e in self.get_events_for_node(node_id)
        ]

    def read_log(self, date: str) -> List[MutationEvent]:
        if self._file_logger is None:
            return []
        return self._file_logger.read_log(date)

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================

    def subscribe(self, callback: Callable[[MutationEvent], None]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[MutationEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def close(self) -> None:
        if self._file_logger:
            self._file_logger.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
