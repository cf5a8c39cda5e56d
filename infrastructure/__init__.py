"""
LINEAGE INFRASTRUCTURE - System-Level Modules

This package contains infrastructure components:
- config: TOML-backed engine configuration
- logger: Mutation event logging (buffer, NDJSON file, subscribers)
- state_store: SQLite / in-memory persistence for saved graph states
"""

from infrastructure.config import EngineConfig, load_config
from infrastructure.logger import MutationLogger, LoggerConfig
from infrastructure.state_store import (
    StatePersistence,
    SqliteStateStore,
    InMemoryStateStore,
)

__all__ = [
    "EngineConfig",
    "load_config",
    "MutationLogger",
    "LoggerConfig",
    "StatePersistence",
    "SqliteStateStore",
    "InMemoryStateStore",
]
