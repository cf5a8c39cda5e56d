"""
Engine configuration loaded from config/lineage.toml.

The [engine] table maps onto EngineConfig field by field. A missing or
unreadable file falls back to defaults with a warning; values of the wrong
type raise ConfigError.
"""
import os
import tomllib
import warnings
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import msgspec

from core.exceptions import ConfigError
from core.ontology import UnresolvedReferencePolicy

CONFIG_ENV_VAR = "LINEAGE_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "lineage.toml"


class EngineConfig(msgspec.Struct, kw_only=True, forbid_unknown_fields=True):
    """Tunables for the graph store and its collaborators."""
    history_capacity: int = 50
    record_history: bool = True

    expansion_offset_x: float = 300.0
    expansion_spacing_x: float = 200.0
    neutral_position: Tuple[float, float] = (0.0, 0.0)

    unresolved_references: UnresolvedReferencePolicy = UnresolvedReferencePolicy.DROP

    # 0 disables grouping of large expansions
    group_threshold: int = 0
    group_visible_count: int = 3

    share_base_url: str = "http://localhost:3000/lineage"
    share_param: str = "state"

    store_path: Optional[str] = "data/lineage_state.db"
    log_path: Optional[str] = "workspace/logs"
    enable_file_log: bool = False

    def __post_init__(self):
        if self.history_capacity < 1:
            raise ValueError("history_capacity must be at least 1")
        if self.group_threshold < 0 or self.group_visible_count < 0:
            raise ValueError("group settings must not be negative")


def load_toml_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Read the raw TOML document.

    Resolution order: explicit path, $LINEAGE_CONFIG, config/lineage.toml.
    """
    config_path = Path(path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        warnings.warn(f"Failed to load config from {config_path}: {e}")
        return {}


def load_config(path: Optional[Union[str, Path]] = None, **overrides: Any) -> EngineConfig:
    """
    Build an EngineConfig from TOML plus keyword overrides.

    Raises:
        ConfigError: If a value has the wrong type or an unknown key is set
    """
    values = dict(load_toml_config(path).get("engine", {}))
    values.update(overrides)
    try:
        return msgspec.convert(values, EngineConfig)
    except msgspec.ValidationError as e:
        raise ConfigError(f"Invalid engine configuration: {e}") from e
