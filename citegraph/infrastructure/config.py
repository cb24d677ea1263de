"""
CITEGRAPH CONFIG - Loading citegraph.toml

Configuration is loaded once, converted into a typed GraphConfig, and
handed to CitationGraph. Nothing else in the package reads files.

Usage:
    from citegraph.infrastructure.config import load_config

    config = load_config()                       # config/citegraph.toml
    config = load_config(Path("my.toml"))        # explicit file
    graph = CitationGraph("root", config=config)
"""
import logging
import tomllib
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import msgspec

from citegraph.infrastructure.logger import LoggerConfig


DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "citegraph.toml"


class GraphConfig(msgspec.Struct, kw_only=True, forbid_unknown_fields=True):
    """Typed view of citegraph.toml."""
    log_mutations: bool = True          # Record mutation events
    event_buffer_size: int = 10000      # Ring buffer size for mutation events
    log_path: Optional[str] = None      # Directory for JSONL mutation logs
    log_level: str = "WARNING"          # Level for the "citegraph" stdlib logger

    def logger_config(self) -> LoggerConfig:
        return LoggerConfig(
            enabled=self.log_mutations,
            buffer_size=self.event_buffer_size,
            log_path=Path(self.log_path) if self.log_path else None,
        )


def load_toml_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load the raw TOML tables.

    A missing or unreadable file yields an empty dict and a warning.
    """
    config_path = path or DEFAULT_CONFIG_PATH
    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        warnings.warn(f"Failed to load config from TOML: {e}")
        return {}


def load_config(path: Optional[Path] = None) -> GraphConfig:
    """
    Build a GraphConfig from the [graph] and [logging] tables.

    Raises:
        msgspec.ValidationError: If a key is unknown or has the wrong type
    """
    raw = load_toml_config(path)

    merged: Dict[str, Any] = {}
    merged.update(raw.get("graph", {}))
    merged.update(raw.get("logging", {}))

    # An empty string in TOML means "no file log"
    if merged.get("log_path") == "":
        merged["log_path"] = None

    return msgspec.convert(merged, GraphConfig)


def configure_logging(config: GraphConfig) -> None:
    """Apply the configured level to the package's stdlib logger."""
    logging.getLogger("citegraph").setLevel(config.log_level.upper())
