"""
CITEGRAPH INFRASTRUCTURE - Ambient Modules

This package contains:
- config: citegraph.toml loading into a typed GraphConfig
- logger: mutation event logging (ring buffer, JSONL file, subscribers)
"""

from citegraph.infrastructure.logger import (
    MutationLogger,
    MutationEvent,
    MutationType,
    LoggerConfig,
    get_logger,
    configure_logger,
)
from citegraph.infrastructure.config import (
    GraphConfig,
    load_config,
    configure_logging,
)

__all__ = [
    "MutationLogger",
    "MutationEvent",
    "MutationType",
    "LoggerConfig",
    "get_logger",
    "configure_logger",
    "GraphConfig",
    "load_config",
    "configure_logging",
]
