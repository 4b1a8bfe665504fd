"""Tree parsing session, configuration and observer hooks."""

from spelltree.pipeline.config import (
    ConfigError,
    InjectionConfig,
    RepairConfig,
    TreeConfig,
    create_default_config,
    load_tree_config,
)
from spelltree.pipeline.hooks import LoggingObserver, TreeEvent, TreeObserver
from spelltree.pipeline.parser import ParseResult, SpellTreeParser, decode_source

__all__ = [
    "ConfigError",
    "InjectionConfig",
    "LoggingObserver",
    "ParseResult",
    "RepairConfig",
    "SpellTreeParser",
    "TreeConfig",
    "TreeEvent",
    "TreeObserver",
    "create_default_config",
    "decode_source",
    "load_tree_config",
]
