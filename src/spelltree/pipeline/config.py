"""Tree parsing configuration loading."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import Any

from ruamel.yaml import YAML

# Default configuration values
DEFAULT_INJECTION_CHANCE = 50.0
DEFAULT_MAX_PREREQS = 3
DEFAULT_MIN_DEPTH = 3
CONFIG_FILENAME = "spelltree.yaml"

_TRUTHY = {"1", "true", "yes", "on"}


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


def _as_int(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_seed(value: Any) -> int | None:
    """Parse a seed; anything that is not an integer means no fixed seed."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class RepairConfig:
    """Configuration for the cycle / unreachability repairer.

    Attributes:
        preserve_multi_prereqs: Leave nodes with a mix of obtainable and
            unobtainable prerequisites alone in the iterative repair phase,
            keeping authored multi-prerequisite puzzles intact.
    """

    preserve_multi_prereqs: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepairConfig:
        """Create config from dictionary.

        Environment variable SPELLTREE_PRESERVE_MULTI_PREREQS overrides the
        file value when set.
        """
        value = os.getenv("SPELLTREE_PRESERVE_MULTI_PREREQS")
        if value is None:
            value = data.get("preserve_multi_prereqs")
        return cls(preserve_multi_prereqs=_as_bool(value, False))


@dataclass
class InjectionConfig:
    """Configuration for procedural prerequisite injection.

    Values are clamped on construction: ``chance`` to [0, 100],
    ``max_prereqs`` to at least 1, ``min_depth`` to at least 0.

    Attributes:
        enabled: Run injection automatically after every parse.
        chance: Percent chance that an eligible node gets an extra prerequisite.
        max_prereqs: Nodes already at this many prerequisites are skipped.
        min_depth: Nodes shallower than this are skipped.
        same_tier_preference: Prefer candidates exactly one level shallower.
        seed: Random seed for reproducible injection (None = nondeterministic).
    """

    enabled: bool = False
    chance: float = DEFAULT_INJECTION_CHANCE
    max_prereqs: int = DEFAULT_MAX_PREREQS
    min_depth: int = DEFAULT_MIN_DEPTH
    same_tier_preference: bool = True
    seed: int | None = None

    def __post_init__(self) -> None:
        self.chance = min(max(float(self.chance), 0.0), 100.0)
        self.max_prereqs = max(int(self.max_prereqs), 1)
        self.min_depth = max(int(self.min_depth), 0)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InjectionConfig:
        """Create config from dictionary.

        Environment variable SPELLTREE_SEED overrides ``seed`` when set.
        """
        seed_value: Any = os.getenv("SPELLTREE_SEED") or data.get("seed")
        chance = data.get("chance", DEFAULT_INJECTION_CHANCE)
        try:
            chance = float(chance)
        except (TypeError, ValueError):
            chance = DEFAULT_INJECTION_CHANCE
        return cls(
            enabled=_as_bool(data.get("enabled"), False),
            chance=chance,
            max_prereqs=_as_int(data.get("max_prereqs"), DEFAULT_MAX_PREREQS),
            min_depth=_as_int(data.get("min_depth"), DEFAULT_MIN_DEPTH),
            same_tier_preference=_as_bool(data.get("same_tier_preference"), True),
            seed=_as_seed(seed_value),
        )


@dataclass
class TreeConfig:
    """Configuration for parsing, repairing and injecting a spell tree."""

    repair: RepairConfig = field(default_factory=RepairConfig)
    injection: InjectionConfig = field(default_factory=InjectionConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TreeConfig:
        """Create config from dictionary.

        Args:
            data: Dictionary with optional ``repair`` and ``injection`` sections.

        Returns:
            TreeConfig instance.
        """
        return cls(
            repair=RepairConfig.from_dict(dict(data.get("repair") or {})),
            injection=InjectionConfig.from_dict(dict(data.get("injection") or {})),
        )


class ConfigError(Exception):
    """Raised when tree configuration cannot be loaded."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load tree config at {path}: {reason}")


def load_tree_config(config_path: Path) -> TreeConfig:
    """Load tree configuration from a YAML file.

    Args:
        config_path: Path to the YAML file.

    Returns:
        TreeConfig instance.

    Raises:
        ConfigError: If config cannot be loaded.
    """
    if not config_path.exists():
        raise ConfigError(config_path, "File not found")

    yaml = YAML(typ="safe")
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)

        if data is None:
            raise ConfigError(config_path, "Empty file")
        if not isinstance(data, dict):
            raise ConfigError(config_path, "Top level must be a mapping")

        return TreeConfig.from_dict(dict(data))
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(config_path, str(e)) from e


def create_default_config() -> TreeConfig:
    """Create a default tree configuration, honoring environment overrides."""
    return TreeConfig.from_dict({})
