"""Configuration loading for rpai.

Configuration is read once at startup and handed to the engine as an
immutable value. rpai never writes the file.
"""

import logging
import os
import re
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path

import tomlkit
from tomlkit.exceptions import TOMLKitError

from rpai.errors import ConfigError
from rpai.models import AgentKind

logger = logging.getLogger(__name__)

config_path = (
    Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "rpai" / "config.toml"
)

DEFAULT_EXCLUDE_PATTERNS = (
    r"language-server",
    r"\blsp\b",
    r"gopls",
    r"rust-analyzer",
    r"pyright",
    r"tsserver",
)


class SymbolStyle(Enum):
    """State indicator glyph sets."""

    UNICODE = "unicode"
    ASCII = "ascii"


class KillPolicy(Enum):
    """What a kill command signals."""

    PROCESS = "process"  # the matched agent process only
    GROUP = "group"  # the agent's whole process group


@dataclass(frozen=True)
class EngineConfig:
    idle_cpu_threshold: float = 1.0
    grace_period_seconds: float = 60.0
    stale_after_seconds: float = 30 * 60.0
    refresh_interval: float = 1.0
    scan_sample_seconds: float = 0.25
    max_ancestor_depth: int = 64
    exclude_patterns: tuple[str, ...] = DEFAULT_EXCLUDE_PATTERNS
    symbol_style: SymbolStyle = SymbolStyle.UNICODE
    kill_policy: KillPolicy = KillPolicy.PROCESS
    agent_binaries: dict[str, AgentKind] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.idle_cpu_threshold < 0:
            raise ConfigError("idle_cpu_threshold must not be negative")
        if self.refresh_interval <= 0:
            raise ConfigError("refresh_interval must be positive")
        if self.max_ancestor_depth < 1:
            raise ConfigError("max_ancestor_depth must be at least 1")
        if self.stale_after_seconds < self.grace_period_seconds:
            raise ConfigError("stale_after_seconds must not be below grace_period_seconds")
        for pattern in self.exclude_patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ConfigError(f"Invalid exclude pattern {pattern!r}: {e}") from e

    @classmethod
    def from_dict(cls, doc: dict) -> "EngineConfig":
        doc = dict(doc)
        agents = doc.pop("agents", {})
        if not isinstance(agents, dict):
            raise ConfigError("agents must be a table of binary name = agent kind")
        known = {f.name for f in fields(cls)} - {"agent_binaries"}
        unknown = set(doc) - known
        if unknown:
            logger.warning(f"Unknown keys in config: {sorted(unknown)}")

        kwargs: dict = {key: doc[key] for key in known if key in doc}
        try:
            if "exclude_patterns" in kwargs:
                if not isinstance(kwargs["exclude_patterns"], (list, tuple)):
                    raise ConfigError("exclude_patterns must be a list of regular expressions")
                kwargs["exclude_patterns"] = tuple(kwargs["exclude_patterns"])
            if "symbol_style" in kwargs:
                kwargs["symbol_style"] = SymbolStyle(kwargs["symbol_style"])
            if "kill_policy" in kwargs:
                kwargs["kill_policy"] = KillPolicy(kwargs["kill_policy"])
            kwargs["agent_binaries"] = {
                str(name): AgentKind(kind) for name, kind in agents.items()
            }
        except ValueError as e:
            raise ConfigError(str(e)) from e
        try:
            return cls(**kwargs)
        except TypeError as e:
            raise ConfigError(f"Invalid config value: {e}") from e


def load_config(path: str | Path | None = None) -> EngineConfig:
    """
    Load the engine configuration.

    Args:
        path: Config file to read. Defaults to $RPAI_CONFIG, then
            ~/.config/rpai/config.toml. A missing file yields the defaults.
    """
    if path is None:
        path = os.environ.get("RPAI_CONFIG") or config_path
    path = Path(path)
    if not path.exists():
        logger.debug(f"No config file at {path}, using defaults")
        return EngineConfig()

    try:
        with open(path) as config_file:
            doc = tomlkit.load(config_file).unwrap()
    except (OSError, TOMLKitError) as e:
        raise ConfigError(f"Could not read config file {path}: {e}") from e
    logger.debug(f"Loaded config from {path}")
    return EngineConfig.from_dict(doc)
