"""sitewarden configuration loader.

Priority (high → low):
  1. CLI flags                (handled at call site — not in this module)
  2. Environment variables    (SITEWARDEN_WATCH_DIR, SITEWARDEN_DB,
                               SITEWARDEN_ARTIFACT_DIR, SITEWARDEN_RELOAD_COMMAND,
                               SITEWARDEN_LOG_LEVEL)
  3. Per-project sitewarden.yaml
  4. Hardcoded defaults

All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CONFIG_FILE_NAME: str = "sitewarden.yaml"

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["watch", "database", "artifacts", "intervals", "logging"]
)

_LOG_LEVELS: frozenset[str] = frozenset(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class WatchCfg:
    """Definitions directory (sitewarden.yaml: watch:)."""

    directory: str = "services"
    pattern: str = "*.toml"


@dataclass
class DatabaseCfg:
    """SQLite store location (sitewarden.yaml: database:)."""

    path: str = ".sitewarden.db"


@dataclass
class ArtifactsCfg:
    """Generated proxy config (sitewarden.yaml: artifacts:).

    Attributes:
        directory: Where server blocks are written.
        reload_command: Run after every write/remove; empty disables reloads.
    """

    directory: str = "sites-enabled"
    reload_command: str = ""


@dataclass
class IntervalsCfg:
    """Polling cadence in seconds (sitewarden.yaml: intervals:)."""

    scan_seconds: float = 5.0
    clean_seconds: float = 60.0


@dataclass
class LoggingCfg:
    level: str = "INFO"


@dataclass
class SitewardenConfig:
    """Root configuration object, built by load_config() from merged layers."""

    watch: WatchCfg = field(default_factory=WatchCfg)
    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    artifacts: ArtifactsCfg = field(default_factory=ArtifactsCfg)
    intervals: IntervalsCfg = field(default_factory=IntervalsCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _positive(value: Any, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc
    if number <= 0:
        raise ConfigError(f"{name} must be greater than 0, got {number}")
    return number


def _log_level(value: Any) -> str:
    level = str(value).upper()
    if level not in _LOG_LEVELS:
        raise ConfigError(
            f"logging.level must be one of {', '.join(sorted(_LOG_LEVELS))}, got {value!r}"
        )
    return level


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    raw = data.get(name) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping, got {type(raw).__name__}")
    return raw


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------


def _cfg_from_dict(data: dict[str, Any]) -> SitewardenConfig:
    """Build a *SitewardenConfig* from a raw YAML dict."""
    cfg = SitewardenConfig()

    if "watch" in data:
        w = _section(data, "watch")
        cfg.watch = WatchCfg(
            directory=str(w.get("directory", cfg.watch.directory)),
            pattern=str(w.get("pattern", cfg.watch.pattern)),
        )

    if "database" in data:
        d = _section(data, "database")
        cfg.database = DatabaseCfg(path=str(d.get("path", cfg.database.path)))

    if "artifacts" in data:
        a = _section(data, "artifacts")
        cfg.artifacts = ArtifactsCfg(
            directory=str(a.get("directory", cfg.artifacts.directory)),
            reload_command=str(a.get("reload_command") or ""),
        )

    if "intervals" in data:
        i = _section(data, "intervals")
        cfg.intervals = IntervalsCfg(
            scan_seconds=_positive(i.get("scan_seconds", cfg.intervals.scan_seconds), "intervals.scan_seconds"),
            clean_seconds=_positive(
                i.get("clean_seconds", cfg.intervals.clean_seconds), "intervals.clean_seconds"
            ),
        )

    if "logging" in data:
        lg = _section(data, "logging")
        cfg.logging = LoggingCfg(level=_log_level(lg.get("level", cfg.logging.level)))

    return cfg


def _apply_env_overrides(cfg: SitewardenConfig) -> SitewardenConfig:
    """Apply SITEWARDEN_* environment variable overrides."""
    if value := os.environ.get("SITEWARDEN_WATCH_DIR"):
        cfg.watch.directory = value
    if value := os.environ.get("SITEWARDEN_DB"):
        cfg.database.path = value
    if value := os.environ.get("SITEWARDEN_ARTIFACT_DIR"):
        cfg.artifacts.directory = value
    if (value := os.environ.get("SITEWARDEN_RELOAD_COMMAND")) is not None:
        cfg.artifacts.reload_command = value
    if value := os.environ.get("SITEWARDEN_LOG_LEVEL"):
        cfg.logging.level = _log_level(value)
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(project_dir: Path | None = None) -> SitewardenConfig:
    """Load and return a merged *SitewardenConfig*.

    Applies layers in order: defaults → sitewarden.yaml → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *sitewarden.yaml*. Defaults to CWD.

    Raises:
        ConfigError: If the config file is not a mapping or holds an invalid value.
    """
    search_dir = project_dir if project_dir is not None else Path.cwd()
    cfg_path = search_dir / CONFIG_FILE_NAME

    data: dict[str, Any] = {}
    if cfg_path.exists():
        raw = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
        if not isinstance(raw, dict):
            raise ConfigError(f"'{cfg_path}' must contain a mapping at the top level")
        _warn_unknown_keys(raw, cfg_path)
        data = raw

    cfg = _cfg_from_dict(data)
    return _apply_env_overrides(cfg)


def write_default_config(project_dir: Path) -> Path:
    """Create ``sitewarden.yaml`` with defaults if it does not exist.

    Returns:
        Path to the config file.
    """
    target = project_dir / CONFIG_FILE_NAME
    if not target.exists():
        defaults = SitewardenConfig()
        content = {
            "watch": {"directory": defaults.watch.directory, "pattern": defaults.watch.pattern},
            "database": {"path": defaults.database.path},
            "artifacts": {
                "directory": defaults.artifacts.directory,
                "reload_command": "nginx -s reload",
            },
            "intervals": {
                "scan_seconds": defaults.intervals.scan_seconds,
                "clean_seconds": defaults.intervals.clean_seconds,
            },
            "logging": {"level": defaults.logging.level},
        }
        target.write_text(
            "# sitewarden configuration\n" + yaml.safe_dump(content, sort_keys=False),
            encoding="utf-8",
        )
    return target
