"""Application configuration loader.

Loads configuration from oscamp.yaml in the working directory (or the file
named by $OSCAMP_CONFIG), falling back to built-in defaults for anything
the file does not set.

Usage:
    from oscamp.config.app_config import load_app_config

    config = load_app_config()
    timeout = config.runner.timeout_seconds
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("oscamp.yaml")
CONFIG_ENV_VAR = "OSCAMP_CONFIG"


@dataclass
class RunnerConfig:
    """How the test command for one exercise is built and bounded."""

    command: list[str] = field(
        default_factory=lambda: ["cargo", "test", "-p", "{package}"]
    )
    target_args: list[str] = field(default_factory=lambda: ["--target", "{target}"])
    quiet_args: list[str] = field(default_factory=lambda: ["--quiet"])
    color_args: list[str] = field(default_factory=lambda: ["--color=always"])
    target_harness_args: list[str] = field(default_factory=lambda: ["--nocapture"])
    timeout_seconds: float | None = 300.0


@dataclass
class WatchConfig:
    """File watcher settings."""

    debounce_ms: int = 300
    poll_interval_ms: int = 200

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0


@dataclass
class ProgressConfig:
    """Optional persistence of outcomes across restarts."""

    persist: bool = False
    state_file: str = ".oscamp/progress_v1.json"


@dataclass
class PlatformConfig:
    """Emulation settings for exercises built for a foreign architecture."""

    sysroots: dict[str, str] = field(default_factory=dict)


@dataclass
class UIConfig:
    """Rendering limits for the interactive view."""

    max_output_lines: int = 30
    progress_width: int = 20


@dataclass
class AppConfig:
    """Application-wide configuration."""

    curriculum: list[str] = field(
        default_factory=lambda: ["exercises.toml", "../exercises.toml"]
    )
    runner: RunnerConfig = field(default_factory=RunnerConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    progress: ProgressConfig = field(default_factory=ProgressConfig)
    platform: PlatformConfig = field(default_factory=PlatformConfig)
    ui: UIConfig = field(default_factory=UIConfig)


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "curriculum": ["exercises.toml", "../exercises.toml"],
        "runner": {
            "command": ["cargo", "test", "-p", "{package}"],
            "target_args": ["--target", "{target}"],
            "quiet_args": ["--quiet"],
            "color_args": ["--color=always"],
            "target_harness_args": ["--nocapture"],
            "timeout_seconds": 300,
        },
        "watch": {
            "debounce_ms": 300,
            "poll_interval_ms": 200,
        },
        "progress": {
            "persist": False,
            "state_file": ".oscamp/progress_v1.json",
        },
        "platform": {
            "sysroots": {"riscv64": "/usr/riscv64-linux-gnu"},
        },
        "ui": {
            "max_output_lines": 30,
            "progress_width": 20,
        },
    }


def _merge(defaults: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Merge user overrides into defaults, one level of nesting deep."""
    result = dict(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = {**result[key], **value}
        else:
            result[key] = value
    return result


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    curriculum = data.get("curriculum", [])
    if isinstance(curriculum, str):
        curriculum = [curriculum]

    runner_data = data.get("runner", {})
    timeout = runner_data.get("timeout_seconds")
    runner = RunnerConfig(
        command=list(runner_data.get("command", [])),
        target_args=list(runner_data.get("target_args", [])),
        quiet_args=list(runner_data.get("quiet_args", [])),
        color_args=list(runner_data.get("color_args", [])),
        target_harness_args=list(runner_data.get("target_harness_args", [])),
        timeout_seconds=float(timeout) if timeout else None,
    )

    watch_data = data.get("watch", {})
    watch = WatchConfig(
        debounce_ms=int(watch_data.get("debounce_ms", 300)),
        poll_interval_ms=int(watch_data.get("poll_interval_ms", 200)),
    )

    progress_data = data.get("progress", {})
    progress = ProgressConfig(
        persist=bool(progress_data.get("persist", False)),
        state_file=progress_data.get("state_file", ".oscamp/progress_v1.json"),
    )

    platform_data = data.get("platform", {})
    platform = PlatformConfig(sysroots=dict(platform_data.get("sysroots") or {}))

    ui_data = data.get("ui", {})
    ui = UIConfig(
        max_output_lines=int(ui_data.get("max_output_lines", 30)),
        progress_width=int(ui_data.get("progress_width", 20)),
    )

    return AppConfig(
        curriculum=[str(c) for c in curriculum],
        runner=runner,
        watch=watch,
        progress=progress,
        platform=platform,
        ui=ui,
    )


def get_config_path() -> Path:
    """Config file location, honouring $OSCAMP_CONFIG."""
    override = os.environ.get(CONFIG_ENV_VAR)
    return Path(override) if override else CONFIG_FILE


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Load application config, falling back to defaults.

    Args:
        force_reload: If True, ignore cached config and reload from file.

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    data = _get_defaults()
    config_path = get_config_path()

    if config_path.exists():
        logger.debug("loading_app_config", source=str(config_path))
        loaded = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        if isinstance(loaded, dict):
            data = _merge(data, loaded)
        else:
            logger.warning("app_config_not_a_mapping", source=str(config_path))
    else:
        logger.debug("using_default_config")

    _cached_config = _parse_config(data)
    return _cached_config


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
