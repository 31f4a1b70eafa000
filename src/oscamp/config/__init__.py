"""Configuration package for oscamp."""

from oscamp.config.app_config import (
    AppConfig,
    PlatformConfig,
    ProgressConfig,
    RunnerConfig,
    UIConfig,
    WatchConfig,
    clear_config_cache,
    load_app_config,
)
from oscamp.config.logging_setup import configure_logging

__all__ = [
    "AppConfig",
    "PlatformConfig",
    "ProgressConfig",
    "RunnerConfig",
    "UIConfig",
    "WatchConfig",
    "clear_config_cache",
    "configure_logging",
    "load_app_config",
]
