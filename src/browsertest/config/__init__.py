"""Config module exports."""

from browsertest.config.loader import ServerMappings, load_config, load_server_mappings
from browsertest.config.models import (
    BrowserConfig,
    BrowserTestConfig,
    CoverageConfig,
    LoggingConfig,
    RunnerConfig,
    ServerConfig,
    WatchConfig,
)

__all__ = [
    "load_config",
    "load_server_mappings",
    "BrowserConfig",
    "BrowserTestConfig",
    "CoverageConfig",
    "LoggingConfig",
    "RunnerConfig",
    "ServerConfig",
    "ServerMappings",
    "WatchConfig",
]
