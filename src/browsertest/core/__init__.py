"""Core module exports."""

from browsertest.core.errors import (
    BrowserError,
    BrowserTestError,
    ConfigError,
    CoverageError,
    ErrorCode,
    InternalError,
    ServerError,
)
from browsertest.core.logging import (
    clear_run_id,
    configure_logging,
    get_logger,
    get_run_id,
    set_run_id,
)
from browsertest.core.progress import spinner, status

__all__ = [
    # Errors
    "BrowserError",
    "BrowserTestError",
    "ConfigError",
    "CoverageError",
    "ErrorCode",
    "InternalError",
    "ServerError",
    # Logging
    "clear_run_id",
    "configure_logging",
    "get_logger",
    "get_run_id",
    "set_run_id",
    # Progress
    "spinner",
    "status",
]
