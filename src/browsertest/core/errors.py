"""browsertest error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Static server
- 4xxx: Browser
- 5xxx: Coverage
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_MISSING_REQUIRED = 2003
    CONFIG_FILE_NOT_FOUND = 2004

    # Static server (3xxx)
    SERVER_INVALID_PORT = 3001
    SERVER_START_FAILED = 3002

    # Browser (4xxx)
    BROWSER_LAUNCH_FAILED = 4001

    # Coverage (5xxx)
    COVERAGE_REPORT_FAILED = 5001
    COVERAGE_SUMMARY_MISSING = 5002
    COVERAGE_TOOL_NOT_FOUND = 5003

    # Internal (9xxx)
    INTERNAL_ERROR = 9001
    INTERNAL_TIMEOUT = 9002


@dataclass(frozen=True, slots=True)
class BrowserTestError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'CONFIG_PARSE_ERROR')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured log output."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(BrowserTestError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def missing_required(cls, field: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_MISSING_REQUIRED,
            message=f"Missing required config field: {field}",
            details={"field": field},
        )

    @classmethod
    def file_not_found(cls, path: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            message=f"Config file not found: {path}",
            details={"path": path},
        )


class ServerError(BrowserTestError):
    """Static file server errors."""

    @classmethod
    def invalid_port(cls, port: int) -> "ServerError":
        return cls(
            code=ErrorCode.SERVER_INVALID_PORT,
            message=f"Invalid port to bind server to: {port} (must be 3000 or higher)",
            details={"port": port},
        )

    @classmethod
    def start_failed(cls, host: str, port: int, reason: str) -> "ServerError":
        return cls(
            code=ErrorCode.SERVER_START_FAILED,
            message=f"Static server failed to start on {host}:{port}: {reason}",
            retryable=True,
            details={"host": host, "port": port, "reason": reason},
        )


class BrowserError(BrowserTestError):
    """Browser process errors."""

    @classmethod
    def launch_failed(cls, reason: str) -> "BrowserError":
        return cls(
            code=ErrorCode.BROWSER_LAUNCH_FAILED,
            message=f"Browser failed to launch: {reason}",
            retryable=True,
            details={"reason": reason},
        )


class CoverageError(BrowserTestError):
    """Coverage report errors."""

    @classmethod
    def report_failed(cls, command: list[str], exit_code: int | None) -> "CoverageError":
        return cls(
            code=ErrorCode.COVERAGE_REPORT_FAILED,
            message=f"Coverage report command failed with exit code {exit_code}",
            details={"command": command, "exit_code": exit_code},
        )

    @classmethod
    def summary_missing(cls, path: str) -> "CoverageError":
        return cls(
            code=ErrorCode.COVERAGE_SUMMARY_MISSING,
            message=f"Coverage summary not found at {path}; "
            "is the json-summary reporter enabled?",
            details={"path": path},
        )

    @classmethod
    def tool_not_found(cls, executable: str) -> "CoverageError":
        return cls(
            code=ErrorCode.COVERAGE_TOOL_NOT_FOUND,
            message=f"Coverage report tool not found: {executable}",
            details={"executable": executable},
        )


class InternalError(BrowserTestError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
