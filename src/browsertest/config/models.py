"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config() (CLI flags)
2. Environment variables (BROWSERTEST__SECTION__KEY)
3. Project YAML (browsertest.yaml)
4. Global YAML (~/.config/browsertest/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    BROWSERTEST__<SECTION>__<KEY>=<VALUE>

Examples:
    BROWSERTEST__RUNNER__CONCURRENCY=4
    BROWSERTEST__SERVER__PORT=3005
    BROWSERTEST__COVERAGE__ENABLED=true
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        BROWSERTEST__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="WARNING",
        description="Root log level. Run reports are printed regardless of this setting.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class ServerConfig(BaseModel):
    """Static file server configuration.

    Env vars:
        BROWSERTEST__SERVER__HOST: Host the server binds and pages are loaded from
        BROWSERTEST__SERVER__PORT: Port number (default: 3001)
        BROWSERTEST__SERVER__MAPPINGS_FILE: JSON file mapping URL paths to folders
    """

    host: str = Field(
        default="localhost",
        description="Bind address, also used to build test document URLs.",
    )
    port: int = Field(
        default=3001,
        description="Server port. The static server refuses ports below 3000.",
    )
    mappings_file: str = Field(
        default="serverMappings.json",
        description="JSON file with 'rootPaths' and/or 'mappings' (URL prefix -> folder).",
    )
    url_prefix: str = Field(
        default="/test",
        description="URL path test documents are served under.",
    )
    reporter: str = Field(
        default="json",
        description="Value of the ?reporter= query parameter passed to each document.",
    )

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not (0 <= v <= 65535):
            raise ValueError(f"Port must be 0-65535, got {v}")
        return v

    @field_validator("url_prefix")
    @classmethod
    def validate_url_prefix(cls, v: str) -> str:
        return "/" + v.strip("/") if v.strip("/") else ""

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


class BrowserConfig(BaseModel):
    """Browser process configuration.

    Env vars:
        BROWSERTEST__BROWSER__HEADLESS: Run without a visible window
        BROWSERTEST__BROWSER__NO_SANDBOX: Disable the Chromium sandbox
    """

    headless: bool = Field(
        default=True,
        description="Run headless. A visible session forces concurrency to 1.",
    )
    no_sandbox: bool = Field(
        default=False,
        description="Disable the Chromium sandbox. Only needed on Linux when running as root.",
    )
    viewport_width: int = Field(default=1920, description="Viewport width of every context.")
    viewport_height: int = Field(default=1080, description="Viewport height of every context.")
    extra_args: list[str] = Field(
        default_factory=list,
        description="Additional Chromium command line flags.",
    )
    init_scripts: list[str] = Field(
        default_factory=list,
        description="JavaScript files evaluated in every page before its own scripts.",
    )


class RunnerConfig(BaseModel):
    """Test run configuration.

    Env vars:
        BROWSERTEST__RUNNER__CONCURRENCY: Parallel execution contexts
        BROWSERTEST__RUNNER__DOCUMENT_TIMEOUT_SEC: Max wait for a document's result
    """

    inputs: list[str] = Field(
        default_factory=lambda: ["build/test"],
        description="Folders and file paths to test.",
    )
    concurrency: int = Field(
        default=8,
        description="Number of browser contexts running documents in parallel.",
    )
    errors_only: bool = Field(
        default=False,
        description="Only print test failures and errors.",
    )
    test_suffix: str = Field(
        default=".test.html",
        description="File name suffix identifying test documents.",
    )
    navigation_timeout_sec: float = Field(
        default=1800.0,
        description="Navigation timeout (30 min default). Browser startup and "
        "framework readiness can be slow on loaded machines.",
    )
    document_timeout_sec: float = Field(
        default=1800.0,
        description="Max wait for a document to report its result. "
        "On expiry the document fails and the group moves on.",
    )

    @field_validator("concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Concurrency must be at least 1, got {v}")
        return v

    @field_validator("navigation_timeout_sec", "document_timeout_sec")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Timeout must be positive, got {v}")
        return v


class CoverageConfig(BaseModel):
    """Coverage harvesting and reporting configuration.

    Env vars:
        BROWSERTEST__COVERAGE__ENABLED: Generate a coverage report after the run
        BROWSERTEST__COVERAGE__OUTPUT_DIR: Where per-document coverage is written
    """

    enabled: bool = Field(
        default=False,
        description="Generate a coverage report when data is obtained from tests.",
    )
    output_dir: str = Field(
        default=".nyc_output",
        description="Directory receiving one coverage JSON file per document.",
    )
    settings_file: str = Field(
        default=".nycrc",
        description="JSON file with thresholds and watermarks.",
    )
    summary_file: str = Field(
        default="coverage/coverage-summary.json",
        description="Summary written by the report tool's json-summary reporter.",
    )
    report_command: list[str] = Field(
        default_factory=lambda: ["nyc", "report"],
        description="External command that merges coverage output into reports.",
    )
    debounce_sec: float = Field(
        default=1.0,
        description="Quiet window before regenerating the report in watch mode.",
    )


class WatchConfig(BaseModel):
    """Watch mode configuration.

    Env vars:
        BROWSERTEST__WATCH__DEBOUNCE_SEC: Quiet window before a rerun
    """

    paths: list[str] = Field(
        default_factory=lambda: ["build/inline", "build/test"],
        description="Folders and file paths to watch for changes.",
    )
    artifact_dir: str = Field(
        default="build/inline",
        description="Build output folder whose files map onto test documents.",
    )
    test_dir: str = Field(
        default="build/test",
        description="Folder holding the test document for each build artifact.",
    )
    debounce_sec: float = Field(
        default=1.0,
        description="Quiet window before rerunning changed documents.",
    )
    max_debounce_wait_sec: float = Field(
        default=10.0,
        description="Maximum wait before a rerun during a continuous burst of changes.",
    )


class TimeoutsConfig(BaseModel):
    """Timeout configuration for supervised processes."""

    server_start_sec: float = Field(
        default=30.0,
        description="Max wait for the static server to accept connections.",
    )
    server_stop_sec: float = Field(
        default=5.0,
        description="Static server shutdown timeout.",
    )
    browser_close_sec: float = Field(
        default=10.0,
        description="Browser shutdown timeout.",
    )
    watcher_stop_sec: float = Field(
        default=2.0,
        description="File watcher shutdown timeout.",
    )


class BrowserTestConfig(BaseModel):
    """Root configuration for browsertest.

    All settings can be configured via:
    1. Environment variables: BROWSERTEST__SECTION__KEY
    2. YAML config files (project or global)
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    coverage: CoverageConfig = Field(default_factory=CoverageConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)

    @property
    def effective_concurrency(self) -> int:
        """Concurrency actually used; a visible browser runs one context."""
        return self.runner.concurrency if self.browser.headless else 1
