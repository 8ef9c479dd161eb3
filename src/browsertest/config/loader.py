"""Configuration loading with pydantic-settings.

Supports loading configuration from multiple sources with precedence:
1. Direct kwargs (highest priority, CLI flags the user actually passed)
2. Environment variables (BROWSERTEST__SECTION__KEY)
3. Project config (browsertest.yaml in the project root)
4. Global config (~/.config/browsertest/config.yaml)
5. Built-in defaults (lowest priority)
"""

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from browsertest.config.models import (
    BrowserConfig,
    BrowserTestConfig,
    CoverageConfig,
    LoggingConfig,
    RunnerConfig,
    ServerConfig,
    TimeoutsConfig,
    WatchConfig,
)
from browsertest.core.errors import ConfigError

GLOBAL_CONFIG_PATH = Path("~/.config/browsertest/config.yaml").expanduser()
PROJECT_CONFIG_NAME = "browsertest.yaml"


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class _YamlSource(PydanticBaseSettingsSource):
    """Settings source that reads from pre-loaded YAML config."""

    def __init__(self, settings_cls: type[BaseSettings], yaml_config: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._yaml_config = yaml_config

    def get_field_value(
        self,
        field: Any,  # noqa: ARG002
        field_name: str,
    ) -> tuple[Any, str, bool]:
        val = self._yaml_config.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return self._yaml_config


def _make_settings_class(yaml_config: dict[str, Any]) -> type[BaseSettings]:
    """Create a Settings class with instance-based YAML source (thread-safe)."""

    class BrowserTestSettings(BaseSettings):
        """Root config. Env vars: BROWSERTEST__RUNNER__CONCURRENCY, etc."""

        model_config = SettingsConfigDict(
            env_prefix="BROWSERTEST__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        server: ServerConfig = ServerConfig()
        browser: BrowserConfig = BrowserConfig()
        runner: RunnerConfig = RunnerConfig()
        coverage: CoverageConfig = CoverageConfig()
        watch: WatchConfig = WatchConfig()
        timeouts: TimeoutsConfig = TimeoutsConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            # Precedence (first wins): init kwargs > env vars > yaml files
            return (init_settings, env_settings, _YamlSource(settings_cls, yaml_config))

    return BrowserTestSettings


def load_config(project_root: Path | None = None, **kwargs: Any) -> BrowserTestConfig:
    """Load config: defaults < global yaml < project yaml < env vars < kwargs.

    Args:
        project_root: Directory holding browsertest.yaml.
                      Defaults to current working directory.
        **kwargs: Override values per section (highest precedence), e.g.
                  ``runner={"concurrency": 2}``.

    Returns:
        Fully resolved configuration object.

    Raises:
        ConfigError: On invalid YAML syntax or validation errors.
    """
    project_root = project_root or Path.cwd()

    yaml_config = _deep_merge(
        _load_yaml(GLOBAL_CONFIG_PATH),
        _load_yaml(project_root / PROJECT_CONFIG_NAME),
    )

    settings_cls = _make_settings_class(yaml_config)
    try:
        settings = settings_cls(**kwargs)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(loc) for loc in err["loc"])
        raise ConfigError.invalid_value(field, err.get("input"), err["msg"]) from e

    return BrowserTestConfig.model_validate(settings.model_dump())


class ServerMappings(BaseModel):
    """Folders exposed by the static server.

    ``root_paths`` are served at ``/`` and tried in order; ``mappings`` maps a
    URL prefix to a folder.
    """

    root_paths: list[str] = Field(default_factory=list, alias="rootPaths")
    mappings: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)


def load_server_mappings(path: Path) -> ServerMappings:
    """Read the JSON server mapping file.

    Raises:
        ConfigError: If the file is missing, is not JSON, or is not an object
            with ``rootPaths`` and/or ``mappings``.
    """
    if not path.is_file():
        raise ConfigError.file_not_found(str(path))
    try:
        raw = json.loads(path.read_text())
    except (OSError, ValueError) as e:
        raise ConfigError.parse_error(str(path), str(e)) from e

    if not isinstance(raw, dict):
        raise ConfigError.parse_error(str(path), "settings must be an object")

    try:
        return ServerMappings.model_validate(raw)
    except ValidationError as e:
        err = e.errors()[0]
        raise ConfigError.parse_error(str(path), err["msg"]) from e
