"""Tests for structured logging."""

import json
import logging
from pathlib import Path

import pytest
import structlog

from browsertest.config.models import LoggingConfig, LogOutputConfig
from browsertest.core.logging import (
    clear_run_id,
    configure_logging,
    get_log_file_path,
    get_logger,
    get_run_id,
    set_run_id,
)
from browsertest.core.progress import suppress_console_logs


class TestRunIdCorrelation:
    """Run ID context variable tests."""

    def setup_method(self) -> None:
        """Clear run ID before each test."""
        clear_run_id()

    def test_given_run_id_when_set_then_can_retrieve(self) -> None:
        """Run ID can be set and retrieved."""
        # When
        result = set_run_id("run-123")

        # Then
        assert result == "run-123"
        assert get_run_id() == "run-123"

    def test_given_no_id_when_set_then_generates_short_id(self) -> None:
        """Set generates a short hex ID when none provided."""
        # When
        rid = set_run_id()

        # Then
        assert len(rid) == 8
        int(rid, 16)

    def test_given_set_id_when_clear_then_removes_id(self) -> None:
        """Clear removes the current run ID."""
        # Given
        set_run_id("to-clear")

        # When
        clear_run_id()

        # Then
        assert get_run_id() is None


class TestLoggingConfiguration:
    """Logging configuration tests."""

    def setup_method(self) -> None:
        """Reset structlog and stdlib logging before each test."""
        structlog.reset_defaults()
        logging.getLogger().handlers.clear()
        clear_run_id()

    def test_given_json_file_output_when_log_then_valid_json(self, tmp_path: Path) -> None:
        """JSON output produces valid JSON with required fields."""
        # Given
        log_file = tmp_path / "run.log"
        configure_logging(
            config=LoggingConfig(
                level="INFO",
                outputs=[LogOutputConfig(format="json", destination=str(log_file))],
            )
        )
        logger = get_logger("test")

        # When
        logger.info("document_started", document="a.test.html")

        # Then
        data = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert data["event"] == "document_started"
        assert data["document"] == "a.test.html"
        assert data["logger"] == "test"
        assert data["level"] == "info"
        assert "timestamp" in data

    def test_given_run_id_when_log_then_run_id_attached(self, tmp_path: Path) -> None:
        """Log lines carry the active run ID."""
        # Given
        log_file = tmp_path / "run.log"
        configure_logging(
            config=LoggingConfig(
                level="DEBUG",
                outputs=[LogOutputConfig(format="json", destination=str(log_file))],
            )
        )
        set_run_id("abcd1234")

        # When
        get_logger().info("run_started")

        # Then
        data = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert data["run_id"] == "abcd1234"

    def test_given_config_object_when_configure_then_takes_precedence(self, tmp_path: Path) -> None:
        """LoggingConfig object takes precedence over simple params."""
        # Given
        log_file = tmp_path / "test.log"
        config = LoggingConfig(
            level="DEBUG",
            outputs=[LogOutputConfig(format="json", destination=str(log_file))],
        )

        # When
        configure_logging(config=config, json_format=False, level="ERROR")
        get_logger().debug("debug msg")

        # Then
        assert "debug msg" in log_file.read_text()

    def test_given_multi_output_config_when_configure_then_levels_respected(
        self, tmp_path: Path
    ) -> None:
        """Multiple outputs receive logs according to their levels."""
        # Given
        debug_file = tmp_path / "debug.log"
        info_file = tmp_path / "info.log"
        config = LoggingConfig(
            level="DEBUG",
            outputs=[
                LogOutputConfig(format="json", destination=str(info_file), level="INFO"),
                LogOutputConfig(format="json", destination=str(debug_file)),
            ],
        )

        # When
        configure_logging(config=config)
        logger = get_logger()
        logger.debug("debug only")
        logger.info("info msg")

        # Then
        info_content = info_file.read_text()
        assert "info msg" in info_content
        assert "debug only" not in info_content
        debug_content = debug_file.read_text()
        assert "debug only" in debug_content
        assert "info msg" in debug_content

    def test_given_file_output_when_configure_then_path_tracked(self, tmp_path: Path) -> None:
        """The first file destination is remembered for error pointers."""
        # Given
        log_file = tmp_path / "logs" / "run.log"

        # When
        configure_logging(
            config=LoggingConfig(
                outputs=[
                    LogOutputConfig(destination="stderr"),
                    LogOutputConfig(format="json", destination=str(log_file)),
                ]
            )
        )

        # Then
        assert get_log_file_path() == log_file
        assert log_file.parent.is_dir()

    def test_given_console_only_when_configure_then_no_path(self) -> None:
        """Console-only logging has no log file path."""
        configure_logging(level="INFO")
        assert get_log_file_path() is None

    def test_given_noisy_loggers_when_configure_then_raised_to_warning(self) -> None:
        """Chatty upstream loggers only pass warnings."""
        configure_logging(level="DEBUG")
        assert logging.getLogger("uvicorn.access").level == logging.WARNING
        assert logging.getLogger("watchfiles.main").level == logging.WARNING

    def test_given_suppressed_console_when_log_then_console_silent(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Console output is dropped while a live display is active."""
        # Given
        configure_logging(level="INFO")

        # When
        with suppress_console_logs():
            get_logger().warning("hidden_event")

        # Then
        assert "hidden_event" not in capsys.readouterr().err
