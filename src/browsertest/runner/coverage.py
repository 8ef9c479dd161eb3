"""Coverage harvesting, reporting, and threshold checks.

Pages instrumented for coverage expose ``window.__coverage__``: a mapping of
source path to instrumentation data for every file the page loaded. Only the
entry for the file under test is authoritative for a document, so each
document writes exactly one entry to ``<output_dir>/<stem>.json``.

After a run the external report tool merges those files and writes a
summary, which is checked against the thresholds in the settings file.
"""

from __future__ import annotations

import asyncio
import json
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any

import structlog
from pydantic import BaseModel, Field, ValidationError
from rich.console import Console

from browsertest.config.models import CoverageConfig
from browsertest.core.errors import ConfigError, CoverageError
from browsertest.core.progress import get_output_console
from browsertest.runner.models import TEST_SUFFIX, CoveragePayload, TestDocument

logger = structlog.get_logger()

METRICS: tuple[str, ...] = ("lines", "statements", "functions", "branches")

NOT_BUILT_MESSAGE = "Files were not built to include coverage data!"


# =============================================================================
# Per-document coverage artifacts
# =============================================================================


def _source_path(key: str) -> PurePosixPath:
    return PurePosixPath(key.replace("\\", "/"))


def is_synthetic_path(key: str) -> bool:
    """True for keys without a directory component (not a real source file)."""
    return str(_source_path(key).parent) in ("", ".")


def matches_document(key: str, document: TestDocument, suffix: str = TEST_SUFFIX) -> bool:
    """True when the source file is the one the document tests."""
    return f"{_source_path(key).stem}{suffix}" == document.basename


def select_coverage_entry(
    document: TestDocument,
    payload: CoveragePayload,
    suffix: str = TEST_SUFFIX,
) -> tuple[str, Any] | None:
    """Pick the payload entry belonging to the document under test.

    Entries are checked in payload order and the first match wins. Several
    matches (two sources sharing a stem in different folders) are logged as
    ambiguous.
    """
    matches = [
        (key, data)
        for key, data in payload.items()
        if not is_synthetic_path(key) and matches_document(key, document, suffix)
    ]
    if not matches:
        return None
    if len(matches) > 1:
        logger.warning(
            "coverage_entry_ambiguous",
            document=document.basename,
            keys=[key for key, _ in matches],
            chosen=matches[0][0],
        )
    return matches[0]


@dataclass
class CoverageWriter:
    """Writes one coverage artifact per document, keyed by its stem."""

    output_dir: Path
    suffix: str = TEST_SUFFIX

    def write(self, document: TestDocument, payload: CoveragePayload | None) -> Path | None:
        """Persist the document's entry; returns the written path or None."""
        if not payload:
            return None

        entry = select_coverage_entry(document, payload, self.suffix)
        if entry is None:
            logger.debug("coverage_entry_missing", document=document.basename)
            return None

        key, data = entry
        self.output_dir.mkdir(parents=True, exist_ok=True)
        target = self.output_dir / f"{_source_path(key).stem}.json"
        # Report tools expect {"/abs/path/to/file.js": {...}}
        target.write_text(json.dumps({key: data}))
        logger.debug("coverage_written", document=document.basename, path=str(target))
        return target


# =============================================================================
# Thresholds
# =============================================================================


def _default_watermark() -> tuple[float, float]:
    return (50.0, 80.0)


class Watermarks(BaseModel):
    """Low/high bands used only to color the combined total."""

    lines: tuple[float, float] = Field(default_factory=_default_watermark)
    statements: tuple[float, float] = Field(default_factory=_default_watermark)
    functions: tuple[float, float] = Field(default_factory=_default_watermark)
    branches: tuple[float, float] = Field(default_factory=_default_watermark)


class CoverageSettings(BaseModel):
    """Minimum percentages from the report tool's settings file."""

    lines: float = 0.0
    statements: float = 0.0
    functions: float = 0.0
    branches: float = 0.0
    watermarks: Watermarks = Field(default_factory=Watermarks)


@dataclass(frozen=True)
class CoverageTotals:
    lines: float
    statements: float
    functions: float
    branches: float


@dataclass(frozen=True)
class ThresholdBreach:
    metric: str
    threshold: float
    actual: float

    @property
    def message(self) -> str:
        return (
            f"Covered {self.metric.capitalize()} below threshold: "
            f"{_pct(self.threshold)}%. Actual: {_pct(self.actual)}%"
        )


@dataclass
class CoverageVerdict:
    combined_total: float
    color: str
    breaches: list[ThresholdBreach] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.breaches


def _pct(value: float) -> str:
    return f"{value:g}"


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text())
    except (OSError, ValueError) as e:
        raise ConfigError.parse_error(str(path), str(e)) from e


def load_coverage_settings(path: Path) -> CoverageSettings:
    """Read thresholds and watermarks; a missing file means no thresholds."""
    if not path.exists():
        logger.debug("coverage_settings_missing", path=str(path))
        return CoverageSettings()
    raw = _read_json(path)
    if not isinstance(raw, dict):
        raise ConfigError.parse_error(str(path), "settings must be an object")
    try:
        return CoverageSettings.model_validate(raw)
    except ValidationError as e:
        err = e.errors()[0]
        field_name = ".".join(str(loc) for loc in err["loc"])
        raise ConfigError.invalid_value(field_name, err.get("input"), err["msg"]) from e


def _metric_pct(total: dict[str, Any], metric: str) -> float:
    value = total.get(metric, {})
    pct = value.get("pct") if isinstance(value, dict) else None
    # Report tools write "Unknown" when a metric has nothing to cover
    if isinstance(pct, (int, float)) and not isinstance(pct, bool):
        return float(pct)
    return 100.0


def load_coverage_totals(path: Path) -> CoverageTotals:
    """Read ``total.<metric>.pct`` from the json-summary output."""
    if not path.exists():
        raise CoverageError.summary_missing(str(path))
    raw = _read_json(path)
    total = raw.get("total", {}) if isinstance(raw, dict) else {}
    if not isinstance(total, dict):
        total = {}
    return CoverageTotals(**{metric: _metric_pct(total, metric) for metric in METRICS})


def evaluate_coverage(settings: CoverageSettings, totals: CoverageTotals) -> CoverageVerdict:
    """Combine the four metrics and compare each against its threshold."""
    actual = {metric: getattr(totals, metric) for metric in METRICS}
    combined = round(sum(actual.values()) / len(METRICS), 2)

    watermarks = settings.watermarks
    red_level = round(sum(getattr(watermarks, m)[0] for m in METRICS) / len(METRICS), 2)
    yellow_level = round(sum(getattr(watermarks, m)[1] for m in METRICS) / len(METRICS), 2)

    if combined <= red_level:
        color = "red"
    elif combined <= yellow_level:
        color = "yellow"
    else:
        color = "green"

    breaches = [
        ThresholdBreach(metric=metric, threshold=getattr(settings, metric), actual=value)
        for metric, value in actual.items()
        if value < getattr(settings, metric)
    ]
    return CoverageVerdict(combined_total=combined, color=color, breaches=breaches)


def print_coverage_verdict(verdict: CoverageVerdict, console: Console | None = None) -> None:
    console = console or get_output_console()
    console.print(f"Total        : {verdict.combined_total:.2f}%", style=verdict.color)
    console.print("=" * 80, style="white", highlight=False)
    for breach in verdict.breaches:
        console.print(breach.message, style="white on red", highlight=False)


# =============================================================================
# External report tool
# =============================================================================


def report_environment(project_root: Path) -> dict[str, str]:
    """Process environment with the project's node_modules/.bin first on PATH."""
    env = dict(os.environ)
    local_bin = project_root / "node_modules" / ".bin"
    path = env.get("PATH", "")
    env["PATH"] = f"{local_bin}{os.pathsep}{path}" if path else str(local_bin)
    return env


async def run_report_command(command: list[str], project_root: Path) -> None:
    """Run the report tool with inherited stdio.

    Raises:
        ConfigError: If no command is configured.
        CoverageError: If the tool is missing or exits non-zero.
    """
    if not command:
        raise ConfigError.missing_required("coverage.report_command")
    env = report_environment(project_root)
    executable = shutil.which(command[0], path=env["PATH"])
    if executable is None:
        raise CoverageError.tool_not_found(command[0])

    logger.info("coverage_report_started", command=command)
    proc = await asyncio.create_subprocess_exec(
        executable,
        *command[1:],
        cwd=project_root,
        env=env,
    )
    exit_code = await proc.wait()
    if exit_code != 0:
        raise CoverageError.report_failed(command, exit_code)
    logger.info("coverage_report_finished")


async def finalize_coverage(
    config: CoverageConfig,
    project_root: Path,
    console: Console | None = None,
) -> bool:
    """Generate the report and check thresholds after a run.

    Returns:
        True if coverage is below any threshold.
    """
    console = console or get_output_console()
    output_dir = project_root / config.output_dir
    if not output_dir.exists():
        console.print(NOT_BUILT_MESSAGE, style="white on red", highlight=False)
        return False

    await run_report_command(config.report_command, project_root)

    settings = load_coverage_settings(project_root / config.settings_file)
    totals = load_coverage_totals(project_root / config.summary_file)
    verdict = evaluate_coverage(settings, totals)
    print_coverage_verdict(verdict, console)

    if not verdict.passed:
        logger.warning(
            "coverage_below_threshold",
            metrics=[breach.metric for breach in verdict.breaches],
        )
    return not verdict.passed
