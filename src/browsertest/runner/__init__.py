"""Test run engine: discovery, partitioning, execution, and results."""

from browsertest.runner.aggregate import ResultAggregator
from browsertest.runner.coverage import CoverageWriter, finalize_coverage
from browsertest.runner.discovery import discover_documents
from browsertest.runner.driver import DriverOptions, ExecutionContextDriver
from browsertest.runner.models import (
    ExecutionGroup,
    FailureRecord,
    RunOutcome,
    RunResult,
    RunStats,
    TestDocument,
)
from browsertest.runner.ops import run_tests
from browsertest.runner.partition import partition
from browsertest.runner.protocol import parse_console_result

__all__ = [
    "CoverageWriter",
    "DriverOptions",
    "ExecutionContextDriver",
    "ExecutionGroup",
    "FailureRecord",
    "ResultAggregator",
    "RunOutcome",
    "RunResult",
    "RunStats",
    "TestDocument",
    "discover_documents",
    "finalize_coverage",
    "parse_console_result",
    "partition",
    "run_tests",
]
