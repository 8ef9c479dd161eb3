"""Test run core models.

Canonical data structures for discovery, partitioning, execution, and results.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# =============================================================================
# Documents and Groups
# =============================================================================

TEST_SUFFIX = ".test.html"


@dataclass(frozen=True)
class TestDocument:
    """A discovered test document. Identity is the normalized absolute path."""

    __test__ = False

    path: Path

    @classmethod
    def from_path(cls, path: str | Path) -> TestDocument:
        return cls(Path(os.path.normpath(Path(path).absolute())))

    @property
    def basename(self) -> str:
        """File name, the stable key for URLs and coverage artifacts."""
        return self.path.name

    @property
    def directory(self) -> Path:
        return self.path.parent

    def stem(self, suffix: str = TEST_SUFFIX) -> str:
        """Basename without the test document suffix (``a.test.html`` -> ``a``)."""
        name = self.basename
        return name[: -len(suffix)] if suffix and name.endswith(suffix) else self.path.stem


@dataclass(frozen=True)
class ExecutionGroup:
    """Ordered documents assigned to one execution context."""

    index: int
    documents: tuple[TestDocument, ...]

    def __len__(self) -> int:
        return len(self.documents)


# =============================================================================
# Results
# =============================================================================


@dataclass
class RunStats:
    """Numeric stats reported by one document, or summed over many."""

    suites: int = 0
    tests: int = 0
    passes: int = 0
    pending: int = 0
    failures: int = 0
    duration: float = 0.0  # milliseconds

    def __add__(self, other: RunStats) -> RunStats:
        return RunStats(
            suites=self.suites + other.suites,
            tests=self.tests + other.tests,
            passes=self.passes + other.passes,
            pending=self.pending + other.pending,
            failures=self.failures + other.failures,
            duration=self.duration + other.duration,
        )


@dataclass(frozen=True)
class FailureRecord:
    """A single failed test inside a document."""

    full_title: str
    message: str


@dataclass
class RunResult:
    """Stats and failures reported by one document execution."""

    stats: RunStats = field(default_factory=RunStats)
    failures: list[FailureRecord] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.failures)

    @classmethod
    def synthetic_failure(cls, document: TestDocument, reason: str) -> RunResult:
        """Failing result for a document that never reported one."""
        return cls(
            stats=RunStats(failures=1),
            failures=[FailureRecord(full_title=document.basename, message=reason)],
        )


CoveragePayload = dict[str, Any]
"""Mapping of source file path to instrumentation data, as read from the page."""


@dataclass
class RunOutcome:
    """What one run of the pipeline produced."""

    documents: list[TestDocument] = field(default_factory=list)
    stats: RunStats = field(default_factory=RunStats)
    had_failures: bool = False

    @property
    def skipped(self) -> bool:
        """True when no documents were found and nothing ran."""
        return not self.documents
