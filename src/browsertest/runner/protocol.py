"""Console-channel result protocol.

Each test document reports once over the page console with a JSON object
shaped like mocha's JSON reporter output::

    {"stats": {"suites": 1, "tests": 3, "passes": 2, "pending": 0,
               "failures": 1, "duration": 12},
     "failures": [{"fullTitle": "suite case", "err": {"message": "boom"}}]}

Older reporters write the object behind a fixed 8 character prefix; both
encodings are accepted. A message only counts as a result when it carries a
``failures`` key.
"""

from __future__ import annotations

import json
from typing import Any

from browsertest.runner.models import FailureRecord, RunResult, RunStats

LEGACY_PREFIX_LENGTH = 8

_STAT_FIELDS = ("suites", "tests", "passes", "pending", "failures")


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        pass
    try:
        return json.loads(text[LEGACY_PREFIX_LENGTH:])
    except ValueError:
        return None


def _as_number(value: Any) -> float:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    return 0


def _parse_stats(raw: Any) -> RunStats:
    if not isinstance(raw, dict):
        return RunStats()
    counts = {name: int(_as_number(raw.get(name))) for name in _STAT_FIELDS}
    return RunStats(**counts, duration=float(_as_number(raw.get("duration"))))


def _parse_failure(raw: Any) -> FailureRecord:
    if not isinstance(raw, dict):
        return FailureRecord(full_title=str(raw), message="")
    title = raw.get("fullTitle") or raw.get("title") or ""
    err = raw.get("err")
    message = err.get("message", "") if isinstance(err, dict) else ""
    return FailureRecord(full_title=str(title), message=str(message or ""))


def parse_console_result(text: str) -> RunResult | None:
    """Parse a console message into a result, or None if it is not one."""
    payload = _loads(text)
    if not isinstance(payload, dict) or "failures" not in payload:
        return None

    raw_failures = payload.get("failures")
    failures = (
        [_parse_failure(item) for item in raw_failures] if isinstance(raw_failures, list) else []
    )
    return RunResult(stats=_parse_stats(payload.get("stats")), failures=failures)
