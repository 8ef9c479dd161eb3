"""Watch controller: rerun test documents when build output changes.

Design:
- watchfiles ``awatch`` observes the configured paths recursively
- Added and modified files are normalized; build artifacts are mapped back
  to the test document that exercises them
- Sliding-window debounce collects a burst of changes into one rerun
- Reruns are awaited from the debounce loop, so they never overlap; changes
  arriving mid-run wait in the pending queue for the next rerun
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

import structlog
from watchfiles import Change, awatch

from browsertest.runner.models import TEST_SUFFIX

logger = structlog.get_logger()

# Debouncing configuration
DEBOUNCE_WINDOW_SEC = 1.0  # Quiet time before a rerun
MAX_DEBOUNCE_WAIT_SEC = 10.0  # Maximum wait before forcing a rerun

ARTIFACT_EXTENSION = ".html"

_RELEVANT_CHANGES = frozenset({Change.added, Change.modified})


def map_to_test_document(
    path: Path,
    artifact_dir: Path,
    test_dir: Path,
    suffix: str = TEST_SUFFIX,
) -> Path | None:
    """Map a changed file to the test document that should rerun.

    A file under ``artifact_dir`` maps to the same relative path under
    ``test_dir`` with its ``.html`` extension replaced by ``suffix``.
    Returns None when the result is not a test document.
    """
    path = Path(os.path.normpath(path))
    if path.is_relative_to(artifact_dir):
        relative = path.relative_to(artifact_dir)
        name = relative.name
        if not name.endswith(suffix) and name.endswith(ARTIFACT_EXTENSION):
            name = name[: -len(ARTIFACT_EXTENSION)] + suffix
        path = test_dir / relative.with_name(name)

    if not path.name.endswith(suffix):
        return None
    return path


@dataclass
class FileWatcher:
    """Async file watcher with sliding-window debouncing.

    ``on_change`` receives the ordered, de-duplicated test documents that
    changed since the previous rerun.
    """

    paths: list[Path]
    on_change: Callable[[list[Path]], Awaitable[None]]
    artifact_dir: Path
    test_dir: Path
    suffix: str = TEST_SUFFIX
    debounce_window: float = DEBOUNCE_WINDOW_SEC
    max_debounce_wait: float = MAX_DEBOUNCE_WAIT_SEC
    stop_timeout: float = 2.0

    _watch_task: asyncio.Task[None] | None = field(default=None, init=False)
    _debounce_task: asyncio.Task[None] | None = field(default=None, init=False)
    _stop_event: asyncio.Event = field(default_factory=asyncio.Event, init=False)
    # Debouncing state; dict keys keep arrival order
    _pending: dict[Path, None] = field(default_factory=dict, init=False)
    _last_change_time: float = field(default=0.0, init=False)
    _first_change_time: float = field(default=0.0, init=False)
    _reruns: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        self.paths = [Path(os.path.normpath(p)) for p in self.paths]
        self.artifact_dir = Path(os.path.normpath(self.artifact_dir))
        self.test_dir = Path(os.path.normpath(self.test_dir))

    @property
    def pending(self) -> list[Path]:
        return list(self._pending)

    @property
    def reruns(self) -> int:
        return self._reruns

    async def start(self) -> None:
        """Start watching for file changes."""
        if self._watch_task is not None:
            return

        self._stop_event.clear()
        self._watch_task = asyncio.create_task(self._watch_loop())
        self._debounce_task = asyncio.create_task(self._debounce_flush_loop())
        logger.info(
            "file_watcher_started",
            paths=[str(p) for p in self.paths],
            debounce_window=self.debounce_window,
        )

    async def stop(self) -> None:
        """Stop watching. Pending changes are dropped."""
        self._stop_event.set()

        for task in (self._debounce_task, self._watch_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError, TimeoutError):
                    await asyncio.wait_for(task, timeout=self.stop_timeout)
        self._debounce_task = None
        self._watch_task = None

        if self._pending:
            logger.info("pending_changes_dropped", count=len(self._pending))
            self._pending.clear()

        logger.info("file_watcher_stopped")

    async def wait(self) -> None:
        """Block until the watcher stops; re-raise a failed rerun."""
        tasks = [t for t in (self._watch_task, self._debounce_task) if t is not None]
        if not tasks:
            return
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        for task in done:
            if task.cancelled():
                continue
            exc = task.exception()
            if exc is not None:
                raise exc
        await self._stop_event.wait()

    def queue_change(self, path: Path) -> bool:
        """Queue a changed file for the next rerun; returns False if ignored."""
        document = map_to_test_document(path, self.artifact_dir, self.test_dir, self.suffix)
        if document is None:
            logger.debug("path_ignored", path=str(path))
            return False

        now = time.monotonic()
        if not self._pending:
            self._first_change_time = now
        self._pending[document] = None
        self._last_change_time = now
        logger.debug("path_queued", path=str(path), document=str(document))
        return True

    def _should_flush(self) -> bool:
        """Check if we should flush pending changes."""
        if not self._pending:
            return False

        now = time.monotonic()
        time_since_last = now - self._last_change_time
        time_since_first = now - self._first_change_time

        # Flush if quiet window elapsed OR max wait exceeded
        return time_since_last >= self.debounce_window or time_since_first >= self.max_debounce_wait

    async def _flush_pending(self) -> None:
        """Hand pending documents to the callback and wait for the rerun."""
        if not self._pending:
            return

        documents = list(self._pending)
        self._pending.clear()
        self._first_change_time = 0.0
        self._last_change_time = 0.0

        self._reruns += 1
        logger.info("changes_detected", count=len(documents), rerun=self._reruns)
        await self.on_change(documents)

    async def _debounce_flush_loop(self) -> None:
        """Background task that flushes when the debounce window elapses."""
        while not self._stop_event.is_set():
            await asyncio.sleep(0.1)  # Check every 100ms

            if self._should_flush():
                await self._flush_pending()

    def _existing_paths(self) -> list[Path]:
        existing: list[Path] = []
        for path in self.paths:
            if path.exists():
                existing.append(path)
            else:
                logger.warning("watch_path_missing", path=str(path))
        return existing

    async def _watch_loop(self) -> None:
        """Main watch loop over every configured path that exists."""
        targets = self._existing_paths()
        if not targets:
            logger.warning("no_watchable_paths", paths=[str(p) for p in self.paths])
            await self._stop_event.wait()
            return

        while not self._stop_event.is_set():
            try:
                async for changes in awatch(
                    *targets,
                    recursive=True,
                    stop_event=self._stop_event,
                    ignore_permission_denied=True,
                ):
                    self._handle_changes(changes)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if self._stop_event.is_set():
                    return
                logger.error("watcher_error", error=str(e))
                # Brief backoff before retry
                await asyncio.sleep(1.0)

    def _handle_changes(self, changes: set[tuple[Change, str]]) -> None:
        """Queue every added or modified file in a batch, in path order."""
        for change_type, path_str in sorted(changes, key=lambda c: c[1]):
            if change_type not in _RELEVANT_CHANGES:
                continue
            path = Path(path_str)
            if path.is_dir():
                continue
            self.queue_change(self._relative(path))

    def _relative(self, path: Path) -> Path:
        # awatch reports absolute paths; watched paths may be relative
        for root in self.paths:
            if root.is_absolute():
                continue
            absolute_root = root.resolve()
            if path.is_relative_to(absolute_root):
                return root / path.relative_to(absolute_root)
        return path
