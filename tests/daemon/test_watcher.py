"""Tests for the watch controller.

Tests cover:
- Mapping build artifacts back to test documents
- FileWatcher debouncing behavior
- Ordered de-duplication of pending documents
- Serialized reruns
- Change detection against a real directory
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Generator
from pathlib import Path

import pytest
from watchfiles import Change

from browsertest.daemon.watcher import (
    DEBOUNCE_WINDOW_SEC,
    MAX_DEBOUNCE_WAIT_SEC,
    FileWatcher,
    map_to_test_document,
)

ARTIFACTS = Path("build/inline")
TESTS = Path("build/test")


class TestMapToTestDocument:
    """Tests for map_to_test_document."""

    @pytest.mark.parametrize(
        ("changed", "expected"),
        [
            ("build/inline/widget.html", "build/test/widget.test.html"),
            ("build/inline/forms/input.html", "build/test/forms/input.test.html"),
            ("build/inline/widget.test.html", "build/test/widget.test.html"),
            ("build/test/widget.test.html", "build/test/widget.test.html"),
            ("build/test/../test/widget.test.html", "build/test/widget.test.html"),
        ],
    )
    def test_maps_to_document(self, changed: str, expected: str) -> None:
        """Artifacts map to the test document that exercises them."""
        assert map_to_test_document(Path(changed), ARTIFACTS, TESTS) == Path(expected)

    @pytest.mark.parametrize(
        "changed",
        ["build/inline/widget.css", "build/inline/widget.js", "src/widget.ts", "README.md"],
    )
    def test_ignores_non_documents(self, changed: str) -> None:
        """Anything that does not end up as a test document is ignored."""
        assert map_to_test_document(Path(changed), ARTIFACTS, TESTS) is None

    def test_custom_suffix(self) -> None:
        """The suffix is configurable."""
        result = map_to_test_document(
            Path("build/inline/widget.html"), ARTIFACTS, TESTS, suffix=".spec.html"
        )
        assert result == Path("build/test/widget.spec.html")


class TestFileWatcherDebouncing:
    """Tests for FileWatcher debouncing behavior."""

    @pytest.fixture
    def reruns(self) -> list[list[Path]]:
        return []

    @pytest.fixture
    def watcher(self, reruns: list[list[Path]]) -> Generator[FileWatcher, None, None]:
        """Create a FileWatcher for testing."""

        async def on_change(documents: list[Path]) -> None:
            reruns.append(documents)

        yield FileWatcher(
            paths=[ARTIFACTS, TESTS],
            on_change=on_change,
            artifact_dir=ARTIFACTS,
            test_dir=TESTS,
            debounce_window=0.1,
            max_debounce_wait=0.5,
        )

    def test_debounce_window_constant(self) -> None:
        """Debounce window constant has reasonable value."""
        assert DEBOUNCE_WINDOW_SEC > 0
        assert DEBOUNCE_WINDOW_SEC < 5.0

    def test_max_debounce_constant(self) -> None:
        """Max debounce constant is longer than the window."""
        assert MAX_DEBOUNCE_WAIT_SEC > DEBOUNCE_WINDOW_SEC

    def test_queue_change_adds_mapped_document(self, watcher: FileWatcher) -> None:
        """queue_change stores the mapped document, not the artifact."""
        assert watcher.queue_change(Path("build/inline/a.html")) is True
        assert watcher.pending == [Path("build/test/a.test.html")]

    def test_queue_change_ignores_other_files(self, watcher: FileWatcher) -> None:
        """Unmapped files never schedule a rerun."""
        assert watcher.queue_change(Path("build/inline/a.css")) is False
        assert watcher.pending == []

    def test_pending_is_ordered_and_unique(self, watcher: FileWatcher) -> None:
        """First arrival wins the position; repeats are dropped."""
        watcher.queue_change(Path("build/inline/b.html"))
        watcher.queue_change(Path("build/inline/a.html"))
        watcher.queue_change(Path("build/test/b.test.html"))

        assert watcher.pending == [
            Path("build/test/b.test.html"),
            Path("build/test/a.test.html"),
        ]

    def test_queue_change_sets_timestamps(self, watcher: FileWatcher) -> None:
        """queue_change sets first and last change timestamps."""
        watcher.queue_change(Path("build/test/a.test.html"))
        assert watcher._first_change_time > 0
        assert watcher._last_change_time > 0

    def test_should_flush_after_window(self, watcher: FileWatcher) -> None:
        """_should_flush returns True after debounce window."""
        watcher.queue_change(Path("build/test/a.test.html"))
        watcher._last_change_time = time.monotonic() - watcher.debounce_window - 0.01
        assert watcher._should_flush() is True

    def test_should_not_flush_during_window(self, watcher: FileWatcher) -> None:
        """_should_flush returns False during debounce window."""
        watcher.queue_change(Path("build/test/a.test.html"))
        assert watcher._should_flush() is False

    def test_should_flush_after_max_wait(self, watcher: FileWatcher) -> None:
        """_should_flush returns True after max wait regardless of last change."""
        watcher.queue_change(Path("build/test/a.test.html"))
        watcher._first_change_time = time.monotonic() - watcher.max_debounce_wait - 0.01
        assert watcher._should_flush() is True

    def test_nothing_pending_never_flushes(self, watcher: FileWatcher) -> None:
        assert watcher._should_flush() is False

    @pytest.mark.asyncio
    async def test_flush_pending_hands_documents_to_callback(
        self, watcher: FileWatcher, reruns: list[list[Path]]
    ) -> None:
        """_flush_pending awaits the rerun and clears state."""
        watcher.queue_change(Path("build/test/a.test.html"))
        watcher.queue_change(Path("build/test/b.test.html"))

        await watcher._flush_pending()

        assert reruns == [[Path("build/test/a.test.html"), Path("build/test/b.test.html")]]
        assert watcher.pending == []
        assert watcher.reruns == 1
        assert watcher._first_change_time == 0.0
        assert watcher._last_change_time == 0.0

    def test_handle_changes_skips_deletions(self, watcher: FileWatcher) -> None:
        """Only added and modified files are queued."""
        watcher._handle_changes(
            {
                (Change.deleted, "build/test/gone.test.html"),
                (Change.modified, "build/test/b.test.html"),
                (Change.added, "build/test/a.test.html"),
            }
        )

        assert watcher.pending == [
            Path("build/test/a.test.html"),
            Path("build/test/b.test.html"),
        ]


class TestFileWatcherRuns:
    """Tests for serialized reruns and the watch loop."""

    @pytest.mark.asyncio
    async def test_changes_during_rerun_wait_for_next(self) -> None:
        """A rerun in progress never overlaps another."""
        started = asyncio.Event()
        release = asyncio.Event()
        active = 0
        max_active = 0
        reruns: list[list[Path]] = []

        async def on_change(documents: list[Path]) -> None:
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            reruns.append(documents)
            started.set()
            await release.wait()
            active -= 1

        watcher = FileWatcher(
            paths=[TESTS],
            on_change=on_change,
            artifact_dir=ARTIFACTS,
            test_dir=TESTS,
            debounce_window=0.05,
            max_debounce_wait=0.2,
        )
        watcher.queue_change(Path("build/test/a.test.html"))
        flush = asyncio.create_task(watcher._debounce_flush_loop())
        try:
            await asyncio.wait_for(started.wait(), timeout=2.0)
            watcher.queue_change(Path("build/test/b.test.html"))
            await asyncio.sleep(0.3)

            assert len(reruns) == 1
            assert watcher.pending == [Path("build/test/b.test.html")]

            release.set()
            for _ in range(50):
                if len(reruns) == 2:
                    break
                await asyncio.sleep(0.05)
        finally:
            watcher._stop_event.set()
            flush.cancel()
            await asyncio.gather(flush, return_exceptions=True)

        assert reruns == [[Path("build/test/a.test.html")], [Path("build/test/b.test.html")]]
        assert max_active == 1

    @pytest.mark.asyncio
    async def test_detects_rebuilt_artifact(self, tmp_path: Path) -> None:
        """Writing an artifact reruns its test document."""
        artifacts = tmp_path / "build" / "inline"
        tests = tmp_path / "build" / "test"
        artifacts.mkdir(parents=True)
        tests.mkdir(parents=True)
        rerun = asyncio.Event()
        seen: list[Path] = []

        async def on_change(documents: list[Path]) -> None:
            seen.extend(documents)
            rerun.set()

        watcher = FileWatcher(
            paths=[artifacts],
            on_change=on_change,
            artifact_dir=artifacts,
            test_dir=tests,
            debounce_window=0.05,
            max_debounce_wait=0.2,
        )
        await watcher.start()
        try:
            await asyncio.sleep(0.3)
            (artifacts / "widget.html").write_text("<html></html>")
            await asyncio.wait_for(rerun.wait(), timeout=10.0)
        finally:
            await watcher.stop()

        assert set(seen) == {tests / "widget.test.html"}

    @pytest.mark.asyncio
    async def test_stop_cancels_tasks_and_drops_pending(self, tmp_path: Path) -> None:
        """stop() cancels background tasks and forgets queued changes."""

        async def on_change(_documents: list[Path]) -> None:
            return None

        watcher = FileWatcher(
            paths=[tmp_path],
            on_change=on_change,
            artifact_dir=tmp_path / "inline",
            test_dir=tmp_path / "test",
            debounce_window=60.0,
            max_debounce_wait=60.0,
        )
        await watcher.start()
        watcher.queue_change(tmp_path / "test" / "a.test.html")

        await watcher.stop()

        assert watcher._watch_task is None
        assert watcher._debounce_task is None
        assert watcher.pending == []

    @pytest.mark.asyncio
    async def test_missing_paths_wait_for_stop(self, tmp_path: Path) -> None:
        """With nothing to watch, the loop idles until stopped."""

        async def on_change(_documents: list[Path]) -> None:
            return None

        watcher = FileWatcher(
            paths=[tmp_path / "nope"],
            on_change=on_change,
            artifact_dir=tmp_path / "inline",
            test_dir=tmp_path / "test",
        )
        await watcher.start()
        waiter = asyncio.create_task(watcher.wait())
        await asyncio.sleep(0.1)
        assert not waiter.done()

        await watcher.stop()
        await asyncio.wait_for(waiter, timeout=2.0)

    @pytest.mark.asyncio
    async def test_wait_reraises_rerun_failure(self) -> None:
        """A rerun that raises ends the watch with that error."""

        async def on_change(_documents: list[Path]) -> None:
            raise RuntimeError("rerun exploded")

        watcher = FileWatcher(
            paths=[TESTS],
            on_change=on_change,
            artifact_dir=ARTIFACTS,
            test_dir=TESTS,
            debounce_window=0.01,
            max_debounce_wait=0.05,
        )
        await watcher.start()
        watcher.queue_change(Path("build/test/a.test.html"))
        try:
            with pytest.raises(RuntimeError, match="rerun exploded"):
                await asyncio.wait_for(watcher.wait(), timeout=5.0)
        finally:
            await watcher.stop()
