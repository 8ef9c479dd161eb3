"""Long-lived processes: static server, browser, watchers, and their supervisor."""

from browsertest.daemon.browser import BrowserProcess, build_chrome_flags
from browsertest.daemon.coverage_watcher import CoverageReportWatcher
from browsertest.daemon.lifecycle import ProcessHandles, Supervisor
from browsertest.daemon.server import StaticServer, create_static_app
from browsertest.daemon.watcher import FileWatcher, map_to_test_document

__all__ = [
    "BrowserProcess",
    "CoverageReportWatcher",
    "FileWatcher",
    "ProcessHandles",
    "StaticServer",
    "Supervisor",
    "build_chrome_flags",
    "create_static_app",
    "map_to_test_document",
]
