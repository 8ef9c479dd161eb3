"""browsertest watch command - rerun test documents as the build changes."""

from pathlib import Path
from typing import Any

import click

from browsertest.cli.options import build_overrides, run_options
from browsertest.cli.utils import build_supervisor, load_project_config, run_supervised
from browsertest.config.models import BrowserTestConfig
from browsertest.core.progress import get_output_console, status
from browsertest.daemon.coverage_watcher import CoverageReportWatcher
from browsertest.daemon.watcher import FileWatcher
from browsertest.runner.ops import run_tests


def _coverage_watcher(config: BrowserTestConfig, project_root: Path) -> CoverageReportWatcher:
    return CoverageReportWatcher(
        output_dir=project_root / config.coverage.output_dir,
        report_command=config.coverage.report_command,
        project_root=project_root,
        debounce_window=config.coverage.debounce_sec,
        stop_timeout=config.timeouts.watcher_stop_sec,
    )


@click.command()
@run_options
@click.option(
    "--watch-files",
    "-w",
    multiple=True,
    help="File or folder to watch (repeatable). Default: build/inline, build/test",
)
@click.pass_context
def watch_command(ctx: click.Context, **options: Any) -> None:
    """Run the test documents, then rerun changed ones until interrupted.

    A change to a build artifact under build/inline reruns the matching
    .test.html document under build/test.
    """
    project_root = Path.cwd()
    config = load_project_config(
        project_root, build_overrides(**options), **(ctx.obj or {})
    )
    supervisor = build_supervisor(config, project_root, interrupt_is_failure=False)
    console = get_output_console()

    async def body() -> bool:

        async def rerun(documents: list[Path]) -> None:
            await run_tests(
                documents,
                browser=supervisor.browser,
                config=config,
                project_root=project_root,
                console=console,
            )

        if config.coverage.enabled:
            await supervisor.attach_watchers(
                coverage_watcher=_coverage_watcher(config, project_root)
            )

        outcome = await run_tests(
            config.runner.inputs,
            browser=supervisor.browser,
            config=config,
            project_root=project_root,
            console=console,
        )

        watcher = FileWatcher(
            paths=[project_root / path for path in config.watch.paths],
            on_change=rerun,
            artifact_dir=project_root / config.watch.artifact_dir,
            test_dir=project_root / config.watch.test_dir,
            suffix=config.runner.test_suffix,
            debounce_window=config.watch.debounce_sec,
            max_debounce_wait=config.watch.max_debounce_wait_sec,
            stop_timeout=config.timeouts.watcher_stop_sec,
        )
        await supervisor.attach_watchers(watcher=watcher)
        status("Watching for changes. Press Ctrl+C to stop.")

        await watcher.wait()
        return outcome.had_failures

    ctx.exit(run_supervised(supervisor, body))
