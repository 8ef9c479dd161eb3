"""browsertest run command - run every test document once."""

from pathlib import Path
from typing import Any

import click

from browsertest.cli.options import build_overrides, run_options
from browsertest.cli.utils import build_supervisor, load_project_config, run_supervised
from browsertest.core.progress import get_output_console
from browsertest.runner.coverage import finalize_coverage
from browsertest.runner.ops import run_tests


@click.command()
@run_options
@click.pass_context
def run_command(ctx: click.Context, **options: Any) -> None:
    """Run the test documents once and exit.

    Exits 0 when every test passed (and coverage met its thresholds when
    --coverage is given), 1 otherwise.
    """
    project_root = Path.cwd()
    config = load_project_config(
        project_root, build_overrides(**options), **(ctx.obj or {})
    )
    supervisor = build_supervisor(config, project_root)
    console = get_output_console()

    async def body() -> bool:
        outcome = await run_tests(
            config.runner.inputs,
            browser=supervisor.browser,
            config=config,
            project_root=project_root,
            console=console,
        )
        failed = outcome.had_failures
        if config.coverage.enabled and await finalize_coverage(
            config.coverage, project_root, console
        ):
            failed = True
        return failed

    ctx.exit(run_supervised(supervisor, body))
