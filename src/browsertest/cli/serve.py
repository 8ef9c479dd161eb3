"""browsertest serve command - run only the static server."""

import asyncio
from pathlib import Path

import click

from browsertest.cli.options import build_overrides
from browsertest.cli.utils import build_supervisor, load_project_config, run_supervised
from browsertest.core.progress import status


@click.command()
@click.option(
    "--server-mappings",
    "-m",
    type=click.Path(dir_okay=False, path_type=Path),
    help="JSON file mapping folders to URLs. Default: serverMappings.json",
)
@click.option("--port", type=int, help="Port for the static server. Default: 3001")
@click.pass_context
def serve_command(ctx: click.Context, server_mappings: Path | None, port: int | None) -> None:
    """Serve the build folders until interrupted."""
    project_root = Path.cwd()
    overrides = build_overrides(server_mappings=server_mappings, port=port)
    config = load_project_config(project_root, overrides, **(ctx.obj or {}))
    supervisor = build_supervisor(
        config, project_root, with_browser=False, interrupt_is_failure=False
    )

    async def body() -> bool:
        status(f"Serving on {config.server.base_url}", style="success")
        await asyncio.Event().wait()
        return False

    ctx.exit(run_supervised(supervisor, body))
