"""Static file server exposing the compiled build to the browser."""

from __future__ import annotations

import asyncio
import contextlib
import socket
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import BaseRoute, Mount
from starlette.staticfiles import StaticFiles

from browsertest.config.loader import ServerMappings
from browsertest.core.errors import ServerError

logger = structlog.get_logger()

MIN_PORT = 3000

NO_CACHE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
    "Surrogate-Control": "no-store",
}

CallNext = Callable[[Request], Awaitable[Response]]


class NoCacheMiddleware(BaseHTTPMiddleware):
    """Stop the browser from caching build output between reruns."""

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        response = await call_next(request)
        response.headers.update(NO_CACHE_HEADERS)
        return response


class LayeredStaticFiles(StaticFiles):
    """Serve several folders at one mount point; the first folder holding a path wins."""

    def __init__(self, directories: list[Path], *, html: bool = True) -> None:
        super().__init__(directory=directories[0], html=html)
        self.all_directories = list(directories)


def _existing_dirs(sources: list[str], project_root: Path) -> list[Path]:
    dirs: list[Path] = []
    for source in sources:
        path = (project_root / source).resolve()
        if path.is_dir():
            dirs.append(path)
        else:
            logger.warning("server_folder_missing", path=str(path))
    return dirs


def create_static_app(mappings: ServerMappings, project_root: Path) -> Starlette:
    """Build the Starlette app for a mapping configuration.

    Prefix mounts come first, longest prefix first, so a root mount never
    shadows them.
    """
    routes: list[BaseRoute] = []

    for prefix in sorted(mappings.mappings, key=len, reverse=True):
        if not prefix.strip("/"):
            # A "/" mapping behaves like an extra root path
            continue
        dirs = _existing_dirs([mappings.mappings[prefix]], project_root)
        if dirs:
            routes.append(Mount("/" + prefix.strip("/"), app=LayeredStaticFiles(dirs)))
    root_sources = list(mappings.root_paths)
    root_sources.extend(
        source for prefix, source in mappings.mappings.items() if not prefix.strip("/")
    )
    root_dirs = _existing_dirs(root_sources, project_root)
    if root_dirs:
        routes.append(Mount("/", app=LayeredStaticFiles(root_dirs)))

    return Starlette(
        routes=routes,
        middleware=[
            Middleware(NoCacheMiddleware),
            Middleware(GZipMiddleware, minimum_size=1000),
        ],
    )


class _EmbeddedServer(uvicorn.Server):
    """Uvicorn server that leaves signal handling to the supervisor."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


def _bind_socket(host: str, port: int) -> socket.socket:
    try:
        return socket.create_server((host, port))
    except OSError as e:
        raise ServerError.start_failed(host, port, str(e)) from e


@dataclass
class StaticServer:
    """Runs the static app on an embedded uvicorn server."""

    mappings: ServerMappings
    host: str = "localhost"
    port: int = 3001
    project_root: Path = field(default_factory=Path.cwd)
    start_timeout_sec: float = 30.0
    stop_timeout_sec: float = 5.0

    _server: uvicorn.Server | None = field(default=None, init=False)
    _task: asyncio.Task[None] | None = field(default=None, init=False)
    _socket: socket.socket | None = field(default=None, init=False)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Bind the port and wait until the server accepts requests.

        Raises:
            ServerError: If the port is invalid, taken, or startup fails.
        """
        if self._task is not None:
            return
        if self.port < MIN_PORT:
            raise ServerError.invalid_port(self.port)

        app = create_static_app(self.mappings, self.project_root)
        sock = _bind_socket(self.host, self.port)
        config = uvicorn.Config(
            app,
            host=self.host,
            port=self.port,
            log_level="warning",  # Use structlog instead
            ws="none",
            lifespan="off",
        )
        server = _EmbeddedServer(config)
        self._server = server
        self._socket = sock
        self._task = asyncio.create_task(server.serve(sockets=[sock]))

        try:
            async with asyncio.timeout(self.start_timeout_sec):
                while not server.started:
                    if self._task.done():
                        break
                    await asyncio.sleep(0.05)
        except TimeoutError as e:
            await self.stop()
            raise ServerError.start_failed(self.host, self.port, "startup timed out") from e

        if not server.started:
            reason = _task_failure(self._task)
            await self.stop()
            raise ServerError.start_failed(self.host, self.port, reason)

        logger.info("server_started", url=f"http://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop serving. Safe to call when not started."""
        server, self._server = self._server, None
        task, self._task = self._task, None
        sock, self._socket = self._socket, None

        if server is not None and task is not None:
            server.should_exit = True
            done, _ = await asyncio.wait({task}, timeout=self.stop_timeout_sec)
            if not done:
                logger.warning("server_stop_timeout", timeout_sec=self.stop_timeout_sec)
                server.force_exit = True
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        if sock is not None:
            sock.close()

        if server is not None:
            logger.info("server_stopped")


def _task_failure(task: asyncio.Task[Any]) -> str:
    if task.cancelled():
        return "server task cancelled"
    exc = task.exception()
    return str(exc) if exc is not None else "server exited during startup"
