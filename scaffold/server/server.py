"""
Server Composition and Lifecycle

Builds tracing, repository and services in dependency order, wires the
uvicorn HTTP listener and tears everything down again on stop.

States: CONSTRUCTING -> READY -> RUNNING -> STOPPING -> STOPPED, with
FAILED reachable from any state on an unrecoverable error.
"""

import asyncio
import contextlib
import math
from enum import Enum
from typing import Awaitable, Callable, Optional

import uvicorn
from fastapi import FastAPI

from ..core.config import Settings
from ..core.exceptions import ServerNotInitializedError, ServerRunError, TracingSetupError
from ..core.telemetry import TelemetryService
from ..repository import Repository
from ..service import Services

# Seconds of the grace period held back from tracing shutdown
TRACING_SHUTDOWN_MARGIN = 0.1


class ServerState(str, Enum):
    """Lifecycle states of the server."""

    CONSTRUCTING = "constructing"
    READY = "ready"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


class _ListenerServer(uvicorn.Server):
    """uvicorn server that leaves OS signal handling to the supervisor."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        return None


class Server:
    """
    Owns every long-lived resource of the process.

    Dependents receive the handles (``telemetry``, ``repository``,
    ``services``) by reference; nothing is registered globally.
    """

    def __init__(
        self,
        settings: Settings,
        logger,
        telemetry: TelemetryService,
        repository: Repository,
        services: Services,
    ):
        self.settings = settings
        self.logger = logger
        self.telemetry = telemetry
        self.repository = repository
        self.services = services
        self.state = ServerState.READY

        self._http: Optional[uvicorn.Server] = None
        self._serve_task: Optional[asyncio.Task] = None

    @classmethod
    async def create(
        cls,
        settings: Settings,
        logger,
        telemetry_factory: Callable[[Settings], TelemetryService] = TelemetryService.create,
        repository_factory: Callable[..., Awaitable[Repository]] = Repository.build,
    ) -> "Server":
        """
        Build tracing, then the repository, then the services.

        Any failure aborts construction; tracing is shut down again if the
        repository cannot be built, so no partial server is left behind.
        """
        logger.info("Building server", state=ServerState.CONSTRUCTING.value)

        telemetry = telemetry_factory(settings)

        try:
            repository = await repository_factory(settings, logger, telemetry)
        except Exception:
            logger.error("Repository construction failed", state=ServerState.FAILED.value)
            try:
                telemetry.shutdown()
            except Exception as e:
                logger.warning("Error shutting down tracing after failed startup", error=str(e))
            raise

        services = Services.create(settings, telemetry, repository)

        return cls(
            settings=settings,
            logger=logger,
            telemetry=telemetry,
            repository=repository,
            services=services,
        )

    def setup_http_server(self, app: FastAPI) -> None:
        """Configure the HTTP listener with the port and timeouts from settings."""
        config = uvicorn.Config(
            app,
            host=self.settings.SERVER_HOST,
            port=self.settings.SERVER_PORT,
            timeout_keep_alive=self.settings.SERVER_IDLE_TIMEOUT,
            timeout_graceful_shutdown=math.ceil(self.settings.SHUTDOWN_GRACE_PERIOD),
            lifespan="off",
            log_config=None,
        )
        self._http = _ListenerServer(config)

    async def run(self) -> None:
        """
        Serve until stopped.

        Raises:
            ServerNotInitializedError: If setup_http_server() was not called
            ServerRunError: If the listener cannot bind or exits on its own
        """
        if self._http is None:
            raise ServerNotInitializedError()

        self.logger.info(
            "starting server",
            port=self.settings.SERVER_PORT,
            env=self.settings.ENVIRONMENT,
        )
        self.state = ServerState.RUNNING

        try:
            await self._http.serve()
        except SystemExit as e:
            # uvicorn exits the process when it cannot bind
            self.state = ServerState.FAILED
            raise ServerRunError("HTTP listener failed to start", e)

        if self.state is ServerState.RUNNING:
            self.state = ServerState.FAILED
            raise ServerRunError("HTTP listener stopped unexpectedly")

    def start(self) -> asyncio.Task:
        """Run the listener as a background task; errors surface through the task."""
        if self._serve_task is None:
            self._serve_task = asyncio.create_task(self.run(), name="http-listener")
        return self._serve_task

    async def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop accepting work, drain in-flight requests, then release resources.

        The listener is stopped first, then the repository is closed, then
        tracing is flushed and shut down with whatever is left of
        ``timeout`` (the grace period by default). Repository errors are
        re-raised at the end. Tracing that fails or runs out of time only
        costs the pending spans and is logged.
        """
        if self.state in (ServerState.STOPPING, ServerState.STOPPED):
            return

        self.state = ServerState.STOPPING
        self.logger.info("stopping server")

        loop = asyncio.get_running_loop()
        budget = self.settings.SHUTDOWN_GRACE_PERIOD if timeout is None else timeout
        deadline = loop.time() + budget

        if self._http is not None:
            self._http.should_exit = True
        if self._serve_task is not None:
            _, pending = await asyncio.wait(
                {self._serve_task}, timeout=max(deadline - loop.time(), 0.0)
            )
            if pending and self._http is not None:
                self.logger.warning("Listener still draining, forcing exit")
                self._http.force_exit = True

        first_error: Optional[BaseException] = None

        try:
            await self.repository.close()
        except Exception as e:
            self.logger.error("Error closing repository", error=str(e))
            first_error = e

        remaining = max(deadline - loop.time() - TRACING_SHUTDOWN_MARGIN, 0.0)
        try:
            if not await self.telemetry.shutdown_within(remaining):
                self.logger.warning(
                    "Tracing shutdown ran out of time, pending spans dropped",
                    budget_seconds=round(remaining, 3),
                )
        except TracingSetupError as e:
            self.logger.warning("Error shutting down tracing", error=str(e))

        if first_error is not None:
            self.state = ServerState.FAILED
            raise first_error

        self.state = ServerState.STOPPED
        self.logger.info("server stopped")
