"""
Student Service entry point.

Builds the server, starts the HTTP listener in the background and blocks
until either an interrupt arrives or the listener fails. On interrupt the
stop is raced against the grace period and any late listener error.
"""

import asyncio
import signal
import sys
from typing import Optional

import structlog
from pydantic import ValidationError

from .core.config import Settings, get_settings
from .core.exceptions import ShutdownTimeoutError
from .core.logging import configure_logging
from .server import Server
from .server.handler import Handlers
from .server.router import new_router

EXIT_OK = 0
EXIT_FAILURE = 1


def install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    """Set ``shutdown_event`` on SIGINT or SIGTERM."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown_event.set)
        except NotImplementedError:
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(shutdown_event.set))


def _task_error(task: asyncio.Task) -> Optional[BaseException]:
    if task.cancelled():
        return None
    return task.exception()


async def supervise(
    server: Server, shutdown_event: asyncio.Event, grace_period: float, logger
) -> int:
    """
    Run the server until interrupted and return the process exit code.

    A listener error before any interrupt exits immediately without a
    grace period. After an interrupt, the first of stop completion, stop
    error, listener error or grace-period expiry decides the outcome.
    """
    serve_task = server.start()
    interrupt = asyncio.create_task(shutdown_event.wait())

    done, _ = await asyncio.wait({serve_task, interrupt}, return_when=asyncio.FIRST_COMPLETED)

    if interrupt not in done:
        interrupt.cancel()
        logger.critical("Error running server", error=str(_task_error(serve_task)))
        return EXIT_FAILURE

    logger.info("Stopping server", grace_period_seconds=grace_period)
    stop_task = asyncio.create_task(server.stop(grace_period))

    loop = asyncio.get_running_loop()
    deadline = loop.time() + grace_period
    pending = {stop_task, serve_task}

    while pending:
        remaining = deadline - loop.time()
        if remaining <= 0:
            break

        done, pending = await asyncio.wait(
            pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
        )
        for task in done:
            error = _task_error(task)
            if error is not None:
                stop_task.cancel()
                logger.critical("Error stopping server", error=str(error))
                return EXIT_FAILURE
        if stop_task in done:
            logger.info("Server stopped gracefully")
            return EXIT_OK

    stop_task.cancel()
    logger.critical("Error stopping server", error=str(ShutdownTimeoutError(grace_period)))
    return EXIT_FAILURE


async def run(settings: Settings, logger) -> int:
    """Build, wire and supervise the server."""
    try:
        server = await Server.create(settings, logger)
    except Exception as e:
        logger.critical("Error creating new server", error=str(e), exc_info=True)
        return EXIT_FAILURE

    handlers = Handlers.create(server)
    app = new_router(server, handlers)
    server.setup_http_server(app)

    shutdown_event = asyncio.Event()
    install_signal_handlers(shutdown_event)

    return await supervise(server, shutdown_event, settings.SHUTDOWN_GRACE_PERIOD, logger)


def main() -> None:
    try:
        settings = get_settings()
    except ValidationError as e:
        structlog.get_logger().critical("Error loading config", error=str(e))
        sys.exit(EXIT_FAILURE)

    logger = configure_logging(settings)
    sys.exit(asyncio.run(run(settings, logger)))


if __name__ == "__main__":
    main()
