"""
Request timeout middleware.

Pure ASGI middleware applying the configured read and write timeouts:
- read timeout bounds each wait for request body chunks
- write timeout bounds the whole request, from first byte read to last byte sent
"""

import asyncio

import structlog
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = structlog.get_logger()


class RequestReadTimeout(Exception):
    """Raised to the app when the client stalls while sending the body."""


async def request_read_timeout_handler(request: Request, exc: RequestReadTimeout) -> JSONResponse:
    return JSONResponse({"detail": "request read timed out"}, status_code=408)


class RequestTimeoutMiddleware:
    def __init__(self, app: ASGIApp, read_timeout: float, write_timeout: float):
        self.app = app
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        body_complete = False
        response_started = False

        async def timed_receive() -> Message:
            nonlocal body_complete
            if body_complete:
                return await receive()
            try:
                message = await asyncio.wait_for(receive(), timeout=self.read_timeout)
            except asyncio.TimeoutError:
                raise RequestReadTimeout()
            if message["type"] != "http.request" or not message.get("more_body", False):
                body_complete = True
            return message

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await asyncio.wait_for(
                self.app(scope, timed_receive, tracking_send), timeout=self.write_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Request exceeded write timeout",
                path=scope.get("path"),
                write_timeout=self.write_timeout,
                response_started=response_started,
            )
            if not response_started:
                response = JSONResponse({"detail": "request timed out"}, status_code=503)
                await response(scope, receive, send)
