"""
Generic request pipeline: decode -> validate -> invoke -> encode.

Every resource endpoint is built from ``handle()``; only the payload type,
the success status and the business function change.
"""

from typing import Awaitable, Callable, Protocol, Type, TypeVar

import structlog
from fastapi import HTTPException, status
from pydantic import TypeAdapter, ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ...core.exceptions import InvalidPayloadError

logger = structlog.get_logger()


class Validatable(Protocol):
    def validate(self) -> None:
        ...


P = TypeVar("P", bound=Validatable)
R = TypeVar("R")

Endpoint = Callable[[Request], Awaitable[Response]]


def handle(
    fn: Callable[[Request, P], Awaitable[R]],
    status_code: int,
    payload_type: Type[P],
) -> Endpoint:
    """
    Build an endpoint around a business function.

    Args:
        fn: Business function receiving the request and the decoded payload
        status_code: Status used for a successful response
        payload_type: Type the JSON body is decoded into

    Returns:
        Async endpoint suitable for ``add_api_route``

    The endpoint answers 400 when the body cannot be decoded or the payload
    fails ``validate()``, 500 when the business function raises, and
    ``status_code`` with the JSON-encoded result otherwise. The error is
    left in ``request.state.error`` for the tracing middleware.
    """
    decoder = TypeAdapter(payload_type)

    async def endpoint(request: Request) -> Response:
        body = await request.body()

        try:
            payload = decoder.validate_json(body)
        except ValidationError as e:
            request.state.error = e
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="invalid request body"
            )

        try:
            payload.validate()
        except InvalidPayloadError as e:
            request.state.error = e
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

        try:
            result = await fn(request, payload)
        except HTTPException:
            raise
        except Exception as e:
            request.state.error = e
            logger.error(
                "Request handler failed",
                path=request.url.path,
                error=str(e),
                exc_info=True,
            )
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="internal server error",
            )

        content = TypeAdapter(type(result)).dump_python(result, mode="json")
        return JSONResponse(content=content, status_code=status_code)

    return endpoint
