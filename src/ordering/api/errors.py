"""HTTP mapping for ordering errors that protean's handlers do not cover.

protean.integrations.fastapi.register_exception_handlers already maps
ValidationError (and so every IllegalTransitionError) to 400 and
ObjectNotFoundError to 404.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ordering.domain import logger
from ordering.errors import (
    ExpiredError,
    GatewayError,
    NotFoundError,
    OrderingError,
    PersistenceError,
)

_STATUS_CODES = (
    (NotFoundError, 404),
    (ExpiredError, 410),
    (GatewayError, 502),
    (PersistenceError, 503),
)


def status_code_for(exc: OrderingError) -> int:
    for error_class, status_code in _STATUS_CODES:
        if isinstance(exc, error_class):
            return status_code
    return 500


async def _ordering_error_handler(request: Request, exc: OrderingError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message, **exc.context)
    return JSONResponse(status_code=status_code, content={"error": exc.message})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OrderingError, _ordering_error_handler)
