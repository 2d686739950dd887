"""
Maps QuoteflowError subclasses to HTTP responses.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import structlog

from quoteflow.errors import (
    AlreadyClaimed,
    InsufficientRole,
    InvalidInput,
    InvalidTransition,
    NotFound,
    QuoteflowError,
    StaleClaim,
    TerminalStateViolation,
    TransportFailure,
)

logger = structlog.get_logger(__name__)

STATUS_BY_ERROR: dict[type[QuoteflowError], int] = {
    InvalidInput: 422,
    NotFound: 404,
    AlreadyClaimed: 409,
    StaleClaim: 409,
    InsufficientRole: 403,
    TerminalStateViolation: 409,
    InvalidTransition: 409,
    TransportFailure: 503,
}


def status_for(error: QuoteflowError) -> int:
    for error_cls in type(error).__mro__:
        if error_cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[error_cls]
    return 400


async def quoteflow_error_handler(request: Request, exc: QuoteflowError) -> JSONResponse:
    status_code = status_for(exc)
    log = logger.error if status_code >= 500 else logger.info
    log(
        "request_failed",
        path=request.url.path,
        status_code=status_code,
        error_code=exc.error_code,
        message=exc.message,
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(QuoteflowError, quoteflow_error_handler)
