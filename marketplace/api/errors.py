# marketplace/api/errors.py
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from marketplace.domain.errors import (
    ConcurrencyConflict,
    InsufficientFunds,
    InvalidTransition,
    MarketplaceError,
    NotFoundError,
    PaymentGatewayError,
    PersistenceFailure,
    ValidationError,
)
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

STATUS_CODES = (
    (NotFoundError, 404),
    (ValidationError, 400),
    (InsufficientFunds, 402),
    (ConcurrencyConflict, 409),
    (InvalidTransition, 409),
    (PaymentGatewayError, 502),
    (PersistenceFailure, 500),
)


def status_for(exc: MarketplaceError) -> int:
    for cls, code in STATUS_CODES:
        if isinstance(exc, cls):
            return code
    return 400


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(MarketplaceError)
    async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
        code = status_for(exc)
        if code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        else:
            logger.warning(f"{request.method} {request.url.path} -> {code}: {exc}")
        return JSONResponse(status_code=code, content={"detail": str(exc), "error": type(exc).__name__})

    @app.exception_handler(PermissionError)
    async def permission_error_handler(request: Request, exc: PermissionError) -> JSONResponse:
        logger.warning(f"{request.method} {request.url.path} -> 403: {exc}")
        return JSONResponse(status_code=403, content={"detail": str(exc), "error": "Forbidden"})
