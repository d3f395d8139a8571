"""Map core exceptions to ``{message, kind}`` responses.

Stack traces never leave the process: unexpected errors are logged with
their traceback and answered with a generic message.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError

from commerce.errors import AccessDenied, ConflictError, NotAuthenticated, ReservationFailed
from commerce.gateway.port import CallbackNotVerified, GatewayError

logger = structlog.get_logger(__name__)


def _flatten(messages) -> str:
    if isinstance(messages, dict):
        parts = []
        for key, value in messages.items():
            values = value if isinstance(value, list | tuple) else [value]
            parts.append(f"{key}: {', '.join(str(v) for v in values)}")
        return "; ".join(parts)
    return str(messages)


def error_body(message: str, kind: str, **extra) -> dict:
    return {"message": message, "kind": kind, **extra}


async def _validation(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content=error_body(_flatten(exc.messages), "validation", errors=exc.messages))


async def _conflict(request: Request, exc: ConflictError):
    extra = {"errors": exc.messages}
    if isinstance(exc, ReservationFailed):
        extra["failures"] = [failure.to_dict() for failure in exc.failures]
    return JSONResponse(status_code=409, content=error_body(_flatten(exc.messages), "conflict", **extra))


async def _version_conflict(request: Request, exc: ExpectedVersionError):
    return JSONResponse(
        status_code=409, content=error_body("The resource was modified concurrently; retry the request", "conflict")
    )


async def _not_found(request: Request, exc: ObjectNotFoundError):
    return JSONResponse(status_code=404, content=error_body(_flatten(exc.messages), "not_found"))


async def _forbidden(request: Request, exc: AccessDenied):
    return JSONResponse(status_code=403, content=error_body(str(exc), "forbidden"))


async def _unauthorized(request: Request, exc: Exception):
    return JSONResponse(
        status_code=401,
        content=error_body(str(exc), "unauthorized"),
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _external(request: Request, exc: GatewayError):
    logger.warning("payment_provider_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=502, content=error_body("Payment provider error", "external"))


async def _request_validation(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content=error_body("Request body is invalid", "validation", errors=exc.errors()),
    )


async def _unexpected(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path, method=request.method)
    return JSONResponse(status_code=500, content=error_body("Internal server error", "server_error"))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationError, _validation)
    app.add_exception_handler(ConflictError, _conflict)
    app.add_exception_handler(ExpectedVersionError, _version_conflict)
    app.add_exception_handler(ObjectNotFoundError, _not_found)
    app.add_exception_handler(AccessDenied, _forbidden)
    app.add_exception_handler(NotAuthenticated, _unauthorized)
    app.add_exception_handler(CallbackNotVerified, _unauthorized)
    app.add_exception_handler(GatewayError, _external)
    app.add_exception_handler(RequestValidationError, _request_validation)
    app.add_exception_handler(Exception, _unexpected)
