"""
Error taxonomy and the client-facing error envelope.

Every non-2xx JSON body is {"error_instance_id": ..., "error_message": ...}. The
instance id is generated per failure and logged with full context; 5xx messages stay generic.
"""
import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

GENERIC_MESSAGE = "server side failure. please report the error_instance_id to the admin"


class BridgeError(Exception):
    """Base class. Subclasses set status_code, category and the message the client sees."""

    status_code = 500
    category = "internal"
    log_level = logging.ERROR

    def __init__(self, detail: str, *, public_message: str | None = None, **context):
        super().__init__(detail)
        self.detail = detail
        self.public_message = public_message or GENERIC_MESSAGE
        self.context = context


class ClientInputError(BridgeError):
    """Missing or malformed input. The detail is safe to show the caller."""

    status_code = 400
    category = "client"
    log_level = logging.INFO

    def __init__(self, detail: str, **context):
        super().__init__(detail, public_message=detail, **context)


class NotPermittedError(ClientInputError):
    def __init__(self, host: str):
        super().__init__("instance not in permit list", host=host)


class ListNotFoundError(ClientInputError):
    def __init__(self, list_id: str):
        super().__init__("no list found (or unable to access) with that id", list_id=list_id)


class UnauthorizedError(ClientInputError):
    status_code = 401
    category = "auth"


class UpstreamError(BridgeError):
    """Mastodon instance unreachable or returned an error."""

    category = "upstream"

    def __init__(self, detail: str, *, status: int | None = None, **context):
        super().__init__(detail, **context)
        self.status = status


class ConfigurationError(BridgeError):
    """Operator misconfiguration: a required scalar is missing or unusable."""

    category = "configuration"
    log_level = logging.CRITICAL

    def __init__(self, key: str, detail: str | None = None):
        super().__init__(detail or f"'{key}' key/value pair not found in config store", key=key)
        self.key = key


class StoreError(BridgeError):
    category = "store"


class ConsistencyError(BridgeError):
    """Data-model violation or possible tampering."""

    category = "consistency"


def new_error_instance_id() -> str:
    return uuid.uuid4().hex


def error_envelope(error_instance_id: str, message: str) -> dict:
    return {"error_instance_id": error_instance_id, "error_message": message}


async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
    error_id = new_error_instance_id()
    logger.log(
        exc.log_level,
        "error_instance_id=%s category=%s status=%s method=%s path=%s detail=%s context=%s",
        error_id,
        exc.category,
        exc.status_code,
        request.method,
        request.url.path,
        exc.detail,
        exc.context,
        exc_info=exc if exc.status_code >= 500 else None,
    )
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(error_id, exc.public_message),
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Framework errors (unknown route, wrong method) in the same envelope."""
    error_id = new_error_instance_id()
    logger.info(
        "error_instance_id=%s category=client status=%s method=%s path=%s detail=%s",
        error_id,
        exc.status_code,
        request.method,
        request.url.path,
        exc.detail,
    )
    message = exc.detail if isinstance(exc.detail, str) else GENERIC_MESSAGE
    if exc.status_code >= 500:
        message = GENERIC_MESSAGE
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(error_id, message),
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error_id = new_error_instance_id()
    errors = exc.errors()
    logger.info(
        "error_instance_id=%s category=client status=422 method=%s path=%s errors=%s",
        error_id,
        request.method,
        request.url.path,
        errors,
    )
    # loc is ("query", "limit") and the like; the caller only needs the name
    fields = ", ".join(str(e["loc"][-1]) for e in errors if e.get("loc"))
    message = f"invalid request parameters: {fields}" if fields else "invalid request parameters"
    return JSONResponse(status_code=422, content=error_envelope(error_id, message))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error_id = new_error_instance_id()
    logger.error(
        "error_instance_id=%s category=unhandled method=%s path=%s",
        error_id,
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content=error_envelope(error_id, GENERIC_MESSAGE))


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BridgeError, bridge_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
