from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.context import get_correlation_id
from app.platform.security.errors import AuthorizationError, HashingError, ResourceNotFound, ShareLinkDenied


logger = logging.getLogger("app.errors")

_HTTP_STATUS_CODES: dict[int, str] = {
    400: "bad_request",
    401: "unauthenticated",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    422: "validation_error",
    429: "rate_limited",
}


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(getattr(request.state, "context", None), "request_id", None)
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def _authorization_error_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    return error_response(request, status_code=exc.status_code, code=exc.code, message=exc.message)


def _not_found_handler(request: Request, exc: ResourceNotFound) -> JSONResponse:
    return error_response(request, status_code=exc.status_code, code=exc.code, message=exc.message)


def _share_link_handler(request: Request, exc: ShareLinkDenied) -> JSONResponse:
    # The reason stays server-side; all failures share one public message.
    return error_response(request, status_code=exc.status_code, code=exc.code, message=exc.message)


def _hashing_error_handler(request: Request, exc: HashingError) -> JSONResponse:
    logger.error("hashing_failed", extra={"path": request.url.path, "error": type(exc).__name__})
    return error_response(request, status_code=500, code="internal_error", message="Internal server error")


def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(
        request,
        status_code=422,
        code="validation_error",
        message="Request validation failed",
        details=jsonable_encoder(exc.errors()),
    )


def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _HTTP_STATUS_CODES.get(exc.status_code, "http_error")
    message = exc.detail if isinstance(exc.detail, str) else code
    details = None if isinstance(exc.detail, str) else exc.detail
    response = error_response(request, status_code=exc.status_code, code=code, message=message, details=details)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthorizationError, _authorization_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ResourceNotFound, _not_found_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ShareLinkDenied, _share_link_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HashingError, _hashing_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)  # type: ignore[arg-type]
