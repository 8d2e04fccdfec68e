"""
mailauth.api.errors - Exception Rendering

Translates mailauth exceptions into JSON error responses:
- OAuthError / EmailError: rendered with their own status, type and code
- ConfigurationNotFoundError: 404
- Any other MailAuthError: a generic 500; the detail stays in the logs
- Request validation failures: 422 with field locations and messages only
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from mailauth.services.oauth.errors import (
    ConfigurationNotFoundError,
    EmailError,
    MailAuthError,
    OAuthError,
)

logger = logging.getLogger(__name__)


def _error_body(message: str, error_type: str, http_code: int, **extra: Any) -> dict[str, Any]:
    return {"error": True, "message": message, "error_type": error_type, "http_code": http_code, **extra}


async def mailauth_error_handler(request: Request, exc: MailAuthError) -> JSONResponse:
    context = {"path": request.url.path, "method": request.method, **exc.log_extra()}

    if isinstance(exc, (OAuthError, EmailError)):
        logger.error(f"{exc.__class__.__name__}: {exc.message}", extra=context)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    if isinstance(exc, ConfigurationNotFoundError):
        logger.warning(exc.message, extra=context)
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=_error_body("Configuration not found", "not_found", status.HTTP_404_NOT_FOUND),
        )

    logger.error(
        f"Unhandled {exc.__class__.__name__}: {exc.message}",
        extra=context,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(
            "Internal server error", "internal_error", status.HTTP_500_INTERNAL_SERVER_ERROR
        ),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Submitted values are omitted; they may include client secrets
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    logger.info(
        "Invalid request data",
        extra={"path": request.url.path, "fields": [".".join(map(str, e["loc"])) for e in errors]},
    )
    return JSONResponse(
        status_code=422,
        content=_error_body(
            "Invalid input data",
            "validation_error",
            422,
            errors=errors,
        ),
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MailAuthError, mailauth_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
