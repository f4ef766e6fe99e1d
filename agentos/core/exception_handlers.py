"""
Manejadores de excepciones centralizados para la aplicación FastAPI.

Todas las respuestas de error comparten la misma forma JSON:
``error``, ``error_type``, ``error_code``, ``message``, ``details``,
``path``, ``timestamp`` y ``request_id``.
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from agentos.utils.error_handler import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ErrorCode,
    LockAcquisitionError,
    NotFoundError,
    UpstreamError,
    ValidationException,
)

logger = logging.getLogger(__name__)

_ERROR_TYPES = (
    (ValidationException, "validation_error"),
    (NotFoundError, "not_found"),
    (ConflictError, "conflict"),
    (LockAcquisitionError, "conflict"),
    (AuthenticationError, "authentication_error"),
    (AuthorizationError, "authorization_error"),
    (UpstreamError, "shopify_api_error"),
)


def _error_body(
    request: Request,
    error_type: str,
    message: Any,
    error_code: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return {
        "error": True,
        "error_type": error_type,
        "error_code": error_code,
        "message": message,
        "details": details,
        "path": str(request.url.path),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request.headers.get("X-Request-ID"),
    }


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Manejador para excepciones personalizadas de la aplicación.

    Args:
        request: Request de FastAPI
        exc: Excepción personalizada de la app

    Returns:
        JSONResponse: Respuesta JSON con error formateado
    """
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        f"App Exception: {exc.message} - "
        f"Code: {exc.error_code.value} - "
        f"URL: {request.url} - "
        f"Details: {exc.details}",
    )

    error_type = "application_error"
    for exc_class, name in _ERROR_TYPES:
        if isinstance(exc, exc_class):
            error_type = name
            break

    headers = {}
    if isinstance(exc, UpstreamError) and exc.rate_limited and exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    if isinstance(exc, AuthenticationError):
        headers["WWW-Authenticate"] = "Bearer"

    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(
            _error_body(request, error_type, exc.message, exc.error_code.value, exc.details)
        ),
        headers=headers or None,
    )


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Manejador para cuerpos o parámetros que no pasan la validación de FastAPI.
    """
    logger.warning(f"Request Validation Error: {exc.errors()} - URL: {request.url}")

    return JSONResponse(
        status_code=422,
        content=jsonable_encoder(
            _error_body(
                request,
                "validation_error",
                "Request validation failed",
                ErrorCode.VALIDATION_ERROR.value,
                {"errors": exc.errors()},
            )
        ),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    Manejador para HTTPException de FastAPI y Starlette.

    Args:
        request: Request de FastAPI
        exc: HTTPException

    Returns:
        JSONResponse: Respuesta JSON estandarizada
    """
    logger.warning(f"HTTP Exception: {exc.status_code} - {exc.detail} - URL: {request.url}")

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, "http_error", exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Manejador global para excepciones no capturadas.

    Args:
        request: Request de FastAPI
        exc: Excepción no manejada

    Returns:
        JSONResponse: Respuesta JSON de error interno
    """
    logger.error(
        f"💥 Unhandled Exception: {str(exc)} - "
        f"Type: {type(exc).__name__} - "
        f"URL: {request.url} - "
        f"Traceback: {traceback.format_exc()}"
    )

    # Respuesta genérica (sin exponer detalles internos)
    error_message = "Internal server error occurred"
    details = None
    if request.app.state.settings.DEBUG:
        error_message = f"{type(exc).__name__}: {str(exc)}"
        details = {"traceback": traceback.format_exc()}

    return JSONResponse(
        status_code=500,
        content=_error_body(request, "internal_server_error", error_message, ErrorCode.UNKNOWN_ERROR.value, details),
    )


def configure_exception_handlers(app: FastAPI) -> None:
    """
    Configura todos los manejadores de excepciones de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    logger.info("🔧 Configurando manejadores de excepciones...")

    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

    # Manejadores HTTP estándar
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    # Manejador global (debe ser el último)
    app.add_exception_handler(Exception, global_exception_handler)

    logger.info("✅ Manejadores de excepciones configurados correctamente")
