"""
Manejadores de excepciones centralizados para la aplicación FastAPI.

Cada excepción de la aplicación se traduce a una respuesta JSON con el
mismo formato: tipo de error, código, mensaje y detalles.
"""

import logging
import traceback
from datetime import UTC, datetime
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from bulk_editor.core.config import get_settings
from bulk_editor.utils.error_handler import (
    AppException,
    ConflictException,
    RateLimitException,
    RemoteValidationException,
    ShopifyAPIException,
    ValidationException,
)

logger = logging.getLogger(__name__)


def _error_content(request: Request, error_type: str, message: str, **extra: Any) -> Dict[str, Any]:
    return {
        "error": True,
        "error_type": error_type,
        "message": message,
        **extra,
        "path": str(request.url.path),
        "timestamp": datetime.now(UTC).isoformat(),
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
    logger.error(f"App Exception: {exc.message} - Code: {exc.error_code.value} - URL: {request.url}")

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_content(
            request,
            "application_error",
            exc.message,
            error_code=exc.error_code.value,
            details=exc.details if get_settings().DEBUG else None,
        ),
    )


async def validation_exception_handler(request: Request, exc: ValidationException) -> JSONResponse:
    """
    Manejador para errores de validación de la solicitud.
    """
    logger.warning(f"Validation Exception: {exc.message} - Field: {exc.field} - URL: {request.url}")

    return JSONResponse(
        status_code=422,
        content=_error_content(
            request,
            "validation_error",
            exc.message,
            error_code=exc.error_code.value,
            field=exc.field,
        ),
    )


async def conflict_exception_handler(request: Request, exc: ConflictException) -> JSONResponse:
    """
    Manejador para solicitudes rechazadas por una operación activa.
    """
    logger.info(f"Conflict: {exc.message} - Shop: {exc.shop} - Active: {exc.active_operation_id}")

    return JSONResponse(
        status_code=409,
        content=_error_content(
            request,
            "conflict_error",
            exc.message,
            error_code=exc.error_code.value,
            active_operation_id=exc.active_operation_id,
        ),
    )


async def remote_validation_exception_handler(request: Request, exc: RemoteValidationException) -> JSONResponse:
    """
    Manejador para userErrors devueltos por Shopify al enviar un job.
    """
    logger.warning(f"Remote validation failed: {exc.message} - URL: {request.url}")

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_content(
            request,
            "remote_validation_error",
            exc.message,
            error_code=exc.error_code.value,
            user_errors=exc.user_errors,
        ),
    )


async def shopify_api_exception_handler(request: Request, exc: ShopifyAPIException) -> JSONResponse:
    """
    Manejador específico para errores de la API de Shopify.
    """
    logger.error(
        f"Shopify API Exception: {exc.message} - "
        f"API Code: {exc.api_response_code} - "
        f"Endpoint: {exc.endpoint} - "
        f"URL: {request.url}"
    )

    headers: Optional[Dict[str, str]] = None
    retry_after = getattr(exc, "retry_after", None)
    if isinstance(exc, RateLimitException) and retry_after:
        headers = {"Retry-After": str(int(retry_after))}

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_content(
            request,
            "shopify_api_error",
            exc.message,
            error_code=exc.error_code.value,
            shopify_response_code=exc.api_response_code,
            retry_after=retry_after,
        ),
        headers=headers,
    )


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Manejador para bodies o parámetros que no pasan la validación de FastAPI.
    """
    errors = exc.errors()
    logger.warning(f"Request validation failed: {len(errors)} errors - URL: {request.url}")

    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body") or None

    return JSONResponse(
        status_code=422,
        content=_error_content(
            request,
            "validation_error",
            first.get("msg", "Invalid request"),
            error_code="VALIDATION_ERROR",
            field=field,
            errors=jsonable_encoder(errors),
        ),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    Manejador para HTTPException estándar de FastAPI/Starlette.
    """
    logger.warning(f"HTTP Exception: {exc.status_code} - {exc.detail} - URL: {request.url}")

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_content(request, "http_error", exc.detail, status_code=exc.status_code),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Manejador global para excepciones no capturadas.
    """
    logger.error(
        f"Unhandled Exception: {str(exc)} - "
        f"Type: {type(exc).__name__} - "
        f"URL: {request.url} - "
        f"Traceback: {traceback.format_exc()}"
    )

    debug = get_settings().DEBUG
    error_message = f"{type(exc).__name__}: {str(exc)}" if debug else "Internal server error occurred"

    return JSONResponse(
        status_code=500,
        content=_error_content(request, "internal_server_error", error_message),
    )


def configure_exception_handlers(app: FastAPI) -> None:
    """
    Configura todos los manejadores de excepciones de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    logger.info("🔧 Configuring exception handlers...")

    # Manejadores específicos (orden de especificidad)
    app.add_exception_handler(ValidationException, validation_exception_handler)
    app.add_exception_handler(ConflictException, conflict_exception_handler)
    app.add_exception_handler(RemoteValidationException, remote_validation_exception_handler)
    app.add_exception_handler(ShopifyAPIException, shopify_api_exception_handler)
    app.add_exception_handler(AppException, app_exception_handler)

    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    # Debe ser el último
    app.add_exception_handler(Exception, global_exception_handler)

    logger.info("✅ Exception handlers configured")
