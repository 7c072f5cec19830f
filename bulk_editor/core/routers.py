"""
Configuración centralizada de routers para la aplicación FastAPI.

Registra los endpoints base (raíz, health, versión) y los routers de
la API v1.
"""

import logging
from datetime import UTC, datetime

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from bulk_editor.api.v1.endpoints.bulk_operations import router as bulk_operations_router
from bulk_editor.api.v1.endpoints.webhooks import router as webhooks_router
from bulk_editor.core.config import get_environment_info, get_settings
from bulk_editor.core.health import get_health_status
from bulk_editor.core.scheduler import get_scheduler_status
from bulk_editor.version import version_info

logger = logging.getLogger(__name__)


def create_root_endpoints(app: FastAPI) -> None:
    """
    Crea endpoints raíz de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    settings = get_settings()

    @app.get("/", tags=["Root"], summary="API Info")
    async def root():
        """Información básica de la API."""
        return {
            "message": settings.APP_NAME,
            "description": "Bulk price and tag edits for the Shopify catalog",
            "version": settings.APP_VERSION,
            "status": "running",
            "environment": get_environment_info(),
            "timestamp": datetime.now(UTC).isoformat(),
            "endpoints": {
                "health": "/health",
                "bulk": "/api/v1/bulk",
                "webhooks": "/api/v1/webhooks",
            },
        }

    @app.get("/version", tags=["Root"], summary="Version Info")
    async def version():
        return version_info()


def create_health_endpoints(app: FastAPI) -> None:
    """
    Crea endpoints de health check.

    Args:
        app: Instancia de FastAPI
    """
    settings = get_settings()

    @app.get("/health", tags=["Health"], summary="Health Check")
    async def health_check():
        """
        Estado de la base de datos de operaciones y del cliente de Shopify.
        """
        try:
            health_status = await get_health_status()
            return JSONResponse(
                status_code=200 if health_status["overall"] else 503,
                content={
                    "status": "healthy" if health_status["overall"] else "unhealthy",
                    "version": settings.APP_VERSION,
                    "timestamp": datetime.now(UTC).isoformat(),
                    "uptime": health_status["uptime"],
                    "services": health_status["services"],
                    "scheduler": get_scheduler_status(),
                    "environment": settings.ENVIRONMENT,
                },
            )
        except Exception as e:
            logger.error(f"Error en health check: {e}")
            return JSONResponse(
                status_code=503,
                content={
                    "status": "unhealthy",
                    "error": str(e),
                    "timestamp": datetime.now(UTC).isoformat(),
                    "version": settings.APP_VERSION,
                },
            )

    @app.get("/health/liveness", tags=["Health"], summary="Liveness Probe")
    async def liveness_probe():
        return {"status": "alive", "timestamp": datetime.now(UTC).isoformat()}


def configure_api_v1_routers(app: FastAPI) -> None:
    """
    Configura los routers de la API v1.

    Args:
        app: Instancia de FastAPI
    """
    logger.info("🔧 Configuring API v1 routers...")

    app.include_router(
        bulk_operations_router,
        prefix="/api/v1/bulk",
        tags=["Bulk Operations"],
        responses={
            404: {"description": "Operation not found"},
            409: {"description": "Another operation is in progress"},
            422: {"description": "Invalid request"},
        },
    )
    logger.info("✅ Bulk operations router configured")

    app.include_router(
        webhooks_router,
        prefix="/api/v1/webhooks",
        tags=["Webhooks"],
    )
    logger.info("✅ Webhooks router configured")


def configure_all_routers(app: FastAPI) -> None:
    """
    Configura todos los routers de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    create_root_endpoints(app)
    create_health_endpoints(app)
    configure_api_v1_routers(app)
    logger.info("✅ All routers configured")
