"""
Catalog Bulk Editor - FastAPI Application Entry Point

Ediciones masivas de precios y tags del catálogo de Shopify mediante
bulk operations, con preview, historial y undo.

Este archivo actúa como el punto de entrada principal de la aplicación,
orquestando todos los componentes de manera modular.
"""

import logging

import uvicorn
from fastapi import FastAPI

from bulk_editor.core.config import get_settings
from bulk_editor.core.exception_handlers import configure_exception_handlers
from bulk_editor.core.lifespan import lifespan
from bulk_editor.core.routers import configure_all_routers

logger = logging.getLogger(__name__)


def create_application() -> FastAPI:
    """
    Factory para crear y configurar la aplicación FastAPI.

    Returns:
        FastAPI: Instancia configurada de la aplicación
    """
    settings = get_settings()
    logger.info("🏗️ Creating FastAPI application...")

    app = FastAPI(
        title=settings.APP_NAME,
        description="Bulk price and tag edits for the Shopify catalog",
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    # 1. Manejadores de excepciones
    configure_exception_handlers(app)

    # 2. Routers y endpoints
    configure_all_routers(app)

    app.state.app_info = {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }

    logger.info("✅ FastAPI application created")
    return app


app = create_application()


if __name__ == "__main__":
    """
    Para desarrollo con auto-reload:
    uvicorn bulk_editor.main:app --reload
    """
    settings = get_settings()
    uvicorn.run(
        "bulk_editor.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
