"""
Gestión del ciclo de vida de la aplicación FastAPI.

Este módulo maneja los eventos de startup y shutdown: logging, base de
datos de operaciones, cliente de Shopify y scheduler de limpieza.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from bulk_editor.core.config import get_settings
from bulk_editor.core.logging_config import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gestión del ciclo de vida de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    settings = get_settings()

    # === STARTUP ===
    setup_logging()
    logger.info(f"🚀 Starting {settings.APP_NAME}...")

    try:
        # 1. Verificar configuración
        await startup_verify_configuration()

        # 2. Base de datos y cliente de Shopify
        await startup_initialize_services()

        # 3. Tareas programadas
        await startup_configure_scheduled_tasks()

        logger.info("🎉 Application started")

    except Exception as e:
        logger.error(f"❌ Startup failed: {e}")
        await shutdown_cleanup_services()
        raise

    yield

    # === SHUTDOWN ===
    logger.info(f"🛑 Shutting down {settings.APP_NAME}...")

    try:
        await shutdown_stop_scheduled_tasks()
        await shutdown_cleanup_services()
        logger.info("👋 Application stopped")
    except Exception as e:
        logger.error(f"❌ Error during shutdown: {e}")


# === FUNCIONES DE STARTUP ===


async def startup_verify_configuration():
    """Verifica que la configuración mínima esté presente."""
    settings = get_settings()

    required_vars = ["SHOPIFY_SHOP_URL", "SHOPIFY_ACCESS_TOKEN", "DATABASE_URL"]
    missing_vars = [var for var in required_vars if not getattr(settings, var, None)]
    if missing_vars:
        raise ValueError(f"Missing configuration variables: {missing_vars}")

    if not settings.SHOPIFY_WEBHOOK_SECRET:
        logger.warning("⚠️ SHOPIFY_WEBHOOK_SECRET not set, webhook signatures will not be verified")

    logger.info("✅ Configuration verified")


async def startup_initialize_services():
    """Inicializa la base de datos de operaciones y el cliente de Shopify."""
    from bulk_editor.services.bulk_operations.factories import get_bulk_operations_service

    service = await get_bulk_operations_service()
    health = await service.conn_db.health_check()
    logger.info(f"✅ Operations database ready ({health['response_time_ms']}ms)")


async def startup_configure_scheduled_tasks():
    """Inicia la limpieza periódica si está habilitada."""
    settings = get_settings()
    if not settings.ENABLE_CLEANUP_SCHEDULE:
        logger.info("Cleanup schedule disabled")
        return

    from bulk_editor.core.scheduler import start_scheduler

    await start_scheduler()


# === FUNCIONES DE SHUTDOWN ===


async def shutdown_stop_scheduled_tasks():
    """Detiene el scheduler de limpieza."""
    from bulk_editor.core.scheduler import stop_scheduler

    await stop_scheduler()


async def shutdown_cleanup_services():
    """Cierra el cliente de Shopify y la base de datos."""
    from bulk_editor.db.connection import close_database
    from bulk_editor.services.bulk_operations.factories import close_bulk_operations_service

    await close_bulk_operations_service()
    await close_database()
    logger.info("✅ Services closed")
