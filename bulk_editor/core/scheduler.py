"""
Scheduler de la limpieza periódica de operaciones.

Ejecuta ``cleanup_operations`` cada CLEANUP_INTERVAL_MINUTES mientras
la aplicación está corriendo.
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any, Dict, Optional

from bulk_editor.core.config import get_settings

logger = logging.getLogger(__name__)

# Estado global del scheduler
_scheduler_running = False
_scheduler_task: Optional[asyncio.Task] = None
_last_run: Optional[datetime] = None
_last_summary: Optional[Dict[str, Any]] = None


async def start_scheduler():
    """
    Inicia el loop de limpieza.
    """
    global _scheduler_running, _scheduler_task

    if _scheduler_running:
        logger.warning("Scheduler is already running")
        return

    logger.info("🕒 Starting cleanup scheduler")
    _scheduler_running = True
    _scheduler_task = asyncio.create_task(_scheduler_loop())
    logger.info("✅ Cleanup scheduler started")


async def stop_scheduler():
    """
    Detiene el loop de limpieza y espera a que termine.
    """
    global _scheduler_running, _scheduler_task

    if not _scheduler_running:
        logger.info("Scheduler is not running")
        return

    logger.info("🛑 Stopping cleanup scheduler")
    _scheduler_running = False

    if _scheduler_task and not _scheduler_task.done():
        _scheduler_task.cancel()
        try:
            await _scheduler_task
        except asyncio.CancelledError:
            logger.debug("Cleanup scheduler task cancelled")

    _scheduler_task = None
    logger.info("✅ Cleanup scheduler stopped")


async def run_cleanup_once() -> Dict[str, Any]:
    """
    Ejecuta una pasada de limpieza con el servicio global.

    Returns:
        Dict: Resumen de la limpieza
    """
    global _last_run, _last_summary

    from bulk_editor.services.bulk_operations.factories import get_bulk_operations_service
    from bulk_editor.services.cleanup import cleanup_operations

    service = await get_bulk_operations_service()
    summary = await cleanup_operations(service.orchestrator, service.repository, service.settings)

    _last_run = datetime.now(UTC)
    _last_summary = summary
    return summary


async def _scheduler_loop():
    """
    Loop principal: limpieza y espera del intervalo configurado.
    """
    interval_seconds = get_settings().CLEANUP_INTERVAL_MINUTES * 60
    logger.info(f"🔄 Cleanup every {interval_seconds // 60} minutes")

    while _scheduler_running:
        try:
            await run_cleanup_once()
        except asyncio.CancelledError:
            logger.info("Cleanup loop cancelled")
            raise
        except Exception as e:
            # Una pasada fallida no detiene el loop
            logger.error(f"❌ Cleanup run failed: {e}")

        await asyncio.sleep(interval_seconds)


def get_scheduler_status() -> Dict[str, Any]:
    """
    Obtiene el estado actual del scheduler.

    Returns:
        Dict: Información del estado
    """
    settings = get_settings()
    return {
        "running": _scheduler_running,
        "task_active": _scheduler_task is not None and not _scheduler_task.done(),
        "enabled": settings.ENABLE_CLEANUP_SCHEDULE,
        "interval_minutes": settings.CLEANUP_INTERVAL_MINUTES,
        "last_run": _last_run.isoformat() if _last_run else None,
        "last_summary": _last_summary,
    }
