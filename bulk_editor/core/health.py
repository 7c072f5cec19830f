"""
Health checks de la aplicación.

Verifica la base de datos de operaciones y el estado del cliente de
Shopify (sesión y presupuesto de rate limit).
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable, Dict

from bulk_editor.db.connection import get_db_connection

logger = logging.getLogger(__name__)

_app_start_time = datetime.now(UTC)


async def check_database() -> Dict[str, Any]:
    """Estado de la base de datos de operaciones."""
    info = await get_db_connection().health_check()
    return {"status": "healthy" if info["test_passed"] else "unhealthy", **info}


async def check_shopify() -> Dict[str, Any]:
    """Estado del cliente de Shopify, sin llamadas remotas."""
    from bulk_editor.services.bulk_operations.factories import get_current_service

    service = get_current_service()
    if service is None or not service.is_initialized:
        return {"status": "unhealthy", "error": "Shopify client not initialized"}

    return {
        "status": "healthy",
        "rate_limit": service.client.get_rate_limit_status(),
        "transport": service.client.transport.get_metrics(),
    }


async def run_health_check_with_timeout(
    name: str, check: Callable[[], Awaitable[Dict[str, Any]]], timeout: float = 3.0
) -> Dict[str, Any]:
    try:
        return await asyncio.wait_for(check(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Health check {name} timed out after {timeout}s")
        return {"status": "unhealthy", "error": f"timeout after {timeout}s"}
    except Exception as e:
        logger.error(f"Health check {name} failed: {e}")
        return {"status": "unhealthy", "error": str(e)}


async def get_health_status() -> Dict[str, Any]:
    """
    Ejecuta todos los health checks.

    Returns:
        Dict: Estado general, estado por servicio y uptime
    """
    checks = {"database": check_database, "shopify": check_shopify}
    results = await asyncio.gather(*(run_health_check_with_timeout(name, check) for name, check in checks.items()))
    services = dict(zip(checks, results))

    return {
        "overall": all(result.get("status") == "healthy" for result in services.values()),
        "services": services,
        "uptime": str(datetime.now(UTC) - _app_start_time),
    }
