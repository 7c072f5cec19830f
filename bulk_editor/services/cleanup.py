"""
Limpieza periódica de operaciones.

Resuelve operaciones activas que quedaron colgadas en cualquier tienda
y elimina registros terminales más antiguos que la retención configurada.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Dict, Optional

from bulk_editor.core.config import Settings, get_settings
from bulk_editor.db.operation_repository import OperationRepository
from bulk_editor.services.bulk_operations.orchestrator import BulkOperationsOrchestrator

logger = logging.getLogger(__name__)


async def cleanup_operations(
    orchestrator: BulkOperationsOrchestrator,
    repository: OperationRepository,
    settings: Optional[Settings] = None,
    clock: Callable[[], datetime] = lambda: datetime.now(UTC),
) -> Dict[str, Any]:
    """
    Ejecuta una pasada de limpieza.

    Un fallo al reconciliar una tienda se registra y no detiene al resto.

    Args:
        orchestrator: Orquestador usado para reconciliar
        repository: Repositorio de operaciones
        settings: Configuración
        clock: Reloj inyectable

    Returns:
        Dict: Resumen con tiendas revisadas, operaciones resueltas y borradas
    """
    settings = settings or get_settings()
    now = clock()

    stale_cutoff = now - timedelta(minutes=settings.STALE_OPERATION_MINUTES)
    shops = await repository.find_shops_with_stuck(stale_cutoff)

    resolved = 0
    failed_shops = []
    for shop in shops:
        try:
            resolved += len(await orchestrator.reconcile_stuck(shop))
        except Exception as e:
            logger.error(f"❌ Error reconciling stale operations for {shop}: {e}")
            failed_shops.append(shop)

    retention_cutoff = now - timedelta(days=settings.OPERATION_RETENTION_DAYS)
    deleted = await repository.delete_terminal_older_than(retention_cutoff)

    summary = {
        "shops_checked": len(shops),
        "operations_resolved": resolved,
        "operations_deleted": deleted,
        "failed_shops": failed_shops,
        "timestamp": now.isoformat(),
    }
    logger.info(f"Cleanup finished: {resolved} resolved, {deleted} deleted across {len(shops)} shops")
    return summary
