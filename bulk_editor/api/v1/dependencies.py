"""
Dependencias compartidas de los endpoints v1.
"""

from typing import Optional

from fastapi import Header

from bulk_editor.core.config import get_settings
from bulk_editor.services.bulk_operations.factories import get_bulk_operations_service
from bulk_editor.services.bulk_operations.orchestrator import BulkOperationsOrchestrator
from bulk_editor.services.bulk_operations.reconciler import BulkOperationReconciler


def get_shop(x_shopify_shop_domain: Optional[str] = Header(default=None)) -> str:
    """Tienda de la request; usa la tienda configurada si no viene el header."""
    shop = (x_shopify_shop_domain or "").strip()
    return shop or get_settings().shop_domain


async def get_orchestrator() -> BulkOperationsOrchestrator:
    service = await get_bulk_operations_service()
    return service.orchestrator


async def get_reconciler() -> BulkOperationReconciler:
    service = await get_bulk_operations_service()
    return service.reconciler
