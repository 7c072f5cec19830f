"""
Endpoints de operaciones bulk del catálogo.

Capa delgada sobre ``BulkOperationsOrchestrator``: valida el request,
resuelve la tienda y traduce los modelos de dominio a respuestas. Los
errores de la aplicación los convierten los exception handlers globales.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from bulk_editor.api.v1.dependencies import get_orchestrator, get_reconciler, get_shop
from bulk_editor.api.v1.schemas.bulk_schemas import (
    BulkEditRequest,
    OperationListResponse,
    OperationResponse,
    OperationStatsResponse,
    PreviewResponse,
    ProductListResponse,
    ReconcileResponse,
)
from bulk_editor.core.config import get_settings
from bulk_editor.domain.models import OperationStatus, OperationType
from bulk_editor.services.bulk_operations.orchestrator import BulkOperationsOrchestrator
from bulk_editor.services.bulk_operations.reconciler import BulkOperationReconciler

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/products", response_model=ProductListResponse)
async def list_products(
    product_status: Optional[str] = Query(None, alias="status", description="ACTIVE, DRAFT o ARCHIVED"),
    tags: Optional[List[str]] = Query(None, description="Filtrar por tags"),
    cursor: Optional[str] = Query(None, description="Cursor de paginación"),
    direction: str = Query("forward", pattern="^(forward|backward)$"),
    page_size: int = Query(25, ge=1, le=250),
    orchestrator: BulkOperationsOrchestrator = Depends(get_orchestrator),
) -> ProductListResponse:
    """
    Lista una página del catálogo para seleccionar productos.
    """
    page = await orchestrator.list_products(product_status, tags, cursor, direction, page_size)
    return ProductListResponse(**page)


@router.post("/preview", response_model=PreviewResponse)
async def preview_bulk_edit(
    request: BulkEditRequest,
    shop: str = Depends(get_shop),
    orchestrator: BulkOperationsOrchestrator = Depends(get_orchestrator),
) -> PreviewResponse:
    """
    Calcula los valores antes/después sin modificar nada.
    """
    preview = await orchestrator.build_preview(shop, request.transformation, request.record_ids)
    return PreviewResponse.from_preview(preview, get_settings().PREVIEW_VARIANTS_LIMIT)


@router.post("/operations", response_model=OperationResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_bulk_operation(
    request: BulkEditRequest,
    shop: str = Depends(get_shop),
    orchestrator: BulkOperationsOrchestrator = Depends(get_orchestrator),
) -> OperationResponse:
    """
    Inicia un job bulk con la transformación solicitada.

    Responde 409 si la tienda ya tiene una operación en curso.
    """
    operation = await orchestrator.start_job(shop, request.transformation, request.record_ids)
    logger.info(f"Bulk operation {operation.id} started for {shop}")
    return OperationResponse.from_operation(operation)


@router.get("/operations", response_model=OperationListResponse)
async def list_bulk_operations(
    operation_status: Optional[OperationStatus] = Query(None, alias="status"),
    operation_type: Optional[OperationType] = Query(None, alias="type"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    shop: str = Depends(get_shop),
    orchestrator: BulkOperationsOrchestrator = Depends(get_orchestrator),
) -> OperationListResponse:
    """
    Historial de operaciones de la tienda, más recientes primero.
    """
    operations, total = await orchestrator.list_operations(
        shop, status=operation_status, type=operation_type, limit=limit, offset=offset
    )
    return OperationListResponse(
        operations=[OperationResponse.from_operation(operation) for operation in operations],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/operations/stats", response_model=OperationStatsResponse)
async def bulk_operation_stats(
    shop: str = Depends(get_shop),
    orchestrator: BulkOperationsOrchestrator = Depends(get_orchestrator),
) -> OperationStatsResponse:
    """Conteos de operaciones de la tienda."""
    return OperationStatsResponse(**await orchestrator.stats(shop))


@router.post("/operations/reconcile", response_model=ReconcileResponse)
async def reconcile_stale_operations(
    shop: str = Depends(get_shop),
    orchestrator: BulkOperationsOrchestrator = Depends(get_orchestrator),
) -> ReconcileResponse:
    """
    Resuelve operaciones activas que superaron la ventana de staleness.
    """
    resolved = await orchestrator.reconcile_stuck(shop)
    return ReconcileResponse(
        resolved=[OperationResponse.from_operation(operation) for operation in resolved],
        count=len(resolved),
    )


@router.get("/operations/{operation_id}", response_model=OperationResponse)
async def get_bulk_operation(
    operation_id: str,
    shop: str = Depends(get_shop),
    orchestrator: BulkOperationsOrchestrator = Depends(get_orchestrator),
) -> OperationResponse:
    """Obtiene una operación de la tienda."""
    return OperationResponse.from_operation(await orchestrator.get_operation(shop, operation_id))


@router.post("/operations/{operation_id}/poll", response_model=OperationResponse)
async def poll_bulk_operation(
    operation_id: str,
    shop: str = Depends(get_shop),
    reconciler: BulkOperationReconciler = Depends(get_reconciler),
) -> OperationResponse:
    """
    Consulta el job remoto una vez y aplica el resultado si terminó.
    """
    operation = await reconciler.reconcile_operation(operation_id, shop=shop)
    return OperationResponse.from_operation(operation)


@router.post("/operations/{operation_id}/undo", response_model=OperationResponse, status_code=status.HTTP_202_ACCEPTED)
async def undo_bulk_operation(
    operation_id: str,
    shop: str = Depends(get_shop),
    orchestrator: BulkOperationsOrchestrator = Depends(get_orchestrator),
) -> OperationResponse:
    """
    Deshace una operación completada; devuelve la operación nueva.
    """
    new_operation = await orchestrator.undo(shop, operation_id)
    return OperationResponse.from_operation(new_operation)
