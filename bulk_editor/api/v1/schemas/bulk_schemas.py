"""
Modelos Pydantic de la API de operaciones bulk.

Este módulo define los requests y responses de los endpoints de
preview, inicio, polling, undo e historial de operaciones.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from bulk_editor.core.config import get_settings
from bulk_editor.domain.models import (
    BulkOperationResults,
    Operation,
    OperationStatus,
    OperationType,
    PreviewResult,
    TransformationSpec,
)

# Requests


class BulkEditRequest(BaseModel):
    """Transformación más los productos seleccionados."""

    transformation: TransformationSpec
    record_ids: List[str] = Field(default_factory=list, description="IDs GID de productos")

    @field_validator("record_ids", mode="before")
    @classmethod
    def parse_record_ids(cls, v):
        """Acepta una lista o un string separado por comas."""
        if v is None:
            return []
        if isinstance(v, str):
            return [record_id.strip() for record_id in v.split(",") if record_id.strip()]
        return v


class BulkOperationFinishWebhook(BaseModel):
    """Payload del webhook bulk_operations/finish."""

    admin_graphql_api_id: str
    completed_at: Optional[str] = None
    created_at: Optional[str] = None
    error_code: Optional[str] = None
    status: Optional[str] = None
    type: Optional[str] = None

    model_config = {"extra": "allow"}


# Responses


class PreviewVariantResponse(BaseModel):
    variant_id: str
    title: str
    before: Decimal
    after: Decimal


class PreviewItemResponse(BaseModel):
    record_id: str
    title: str
    status: str
    tags_before: List[str]
    tags_after: Optional[List[str]] = None
    variants: List[PreviewVariantResponse] = Field(default_factory=list)
    variants_truncated: bool = False


class PreviewResponse(BaseModel):
    """Preview listo para mostrar: valores antes/después por producto."""

    kind: str
    currency_code: str
    product_count: int
    variant_count: int
    items: List[PreviewItemResponse]

    @classmethod
    def from_preview(cls, preview: PreviewResult, variants_limit: int) -> "PreviewResponse":
        """Construye la respuesta limitando las variantes mostradas por producto."""
        items = [
            PreviewItemResponse(
                record_id=item.record_id,
                title=item.title,
                status=item.status,
                tags_before=item.tags_before,
                tags_after=item.tags_after,
                variants=[PreviewVariantResponse(**variant.model_dump()) for variant in item.variants[:variants_limit]],
                variants_truncated=len(item.variants) > variants_limit,
            )
            for item in preview.items
        ]
        return cls(
            kind=preview.spec.kind,
            currency_code=preview.currency_code,
            product_count=len(preview.items),
            variant_count=preview.variant_count,
            items=items,
        )


class OperationResponse(BaseModel):
    """Vista pública de una operación (sin payloads completos)."""

    id: str
    shop: str
    type: OperationType
    status: OperationStatus
    record_count: int
    bulk_operation_id: Optional[str] = None
    results: Optional[BulkOperationResults] = None
    error_message: Optional[str] = None
    # Solo mientras Shopify conserva el archivo
    result_url: Optional[str] = None
    undone: bool = False
    undone_at: Optional[datetime] = None
    undone_by_operation_id: Optional[str] = None
    can_undo: bool = False
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_operation(cls, operation: Operation, result_retention_days: Optional[int] = None) -> "OperationResponse":
        if result_retention_days is None:
            result_retention_days = get_settings().RESULT_RETENTION_DAYS
        result_url = operation.result_url
        if result_url and operation.completed_at:
            if datetime.now(UTC) - operation.completed_at > timedelta(days=result_retention_days):
                result_url = None

        return cls(
            id=operation.id,
            shop=operation.shop,
            type=operation.type,
            status=operation.status,
            record_count=operation.record_count,
            bulk_operation_id=operation.bulk_operation_id,
            results=operation.results,
            error_message=operation.error_message,
            result_url=result_url,
            undone=operation.undone,
            undone_at=operation.undone_at,
            undone_by_operation_id=operation.undone_by_operation_id,
            can_undo=(
                operation.status is OperationStatus.COMPLETED
                and not operation.undone
                and operation.inverse_payload is not None
            ),
            created_at=operation.created_at,
            updated_at=operation.updated_at,
            completed_at=operation.completed_at,
        )


class OperationListResponse(BaseModel):
    operations: List[OperationResponse]
    total: int
    limit: int
    offset: int


class OperationStatsResponse(BaseModel):
    total: int = 0
    completed: int = 0
    failed: int = 0
    running: int = 0


class ReconcileResponse(BaseModel):
    resolved: List[OperationResponse]
    count: int


class ProductListResponse(BaseModel):
    """Página del catálogo con cursores y tags disponibles."""

    products: List[Dict[str, Any]]
    page_info: Dict[str, Any]
    available_tags: List[str] = Field(default_factory=list)
    currency_code: str = ""
