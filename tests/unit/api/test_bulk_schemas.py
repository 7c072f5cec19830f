"""Tests para los modelos de respuesta de la API bulk."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from bulk_editor.api.v1.schemas.bulk_schemas import BulkEditRequest, OperationResponse
from bulk_editor.domain.models import (
    Operation,
    OperationStatus,
    OperationType,
    PriceAdjustment,
    PriceDirection,
)
from bulk_editor.domain.models.payloads import PricePayload


def _operation(**overrides) -> Operation:
    adjustment = PriceAdjustment(direction=PriceDirection.INCREASE, percentage=Decimal("10"))
    values = {
        "id": "op-1",
        "shop": "test-shop.myshopify.com",
        "type": OperationType.PRICE_ADJUSTMENT,
        "payload": PricePayload(adjustment=adjustment),
        "inverse_payload": PricePayload(adjustment=adjustment),
        "status": OperationStatus.COMPLETED,
        "result_url": "https://storage.example.com/result.jsonl",
        "completed_at": datetime.now(UTC),
    }
    values.update(overrides)
    return Operation(**values)


class TestOperationResponse:
    """Tests para OperationResponse.from_operation."""

    def test_recent_result_url_is_exposed(self):
        """Debe exponer el archivo de resultados mientras siga disponible."""
        response = OperationResponse.from_operation(_operation(), result_retention_days=7)
        assert response.result_url == "https://storage.example.com/result.jsonl"

    def test_expired_result_url_is_hidden(self):
        """Debe ocultar el archivo de resultados pasada la retención."""
        old = _operation(completed_at=datetime.now(UTC) - timedelta(days=8))
        assert OperationResponse.from_operation(old, result_retention_days=7).result_url is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"status": OperationStatus.RUNNING},
            {"undone": True},
            {"inverse_payload": None},
        ],
    )
    def test_can_undo_requires_completed_not_undone_with_inverse(self, overrides):
        """Debe permitir undo solo en operaciones completadas, no deshechas y con inverso."""
        assert OperationResponse.from_operation(_operation(), result_retention_days=7).can_undo is True
        assert OperationResponse.from_operation(_operation(**overrides), result_retention_days=7).can_undo is False


class TestBulkEditRequest:
    """Tests para el parseo de record_ids."""

    def test_comma_separated_ids(self):
        """Debe aceptar IDs separados por comas."""
        request = BulkEditRequest(
            transformation={"kind": "TAG_UPDATE", "action": "add", "tags": ["sale"]},
            record_ids="gid://shopify/Product/1, gid://shopify/Product/2,",
        )
        assert request.record_ids == ["gid://shopify/Product/1", "gid://shopify/Product/2"]
