"""Tests del repositorio de operaciones sobre SQLite en memoria."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from bulk_editor.domain.models import (
    BulkOperationResults,
    Operation,
    OperationStatus,
    OperationType,
    PreviewItem,
    PreviewResult,
    TagAction,
    TagUpdate,
    build_payloads,
)
from bulk_editor.utils.error_handler import ConflictException, OperationNotFoundException

OTHER_SHOP = "other-shop.myshopify.com"


def _operation(shop: str) -> Operation:
    preview = PreviewResult(
        spec=TagUpdate(action=TagAction.ADD, tags=["new"]),
        items=[PreviewItem(record_id="gid://shopify/Product/1", tags_before=["a"], tags_after=["a", "new"])],
    )
    forward, inverse = build_payloads(preview)
    return Operation(shop=shop, type=OperationType.TAG_UPDATE, payload=forward, inverse_payload=inverse)


class TestAdmissionControl:
    """Tests para create_if_no_active."""

    @pytest.mark.asyncio
    async def test_create_persists_payloads(self, repository, shop):
        """Debe guardar la operación en CREATED con ambos payloads."""
        created = await repository.create_if_no_active(_operation(shop))
        stored = await repository.get(created.id)

        assert stored.status is OperationStatus.CREATED
        assert stored.payload == created.payload
        assert stored.inverse_payload.update.action is TagAction.REPLACE
        assert stored.undone is False
        assert stored.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_second_active_operation_conflicts(self, repository, shop):
        """Debe rechazar una segunda operación mientras la primera está RUNNING."""
        first = await repository.create_if_no_active(_operation(shop))
        await repository.update(first.id, status=OperationStatus.RUNNING, bulk_operation_id="gid://shopify/BulkOperation/1")

        with pytest.raises(ConflictException) as exc_info:
            await repository.create_if_no_active(_operation(shop))

        assert exc_info.value.active_operation_id == first.id
        operations, total = await repository.list_by_shop(shop)
        assert total == 1

    @pytest.mark.asyncio
    async def test_concurrent_creates_admit_exactly_one(self, repository, shop):
        """Debe admitir una sola de dos creaciones simultáneas para la misma tienda."""
        outcomes = await asyncio.gather(
            repository.create_if_no_active(_operation(shop)),
            repository.create_if_no_active(_operation(shop)),
            return_exceptions=True,
        )

        created = [outcome for outcome in outcomes if isinstance(outcome, Operation)]
        conflicts = [outcome for outcome in outcomes if isinstance(outcome, ConflictException)]
        assert len(created) == 1
        assert len(conflicts) == 1
        assert conflicts[0].active_operation_id == created[0].id
        _, total = await repository.list_by_shop(shop)
        assert total == 1

    @pytest.mark.asyncio
    async def test_other_shops_are_independent(self, repository, shop):
        """Debe permitir operaciones activas en tiendas distintas."""
        await repository.create_if_no_active(_operation(shop))
        other = await repository.create_if_no_active(_operation(OTHER_SHOP))
        assert other.status is OperationStatus.CREATED

    @pytest.mark.asyncio
    async def test_terminal_operation_frees_the_slot(self, repository, shop):
        """Debe aceptar una nueva operación cuando la anterior terminó."""
        first = await repository.create_if_no_active(_operation(shop))
        await repository.update_if_active(first.id, status=OperationStatus.FAILED, error_message="boom")

        second = await repository.create_if_no_active(_operation(shop))
        assert (await repository.find_active_for_shop(shop)).id == second.id


class TestUpdates:
    """Tests para update y update_if_active."""

    @pytest.mark.asyncio
    async def test_update_if_active_writes_once(self, repository, shop):
        """Debe aplicar solo la primera transición terminal."""
        operation = await repository.create_if_no_active(_operation(shop))
        results = BulkOperationResults(successful=1, failed=0)

        stored, written = await repository.update_if_active(
            operation.id, status=OperationStatus.COMPLETED, results=results, completed_at=datetime.now(UTC)
        )
        again, written_again = await repository.update_if_active(
            operation.id, status=OperationStatus.FAILED, error_message="late"
        )

        assert written is True
        assert written_again is False
        assert again.status is OperationStatus.COMPLETED
        assert again.error_message is None
        assert again.results == results
        assert stored.completed_at is not None

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_columns(self, repository, shop):
        """Debe rechazar columnas que no se pueden modificar."""
        operation = await repository.create_if_no_active(_operation(shop))
        with pytest.raises(ValueError):
            await repository.update(operation.id, payload="{}")

    @pytest.mark.asyncio
    async def test_update_missing_operation_raises(self, repository):
        """Debe lanzar OperationNotFoundException para IDs inexistentes."""
        with pytest.raises(OperationNotFoundException):
            await repository.update("missing", status=OperationStatus.FAILED)

    @pytest.mark.asyncio
    async def test_find_by_bulk_operation_id(self, repository, shop):
        """Debe encontrar la operación por el ID del job remoto."""
        operation = await repository.create_if_no_active(_operation(shop))
        await repository.update(operation.id, bulk_operation_id="gid://shopify/BulkOperation/9")

        found = await repository.find_by_bulk_operation_id("gid://shopify/BulkOperation/9")
        assert found.id == operation.id
        assert await repository.find_by_bulk_operation_id("gid://shopify/BulkOperation/404") is None


class TestQueries:
    """Tests para listados, estadísticas y limpieza."""

    async def _finished(self, repository, shop, status):
        operation = await repository.create_if_no_active(_operation(shop))
        stored, _ = await repository.update_if_active(operation.id, status=status)
        return stored

    @pytest.mark.asyncio
    async def test_list_and_stats(self, repository, shop):
        """Debe listar por tienda con filtros y calcular estadísticas."""
        await self._finished(repository, shop, OperationStatus.COMPLETED)
        await self._finished(repository, shop, OperationStatus.FAILED)
        running = await repository.create_if_no_active(_operation(shop))
        await repository.update(running.id, status=OperationStatus.RUNNING)
        await self._finished(repository, OTHER_SHOP, OperationStatus.COMPLETED)

        operations, total = await repository.list_by_shop(shop, limit=2)
        assert total == 3
        assert len(operations) == 2
        assert operations[0].id == running.id

        failed, failed_total = await repository.list_by_shop(shop, status=OperationStatus.FAILED)
        assert failed_total == 1
        assert failed[0].status is OperationStatus.FAILED

        assert await repository.stats(shop) == {"total": 3, "completed": 1, "failed": 1, "running": 1}

    @pytest.mark.asyncio
    async def test_find_stuck_uses_created_at(self, repository, shop):
        """Debe devolver operaciones activas creadas antes del corte."""
        operation = await repository.create_if_no_active(_operation(shop))

        assert await repository.find_stuck(shop, datetime.now(UTC) - timedelta(hours=1)) == []
        stuck = await repository.find_stuck(shop, datetime.now(UTC) + timedelta(hours=1))
        assert [op.id for op in stuck] == [operation.id]
        assert await repository.find_shops_with_stuck(datetime.now(UTC) + timedelta(hours=1)) == [shop]

    @pytest.mark.asyncio
    async def test_delete_only_removes_terminal_operations(self, repository, shop):
        """Debe borrar operaciones terminales antiguas y conservar las activas."""
        finished = await self._finished(repository, shop, OperationStatus.COMPLETED)
        active = await repository.create_if_no_active(_operation(shop))

        deleted = await repository.delete_terminal_older_than(datetime.now(UTC) + timedelta(days=1))

        assert deleted == 1
        assert await repository.find_by_id(finished.id) is None
        assert (await repository.find_by_id(active.id)).status is OperationStatus.CREATED
