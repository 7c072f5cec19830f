"""
BulkOperationsOrchestrator - ciclo de vida de los jobs bulk.

Coordina el flujo completo de una edición masiva:
1. Validación y preview (solo lectura)
2. Control de admisión (una operación activa por tienda)
3. Archivo JSONL, staged upload y envío del job
4. Polling y reconciliación de estados terminales
5. Parseo de resultados
6. Undo reenviando el payload inverso como una operación nueva

Todo lo que ocurre antes de obtener el id del job remoto se reporta
al llamador; lo que ocurre después se reconcilia como estado terminal
de la operación y nunca se propaga a una request en curso.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from bulk_editor.core.config import Settings, get_settings
from bulk_editor.db.operation_repository import CONFLICT_MESSAGE
from bulk_editor.domain.models import (
    BulkOperationResults,
    Operation,
    OperationStatus,
    OperationType,
    PollResult,
    PreviewResult,
    PriceAdjustment,
    RemoteJobStatus,
    ResultError,
    TagUpdate,
    build_payloads,
    payload_to_preview,
)
from bulk_editor.services.bulk_operations import events as ev
from bulk_editor.services.bulk_operations.events import OperationEventRecorder
from bulk_editor.services.bulk_operations.interfaces import ICatalogClient, IOperationRepository
from bulk_editor.services.bulk_operations.job_file import build_job_file, mutation_for
from bulk_editor.services.bulk_operations.preview_builder import PreviewBuilder
from bulk_editor.services.bulk_operations.result_parser import parse_result_lines
from bulk_editor.utils.error_handler import (
    ConflictException,
    OperationNotFoundException,
    RemoteValidationException,
    ShopifyAPIException,
    UndoIneligibleException,
    ValidationException,
)

logger = logging.getLogger(__name__)

NOT_FOUND_CODE = "NOT_FOUND"
POLL_ERROR_CODE = "POLL_ERROR"

MISSING_JOB_ID_MESSAGE = "Shopify did not return a bulk operation id."
EXPIRED_MESSAGE = (
    "Bulk operation expired or not found in Shopify. This can happen with old operations (>7 days)."
)
RESULTS_ERROR_MESSAGE = "Failed to process operation results"
EMPTY_PREVIEW_MESSAGE = "Cannot start bulk operation without products."


def _utcnow() -> datetime:
    return datetime.now(UTC)


class BulkOperationsOrchestrator:
    """
    Orquesta el ciclo de vida de las operaciones bulk.

    Las dependencias se inyectan por constructor: el repositorio de
    operaciones, el cliente de Shopify, el constructor de previews y el
    registro de eventos.
    """

    def __init__(
        self,
        repository: IOperationRepository,
        client: ICatalogClient,
        preview_builder: Optional[PreviewBuilder] = None,
        events: Optional[OperationEventRecorder] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Inicializa el orquestador.

        Args:
            repository: Repositorio de operaciones (único escritor: este servicio)
            client: Cliente del catálogo remoto
            preview_builder: Constructor de previews
            events: Registro de eventos de transición
            settings: Configuración
            clock: Reloj inyectable para tests
        """
        self.settings = settings or get_settings()
        self.repository = repository
        self.client = client
        self.preview_builder = preview_builder or PreviewBuilder(client, self.settings)
        self.events = events or OperationEventRecorder()
        self.clock = clock

    # === PREVIEW Y CATÁLOGO ===

    async def build_preview(
        self, shop: str, spec: PriceAdjustment | TagUpdate, record_ids: Optional[List[str]]
    ) -> PreviewResult:
        """
        Calcula el preview de una transformación sin modificar nada.

        Raises:
            ValidationException: Si la solicitud es inválida
        """
        logger.debug(f"Building {spec.kind} preview for {shop}")
        return await self.preview_builder.build(spec, record_ids)

    async def list_products(
        self,
        status: Optional[str] = None,
        tags: Optional[List[str]] = None,
        cursor: Optional[str] = None,
        direction: str = "forward",
        page_size: int = 25,
    ) -> Dict[str, Any]:
        """Lista una página del catálogo para la capa de presentación."""
        return await self.client.list_products(status, tags, cursor, direction, page_size)

    # === INICIO DE JOBS ===

    async def start_job(
        self, shop: str, spec: PriceAdjustment | TagUpdate, record_ids: Optional[List[str]]
    ) -> Operation:
        """
        Inicia una operación bulk para los productos seleccionados.

        Args:
            shop: Tienda
            spec: Transformación a aplicar
            record_ids: IDs de productos

        Returns:
            Operation: Operación en RUNNING con el id del job remoto

        Raises:
            ValidationException: Solicitud inválida (nada persistido)
            ConflictException: Ya hay una operación activa para la tienda
            RemoteValidationException: Shopify rechazó el job (operación en FAILED)
            ShopifyAPIException: Falla de transporte al enviar (operación en FAILED)
        """
        self.preview_builder.validate(spec, record_ids)

        await self.reconcile_stuck(shop)

        active = await self.repository.find_active_for_shop(shop)
        if active is not None:
            raise ConflictException(CONFLICT_MESSAGE, shop=shop, active_operation_id=active.id)

        preview = await self.preview_builder.build(spec, record_ids)
        return await self.start_job_from_preview(shop, preview)

    async def start_job_from_preview(self, shop: str, preview: PreviewResult) -> Operation:
        """
        Envía un job a partir de un preview ya calculado.

        Es el camino común de ``start_job`` y ``undo``.
        """
        if preview.is_empty:
            raise ValidationException(EMPTY_PREVIEW_MESSAGE, field="record_ids")

        forward, inverse = build_payloads(preview)

        remote = await self.check_remote_active()
        if remote is not None:
            logger.warning(f"Shopify reports bulk operation {remote.id} still {remote.status.value} for {shop}")
            raise ConflictException(CONFLICT_MESSAGE, shop=shop, active_operation_id=remote.id)

        operation = await self.repository.create_if_no_active(
            Operation(
                shop=shop,
                type=OperationType(forward.kind),
                payload=forward,
                inverse_payload=inverse,
            )
        )
        self.events.record(ev.OPERATION_CREATED, operation, record_count=operation.record_count)

        try:
            content = build_job_file(preview)
            target = await self.client.create_staged_upload()
            staged_path = await self.client.upload_staged_file(target, content)

            response = await self.client.run_bulk_mutation(mutation_for(preview.spec), staged_path)

            user_errors = response.get("user_errors") or []
            if user_errors:
                raise RemoteValidationException(user_errors)

            bulk_operation_id = (response.get("bulk_operation") or {}).get("id")
            if not bulk_operation_id:
                raise ShopifyAPIException(MISSING_JOB_ID_MESSAGE, is_retryable=False)

            operation = await self.repository.update(
                operation.id,
                status=OperationStatus.RUNNING,
                bulk_operation_id=bulk_operation_id,
            )

        except Exception as e:
            await self._mark_start_failed(operation, str(e) or type(e).__name__)
            raise

        self.events.record(ev.OPERATION_RUNNING, operation, bulk_operation_id=operation.bulk_operation_id)
        logger.info(f"✅ Operation {operation.id} running as {operation.bulk_operation_id}")
        return operation

    async def _mark_start_failed(self, operation: Operation, message: str) -> None:
        try:
            failed, _ = await self.repository.update_if_active(
                operation.id,
                status=OperationStatus.FAILED,
                error_message=message,
                completed_at=self.clock(),
            )
        except Exception as update_error:
            logger.error(f"❌ Could not mark operation {operation.id} as FAILED: {update_error}")
            return

        self.events.record(ev.OPERATION_START_FAILED, failed, error_message=message)
        logger.error(f"❌ Operation {operation.id} failed to start: {message}")

    async def check_remote_active(self) -> Optional[PollResult]:
        """
        Consulta si Shopify tiene un job de mutation en curso.

        Returns:
            PollResult del job activo, o None
        """
        node = await self.client.get_current_bulk_operation()
        if not node or node.get("status") not in (RemoteJobStatus.CREATED.value, RemoteJobStatus.RUNNING.value):
            return None
        return PollResult.from_node(node)

    # === POLLING Y RECONCILIACIÓN ===

    async def poll_status(self, bulk_operation_id: str) -> PollResult:
        """
        Lee el estado del job remoto. Nunca lanza excepciones.

        Un job desconocido se sintetiza como EXPIRED (NOT_FOUND) y una
        falla de transporte como FAILED (POLL_ERROR).
        """
        try:
            node = await self.client.get_bulk_operation(bulk_operation_id)
        except Exception as e:
            logger.error(f"Error polling bulk operation {bulk_operation_id}: {e}")
            return PollResult.synthesized(bulk_operation_id, RemoteJobStatus.FAILED, POLL_ERROR_CODE)

        if node is None:
            logger.warning(f"Bulk operation {bulk_operation_id} not found in Shopify")
            return PollResult.synthesized(bulk_operation_id, RemoteJobStatus.EXPIRED, NOT_FOUND_CODE)

        try:
            return PollResult.from_node(node)
        except (KeyError, ValueError) as e:
            logger.error(f"Unexpected bulk operation payload for {bulk_operation_id}: {e}")
            return PollResult.synthesized(bulk_operation_id, RemoteJobStatus.FAILED, POLL_ERROR_CODE)

    async def complete_job(self, operation_id: str, poll_result: PollResult) -> Operation:
        """
        Aplica un resultado de polling a la operación.

        Idempotente: si la operación ya es terminal se devuelve sin cambios,
        y un resultado no terminal deja la fila intacta.

        Raises:
            OperationNotFoundException: Si la operación no existe
        """
        updated, _ = await self._apply_poll_result(operation_id, poll_result)
        return updated

    async def _apply_poll_result(self, operation_id: str, poll_result: PollResult) -> Tuple[Operation, bool]:
        """Igual que complete_job, indicando además si esta llamada escribió el estado terminal."""
        operation = await self.repository.get(operation_id)

        if operation.is_terminal:
            logger.debug(f"Operation {operation_id} already {operation.status.value}, skipping")
            return operation, False

        if not poll_result.status.is_terminal and poll_result.error_code is None:
            logger.debug(f"Operation {operation_id} still {poll_result.status.value} in Shopify")
            return operation, False

        record_ids = [record.record_id for record in operation.payload.records]
        status, error_message, results = await self._resolve_terminal_state(poll_result, record_ids)

        updated, written = await self.repository.update_if_active(
            operation_id,
            status=status,
            error_message=error_message,
            results=results,
            result_url=poll_result.url,
            completed_at=poll_result.completed_at or self.clock(),
        )

        if written:
            self.events.record(
                ev.OPERATION_FINISHED,
                updated,
                bulk_operation_id=poll_result.id,
                remote_status=poll_result.status.value,
                error_code=poll_result.error_code,
            )
            logger.info(f"Operation {operation_id} updated with status: {updated.status.value}")

        return updated, written

    async def _resolve_terminal_state(
        self, poll_result: PollResult, record_ids: Optional[List[str]] = None
    ) -> Tuple[OperationStatus, Optional[str], Optional[BulkOperationResults]]:
        remote_status = poll_result.status
        error_message: Optional[str] = None
        results: Optional[BulkOperationResults] = None

        if remote_status is RemoteJobStatus.EXPIRED or poll_result.error_code == NOT_FOUND_CODE:
            return OperationStatus.EXPIRED, EXPIRED_MESSAGE, None

        if remote_status is RemoteJobStatus.COMPLETED:
            status = OperationStatus.COMPLETED
            if poll_result.url:
                try:
                    text = await self.client.download_result_file(poll_result.url)
                    results = parse_result_lines(text, record_ids)
                    error_message = results.failure_summary()
                except Exception as e:
                    logger.error(f"Failed to process bulk operation results: {e}")
                    results = BulkOperationResults(errors=[ResultError(message=RESULTS_ERROR_MESSAGE)])
                    error_message = RESULTS_ERROR_MESSAGE
            else:
                results = BulkOperationResults()
        else:
            status = OperationStatus.FAILED
            error_message = f"Bulk operation {remote_status.value.lower()}"

        if poll_result.error_code:
            status = OperationStatus.FAILED
            error_message = poll_result.error_code

        return status, error_message, results

    async def reconcile_operation(self, operation_id: str, shop: Optional[str] = None) -> Operation:
        """
        Hace polling de una operación y aplica el resultado.

        Raises:
            OperationNotFoundException: Si no existe o pertenece a otra tienda
        """
        operation = await self.repository.get(operation_id)
        if shop is not None and operation.shop != shop:
            raise OperationNotFoundException(operation_id)

        if operation.is_terminal or not operation.bulk_operation_id:
            return operation

        poll_result = await self.poll_status(operation.bulk_operation_id)
        return await self.complete_job(operation.id, poll_result)

    async def reconcile_stuck(self, shop: str) -> List[Operation]:
        """
        Resuelve operaciones activas más antiguas que la ventana de staleness.

        Con id remoto se hace polling y se completa (EXPIRED si Shopify ya no
        la conoce); sin id remoto se marcan FAILED directamente.

        Returns:
            List[Operation]: Operaciones que pasaron a estado terminal
        """
        stale_minutes = self.settings.STALE_OPERATION_MINUTES
        cutoff = self.clock() - timedelta(minutes=stale_minutes)
        stuck = await self.repository.find_stuck(shop, cutoff)
        resolved: List[Operation] = []

        for operation in stuck:
            if operation.bulk_operation_id:
                poll_result = await self.poll_status(operation.bulk_operation_id)
                if not poll_result.status.is_terminal and poll_result.error_code is None:
                    logger.info(f"Stale operation {operation.id} is still running in Shopify, leaving it")
                    continue
                updated, written = await self._apply_poll_result(operation.id, poll_result)
                if not written:
                    continue
            else:
                updated, written = await self.repository.update_if_active(
                    operation.id,
                    status=OperationStatus.FAILED,
                    error_message=f"Operation did not obtain a bulk operation id within {stale_minutes} minutes.",
                    completed_at=self.clock(),
                )
                if not written:
                    continue

            self.events.record(ev.OPERATION_SWEPT, updated)
            resolved.append(updated)

        if resolved:
            logger.info(f"Reconciled {len(resolved)} stale operations for {shop}")
        return resolved

    # === UNDO ===

    async def undo(self, shop: str, operation_id: str) -> Operation:
        """
        Deshace una operación completada enviando su payload inverso.

        El preview se reconstruye desde el snapshot guardado, sin volver a
        leer el catálogo. La operación nueva también es deshacible.

        Returns:
            Operation: La operación nueva (RUNNING)

        Raises:
            OperationNotFoundException: Si no existe o es de otra tienda
            UndoIneligibleException: Si no está COMPLETED, ya fue deshecha o no tiene inverso
        """
        original = await self.repository.find_by_id(operation_id)
        if original is None or original.shop != shop:
            raise OperationNotFoundException(operation_id)

        if original.status is not OperationStatus.COMPLETED:
            raise UndoIneligibleException(
                "Can only undo completed operations.", operation_id=operation_id, reason="not_completed"
            )
        if original.undone:
            raise UndoIneligibleException(
                "Operation has already been undone.", operation_id=operation_id, reason="already_undone"
            )
        if original.inverse_payload is None:
            raise UndoIneligibleException(
                "Operation does not support undo.", operation_id=operation_id, reason="no_inverse_payload"
            )

        self.events.record(ev.UNDO_INITIATED, original)

        await self.reconcile_stuck(shop)
        preview = payload_to_preview(original.inverse_payload)
        new_operation = await self.start_job_from_preview(shop, preview)

        original = await self.repository.update(
            original.id,
            undone=True,
            undone_at=self.clock(),
            undone_by_operation_id=new_operation.id,
        )
        self.events.record(ev.UNDO_COMPLETED, original, undone_by_operation_id=new_operation.id)
        logger.info(f"Operation {original.id} undone by {new_operation.id}")
        return new_operation

    # === CONSULTAS ===

    async def get_operation(self, shop: str, operation_id: str) -> Operation:
        """
        Obtiene una operación de la tienda.

        Raises:
            OperationNotFoundException: Si no existe o es de otra tienda
        """
        operation = await self.repository.find_by_id(operation_id)
        if operation is None or operation.shop != shop:
            raise OperationNotFoundException(operation_id)
        return operation

    async def list_operations(
        self,
        shop: str,
        status: Optional[OperationStatus] = None,
        type: Optional[OperationType] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Operation], int]:
        """Lista operaciones de la tienda (más recientes primero) y el total."""
        return await self.repository.list_by_shop(shop, status=status, type=type, limit=limit, offset=offset)

    async def stats(self, shop: str) -> Dict[str, int]:
        """Conteos de operaciones: total, completed, failed, running."""
        return await self.repository.stats(shop)
