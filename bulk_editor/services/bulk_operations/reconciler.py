"""
Reconciliador de operaciones bulk a partir de webhooks de Shopify.

Procesa el webhook ``bulk_operations/finish``: verifica la firma HMAC,
descarta entregas duplicadas y aplica el estado final del job a la
operación correspondiente a través del orquestador.
"""

import base64
import binascii
import hashlib
import hmac
import logging
from collections import deque
from typing import Any, Deque, Dict, Optional

from bulk_editor.core.config import Settings, get_settings
from bulk_editor.domain.models import Operation
from bulk_editor.domain.models.operation import parse_timestamp
from bulk_editor.services.bulk_operations.orchestrator import BulkOperationsOrchestrator

logger = logging.getLogger(__name__)

BULK_OPERATIONS_FINISH_TOPIC = "bulk_operations/finish"


class BulkOperationReconciler:
    """
    Aplica notificaciones de fin de job a las operaciones persistidas.

    La reconciliación es idempotente: una operación ya terminal no se
    vuelve a escribir, así que un webhook y un polling simultáneos
    producen una sola transición.
    """

    def __init__(
        self,
        orchestrator: BulkOperationsOrchestrator,
        settings: Optional[Settings] = None,
        max_tracked_webhooks: int = 1000,
    ):
        self.orchestrator = orchestrator
        self.settings = settings or get_settings()
        self._processed_webhooks: Deque[str] = deque(maxlen=max_tracked_webhooks)

    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        """
        Verifica la firma HMAC-SHA256 (base64) del webhook.

        Args:
            payload: Cuerpo crudo del webhook
            signature: Valor del header X-Shopify-Hmac-Sha256

        Returns:
            bool: True si la firma es válida o no hay secret configurado
        """
        secret = self.settings.SHOPIFY_WEBHOOK_SECRET
        if not secret:
            logger.warning("No webhook secret configured, skipping verification")
            return True

        if not signature:
            return False

        expected = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest()
        try:
            received = base64.b64decode(signature, validate=True)
        except (binascii.Error, ValueError):
            logger.warning("Webhook signature is not valid base64")
            return False

        return hmac.compare_digest(expected, received)

    def is_duplicate(self, webhook_id: Optional[str]) -> bool:
        """Marca el webhook como procesado y dice si ya se había visto."""
        if not webhook_id:
            return False
        if webhook_id in self._processed_webhooks:
            return True
        self._processed_webhooks.append(webhook_id)
        return False

    async def handle_finish_webhook(self, payload: Dict[str, Any]) -> Optional[Operation]:
        """
        Procesa el payload de ``bulk_operations/finish``.

        Args:
            payload: JSON del webhook (``admin_graphql_api_id``, ``completed_at``)

        Returns:
            Operation actualizada, o None si el job no pertenece a este sistema
        """
        bulk_operation_id = payload.get("admin_graphql_api_id")
        if not bulk_operation_id:
            logger.warning("Bulk operation webhook without admin_graphql_api_id, ignoring")
            return None

        operation = await self.orchestrator.repository.find_by_bulk_operation_id(bulk_operation_id)
        if operation is None:
            logger.warning(f"No operation found for bulk operation {bulk_operation_id}")
            return None

        if operation.is_terminal:
            logger.info(f"Operation {operation.id} already {operation.status.value}, webhook ignored")
            return operation

        poll_result = await self.orchestrator.poll_status(bulk_operation_id)
        if poll_result.completed_at is None:
            poll_result.completed_at = parse_timestamp(payload.get("completed_at"))

        return await self.orchestrator.complete_job(operation.id, poll_result)

    async def reconcile_operation(self, operation_id: str, shop: Optional[str] = None) -> Operation:
        """Polling bajo demanda de una operación (endpoint de estado)."""
        return await self.orchestrator.reconcile_operation(operation_id, shop=shop)
