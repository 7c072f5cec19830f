"""
Endpoints para webhooks de Shopify.

Recibe ``bulk_operations/finish`` y reconcilia la operación en
background. Siempre responde 200 para que Shopify no reintente.
"""

import json
import logging
from datetime import UTC, datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from bulk_editor.api.v1.dependencies import get_reconciler
from bulk_editor.api.v1.schemas.bulk_schemas import BulkOperationFinishWebhook
from bulk_editor.services.bulk_operations.reconciler import BULK_OPERATIONS_FINISH_TOPIC, BulkOperationReconciler

logger = logging.getLogger(__name__)

router = APIRouter()


async def process_finish_webhook_background(
    reconciler: BulkOperationReconciler, payload: Dict[str, Any], webhook_id: Optional[str]
):
    """
    Reconcilia la operación del webhook fuera del ciclo de la request.
    """
    try:
        operation = await reconciler.handle_finish_webhook(payload)
        if operation is not None:
            logger.info(f"Webhook {webhook_id} applied: operation {operation.id} is {operation.status.value}")
    except Exception as e:
        logger.error(f"❌ Error processing bulk operation webhook {webhook_id}: {e}")


def _ack(**content: Any) -> JSONResponse:
    return JSONResponse(
        status_code=200,
        content={"received": True, **content, "timestamp": datetime.now(UTC).isoformat()},
    )


@router.post("/bulk_operations/finish", status_code=status.HTTP_200_OK)
async def bulk_operation_finish_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    reconciler: BulkOperationReconciler = Depends(get_reconciler),
) -> JSONResponse:
    """
    Webhook de fin de job bulk.

    Args:
        request: Request con el webhook
        background_tasks: Tareas en background

    Returns:
        JSONResponse: Respuesta inmediata para Shopify
    """
    webhook_id = request.headers.get("X-Shopify-Webhook-Id")
    topic = request.headers.get("X-Shopify-Topic", BULK_OPERATIONS_FINISH_TOPIC)

    try:
        body = await request.body()

        if not reconciler.verify_webhook_signature(body, request.headers.get("X-Shopify-Hmac-Sha256")):
            logger.warning(f"Invalid webhook signature for {topic} ({webhook_id})")
            return _ack(processing="rejected", reason="invalid_signature")

        if reconciler.is_duplicate(webhook_id):
            logger.info(f"Webhook {webhook_id} already processed, skipping")
            return _ack(processing="skipped", reason="duplicate")

        payload = BulkOperationFinishWebhook.model_validate(json.loads(body))

        background_tasks.add_task(
            process_finish_webhook_background, reconciler, payload.model_dump(), webhook_id
        )
        return _ack(topic=topic, webhook_id=webhook_id, processing="background")

    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Invalid bulk operation webhook payload: {e}")
        return _ack(processing="failed", error="invalid_payload")
    except Exception as e:
        logger.error(f"Error receiving webhook: {e}")
        # Shopify espera 200 incluso en errores para evitar reintentos
        return _ack(processing="failed", error=str(e))
