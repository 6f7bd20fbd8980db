"""
Endpoint de webhooks de Appmax.

Responde de inmediato: el pedido se encola y el despachador lo sincroniza
con Shopify en segundo plano.
"""

import logging

from fastapi import APIRouter, Depends, status

from appmax_sync.api.v1.dependencies import get_webhook_processor
from appmax_sync.api.v1.schemas import AppmaxWebhook, WebhookAck
from appmax_sync.services.webhook_handler import WebhookProcessor

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/appmax", status_code=status.HTTP_200_OK, response_model=WebhookAck, response_model_exclude_none=True)
async def receive_appmax_webhook(
    webhook: AppmaxWebhook,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> WebhookAck:
    """
    Recibe un evento de Appmax.

    Args:
        webhook: Cuerpo {"event": ..., "data": {...}}

    Returns:
        WebhookAck: queued, ignored o unhandled

    Raises:
        ValidationException: Evento o datos inválidos (400)
    """
    result = await processor.process(webhook.event, webhook.data)
    return WebhookAck(**result)
