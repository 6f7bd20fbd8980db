"""
Procesador de webhooks de Appmax.

Solo valida, clasifica y encola: la sincronización con Shopify ocurre en el
despachador de la cola, nunca en la request del webhook.
"""

import logging
from typing import Any, Dict, Optional

from appmax_sync.core.logging_config import log_webhook_received
from appmax_sync.db.repositories.queue_repository import SyncQueueRepository
from appmax_sync.services.orders.interfaces import IPayloadNormalizer
from appmax_sync.services.queue_dispatcher import SyncQueueDispatcher
from appmax_sync.services.status_mapper import EventAction, classify_event, creates_order
from appmax_sync.utils.error_handler import ValidationException

logger = logging.getLogger(__name__)


class WebhookProcessor:
    """
    Punto de entrada de los eventos de Appmax.
    """

    def __init__(
        self,
        queue: SyncQueueRepository,
        normalizer: IPayloadNormalizer,
        dispatcher: Optional[SyncQueueDispatcher] = None,
    ):
        self.queue = queue
        self.normalizer = normalizer
        self.dispatcher = dispatcher
        self.metrics = {"received": 0, "queued": 0, "ignored": 0, "unhandled": 0, "rejected": 0}

    async def process(self, event: Any, data: Any) -> Dict[str, Any]:
        """
        Valida y encola un evento.

        Args:
            event: Nombre del evento Appmax
            data: Objeto "data" del webhook

        Returns:
            Dict: {"status": "queued" | "ignored" | "unhandled", ...}

        Raises:
            ValidationException: Evento o datos ausentes, o payload inválido (HTTP 400)
        """
        self.metrics["received"] += 1

        if not event or not isinstance(event, str):
            self.metrics["rejected"] += 1
            raise ValidationException(
                message="Webhook without event", field="event", invalid_value=event, status_code=400
            )
        if not data or not isinstance(data, dict):
            self.metrics["rejected"] += 1
            raise ValidationException(
                message="Webhook without data", field="data", invalid_value=data, status_code=400
            )

        classification = classify_event(event)
        source_id = self.normalizer.peek_source_id(data)
        log_webhook_received(event, source_id, action=classification.action.value)

        if classification.action is EventAction.IGNORE:
            self.metrics["ignored"] += 1
            return {"status": "ignored", "event": event}

        if classification.action is EventAction.UNHANDLED:
            self.metrics["unhandled"] += 1
            logger.warning(f"Appmax event {event} has no mapped transition, not queued")
            return {"status": "unhandled", "event": event}

        try:
            order = self.normalizer.normalize(data)
        except ValidationException as e:
            self.metrics["rejected"] += 1
            e.status_code = 400
            raise

        transition = classification.transition
        if creates_order(transition.sync_state) and not order.items:
            self.metrics["rejected"] += 1
            raise ValidationException(
                message=f"Order {order.source_order_id} has no products",
                field="bundles",
                invalid_value=None,
                status_code=400,
            )

        request_id = await self.queue.enqueue(
            source_order_id=order.source_order_id,
            event_type=event,
            sync_state=transition.sync_state,
            financial_state=transition.financial_state,
            payload=data,
        )
        self.metrics["queued"] += 1

        if self.dispatcher is not None:
            self.dispatcher.notify()

        return {
            "status": "queued",
            "event": event,
            "request_id": request_id,
            "source_order_id": order.source_order_id,
            "sync_state": transition.sync_state.value,
            "financial_state": transition.financial_state.value,
        }

    def get_metrics(self) -> Dict[str, int]:
        return dict(self.metrics)
