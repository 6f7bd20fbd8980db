"""
Modelos Pydantic para los webhooks de Appmax y las respuestas de la API.

El cuerpo del webhook se acepta con campos opcionales: la validación de
negocio (evento, datos, cliente) la hace el WebhookProcessor para poder
responder 400 con el formato de error de la aplicación.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AppmaxWebhook(BaseModel):
    """Envelope de un webhook de Appmax."""

    model_config = ConfigDict(extra="allow")

    event: Optional[str] = Field(default=None, description="Nombre del evento, ej: OrderPaid")
    data: Optional[Any] = Field(default=None, description="Pedido o cliente del evento")


class WebhookAck(BaseModel):
    """Respuesta inmediata al webhook."""

    status: str
    event: Optional[str] = None
    request_id: Optional[int] = None
    source_order_id: Optional[str] = None
    sync_state: Optional[str] = None
    financial_state: Optional[str] = None


class OrderMappingResponse(BaseModel):
    """Relación pedido Appmax -> pedido Shopify."""

    source_order_id: str
    sink_order_id: Optional[str] = None
    last_sync_state: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderMappingList(BaseModel):
    total: int
    start_date: datetime
    end_date: datetime
    orders: List[OrderMappingResponse]


class SyncRequestResponse(BaseModel):
    """Estado de una fila de la cola de sincronización."""

    id: int
    source_order_id: str
    event_type: str
    sync_state: str
    financial_state: str
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    attempts: int
    last_error: Optional[str] = None
    status: str = Field(description="pending, succeeded o failed")
    payload: Optional[Dict[str, Any]] = None


class SyncRequestList(BaseModel):
    total: int
    requests: List[SyncRequestResponse]
