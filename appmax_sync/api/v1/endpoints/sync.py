"""
Monitoreo de la cola de sincronización.

El estado de cada pedido se observa consultando la fila de la cola; no hay
notificaciones push.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from appmax_sync.api.v1.dependencies import get_dispatcher, get_queue_repository, get_rate_limiter
from appmax_sync.api.v1.schemas import SyncRequestList, SyncRequestResponse
from appmax_sync.db.repositories.queue_repository import SyncQueueRepository
from appmax_sync.services.queue_dispatcher import SyncQueueDispatcher
from appmax_sync.utils.rate_limiter import RateLimitedClient
from appmax_sync.utils.error_handler import NotFoundException

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/requests/{request_id}", response_model=SyncRequestResponse)
async def get_sync_request(
    request_id: int,
    include_payload: bool = Query(default=False),
    queue: SyncQueueRepository = Depends(get_queue_repository),
) -> SyncRequestResponse:
    """Estado, intentos y último error de una fila de la cola."""
    row = await queue.get(request_id)
    if row is None:
        raise NotFoundException(
            message=f"Sync request {request_id} not found",
            resource="sync_request",
            resource_id=request_id,
        )
    return SyncRequestResponse(**row.to_dict(include_payload=include_payload))


@router.get("/failed", response_model=SyncRequestList)
async def list_failed_requests(
    limit: int = Query(default=100, ge=1, le=1000),
    queue: SyncQueueRepository = Depends(get_queue_repository),
) -> SyncRequestList:
    """Filas abandonadas tras agotar los reintentos, para revisión manual."""
    rows = await queue.list_failed(limit=limit)
    return SyncRequestList(total=len(rows), requests=[SyncRequestResponse(**row.to_dict()) for row in rows])


@router.get("/status")
async def get_sync_status(
    queue: SyncQueueRepository = Depends(get_queue_repository),
    dispatcher: SyncQueueDispatcher = Depends(get_dispatcher),
    rate_limiter: RateLimitedClient = Depends(get_rate_limiter),
) -> Dict[str, Any]:
    """Estado del despachador, contadores de la cola y llamadas a Shopify."""
    return {
        "dispatcher": dispatcher.get_status(),
        "queue": await queue.count_by_status(),
        "shopify_calls": rate_limiter.get_metrics(),
    }
