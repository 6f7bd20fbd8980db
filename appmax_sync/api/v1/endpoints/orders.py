"""
Consultas sobre la relación entre pedidos Appmax y pedidos Shopify.
"""

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from fastapi import APIRouter, Depends, Query

from appmax_sync.api.v1.dependencies import get_mapping_repository
from appmax_sync.api.v1.schemas import OrderMappingList, OrderMappingResponse
from appmax_sync.db.repositories.mapping_repository import MappingRepository
from appmax_sync.utils.error_handler import NotFoundException, ValidationException

logger = logging.getLogger(__name__)

router = APIRouter()


class Platform(str, Enum):
    APPMAX = "appmax"
    SHOPIFY = "shopify"


@router.get("/{platform}/{order_id}", response_model=OrderMappingResponse)
async def get_order_mapping(
    platform: Platform,
    order_id: str,
    mappings: MappingRepository = Depends(get_mapping_repository),
) -> OrderMappingResponse:
    """
    Busca la relación por ID de Appmax o por ID de Shopify.

    Raises:
        NotFoundException: El pedido nunca fue sincronizado
    """
    if platform is Platform.APPMAX:
        mapping = await mappings.get_mapping(order_id)
    else:
        mapping = await mappings.find_by_sink_id(order_id)

    if mapping is None:
        raise NotFoundException(
            message=f"No synchronized order for {platform.value} id {order_id}",
            resource="order_mapping",
            resource_id=order_id,
        )
    return OrderMappingResponse(**mapping.to_dict())


@router.get("", response_model=OrderMappingList)
async def list_order_mappings(
    start_date: Optional[datetime] = Query(default=None, description="Inicio (ISO 8601), por defecto hace 24h"),
    end_date: Optional[datetime] = Query(default=None, description="Fin (ISO 8601), por defecto ahora"),
    limit: int = Query(default=500, ge=1, le=5000),
    mappings: MappingRepository = Depends(get_mapping_repository),
) -> OrderMappingList:
    """Pedidos sincronizados (creados o actualizados) en un rango de fechas."""
    end = _as_utc(end_date) if end_date else datetime.now(timezone.utc)
    start = _as_utc(start_date) if start_date else end - timedelta(days=1)

    if start > end:
        raise ValidationException(
            message="start_date must be before end_date",
            field="start_date",
            invalid_value=start.isoformat(),
            status_code=400,
        )

    rows = await mappings.list_updated_between(start, end, limit=limit)
    return OrderMappingList(
        total=len(rows),
        start_date=start,
        end_date=end,
        orders=[OrderMappingResponse(**row.to_dict()) for row in rows],
    )


def _as_utc(value: datetime) -> datetime:
    # Naive query params are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
