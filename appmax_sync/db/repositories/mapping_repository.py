"""
Mapping store: Appmax order id -> Shopify order id.

The mapping is the first place the orchestrator looks before any create call,
so at most one Shopify order is ever created per Appmax order.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select

from appmax_sync.db.models import OrderMapping, utcnow
from appmax_sync.db.repositories.base import BaseRepository, log_operation

logger = logging.getLogger(__name__)


class MappingRepository(BaseRepository):
    """Durable source id -> sink id association with the last applied state."""

    @log_operation()
    async def get(self, source_order_id: str) -> Optional[str]:
        """Return the Shopify order id for ``source_order_id``, or None."""
        mapping = await self.get_mapping(source_order_id)
        return mapping.sink_order_id if mapping else None

    @log_operation()
    async def get_mapping(self, source_order_id: str) -> Optional[OrderMapping]:
        async with self.conn_db.session() as session:
            result = await session.execute(
                select(OrderMapping).where(OrderMapping.source_order_id == str(source_order_id))
            )
            return result.scalar_one_or_none()

    @log_operation()
    async def find_by_sink_id(self, sink_order_id: str) -> Optional[OrderMapping]:
        async with self.conn_db.session() as session:
            result = await session.execute(
                select(OrderMapping).where(OrderMapping.sink_order_id == str(sink_order_id))
            )
            return result.scalars().first()

    @log_operation()
    async def put(
        self,
        source_order_id: str,
        sink_order_id: Optional[str],
        sync_state: Optional[str] = None,
    ) -> OrderMapping:
        """
        Upsert the mapping for ``source_order_id``.

        A None ``sink_order_id`` or ``sync_state`` never clears a value already stored.

        Args:
            source_order_id: Appmax order id
            sink_order_id: Shopify order id
            sync_state: Canonical state just applied

        Returns:
            OrderMapping: The stored row
        """
        source_order_id = str(source_order_id)
        sink_order_id = str(sink_order_id) if sink_order_id is not None else None

        async with self.conn_db.session() as session:
            result = await session.execute(
                select(OrderMapping).where(OrderMapping.source_order_id == source_order_id)
            )
            mapping = result.scalar_one_or_none()

            if mapping is None:
                mapping = OrderMapping(
                    source_order_id=source_order_id,
                    sink_order_id=sink_order_id,
                    last_sync_state=sync_state,
                )
                session.add(mapping)
                logger.info(f"Mapping created: Appmax #{source_order_id} -> Shopify {sink_order_id}")
            else:
                if sink_order_id is not None:
                    if mapping.sink_order_id and mapping.sink_order_id != sink_order_id:
                        logger.warning(
                            f"Mapping for Appmax #{source_order_id} changes Shopify id "
                            f"{mapping.sink_order_id} -> {sink_order_id}"
                        )
                    mapping.sink_order_id = sink_order_id
                if sync_state is not None:
                    mapping.last_sync_state = sync_state
                mapping.updated_at = utcnow()

            await session.flush()
            return mapping

    @log_operation()
    async def list_updated_between(self, start: datetime, end: datetime, limit: int = 500) -> List[OrderMapping]:
        async with self.conn_db.session() as session:
            result = await session.execute(
                select(OrderMapping)
                .where(OrderMapping.updated_at >= start, OrderMapping.updated_at <= end)
                .order_by(OrderMapping.updated_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
