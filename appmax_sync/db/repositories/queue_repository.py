"""
Retry queue store.

One row per enqueued synchronization. The row is both the retry state and the
audit trail: attempts are counted in place and rows are never deleted.

Row lifecycle:
    pending (processed_at IS NULL, attempts < ceiling)
      -> succeeded (processed_at set, last_error NULL)
      -> pending again with attempts + 1 and last_error set
      -> permanently failed (processed_at set, last_error set, attempts == ceiling)
"""

import copy
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func, select, update

from appmax_sync.core.config import get_settings
from appmax_sync.db.connection import ConnDB
from appmax_sync.db.models import SyncRequest, utcnow
from appmax_sync.db.repositories.base import BaseRepository, log_operation

settings = get_settings()
logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 2000


class SyncQueueRepository(BaseRepository):
    """Durable queue of pending synchronization requests."""

    def __init__(self, conn_db: ConnDB, max_attempts: Optional[int] = None):
        super().__init__(conn_db)
        self.max_attempts = max_attempts or settings.QUEUE_MAX_ATTEMPTS

    @log_operation()
    async def enqueue(
        self,
        source_order_id: str,
        event_type: str,
        sync_state: str,
        financial_state: str,
        payload: Dict[str, Any],
    ) -> int:
        """
        Store a new pending request with a private snapshot of ``payload``.

        Returns:
            int: Id of the new row
        """
        row = SyncRequest(
            source_order_id=str(source_order_id),
            event_type=event_type,
            sync_state=str(getattr(sync_state, "value", sync_state)),
            financial_state=str(getattr(financial_state, "value", financial_state)),
            payload=copy.deepcopy(payload),
            attempts=0,
        )

        async with self.conn_db.session() as session:
            session.add(row)
            await session.flush()
            request_id = row.id

        logger.info(f"Sync request #{request_id} queued: {event_type} for Appmax #{source_order_id}")
        return request_id

    @log_operation()
    async def fetch_pending(self, limit: Optional[int] = None) -> List[SyncRequest]:
        """Return unprocessed rows under the attempt ceiling, oldest first."""
        stmt = (
            select(SyncRequest)
            .where(SyncRequest.processed_at.is_(None), SyncRequest.attempts < self.max_attempts)
            .order_by(SyncRequest.created_at.asc(), SyncRequest.id.asc())
        )
        if limit:
            stmt = stmt.limit(limit)

        async with self.conn_db.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    @log_operation()
    async def mark_processed(self, request_id: int, error: Optional[str] = None, final: bool = False) -> None:
        """
        Record the outcome of one processing attempt in a single UPDATE.

        Success sets ``processed_at``. Failure increments ``attempts``, stores
        ``last_error`` and sets ``processed_at`` only when the ceiling is reached,
        or at once when ``final`` is set for errors that no retry can fix.
        """
        now = utcnow()
        values: Dict[str, Any] = {"attempts": SyncRequest.attempts + 1}

        if error is None:
            values["processed_at"] = now
            values["last_error"] = None
        else:
            values["last_error"] = error[:MAX_ERROR_LENGTH]
            values["processed_at"] = (
                now
                if final
                else case(
                    (SyncRequest.attempts + 1 >= self.max_attempts, now),
                    else_=SyncRequest.processed_at,
                )
            )

        async with self.conn_db.session() as session:
            await session.execute(update(SyncRequest).where(SyncRequest.id == request_id).values(**values))

    @log_operation()
    async def get(self, request_id: int) -> Optional[SyncRequest]:
        async with self.conn_db.session() as session:
            return await session.get(SyncRequest, request_id)

    @log_operation()
    async def list_by_order(self, source_order_id: str) -> List[SyncRequest]:
        async with self.conn_db.session() as session:
            result = await session.execute(
                select(SyncRequest)
                .where(SyncRequest.source_order_id == str(source_order_id))
                .order_by(SyncRequest.created_at.asc(), SyncRequest.id.asc())
            )
            return list(result.scalars().all())

    @log_operation()
    async def list_failed(self, limit: int = 100) -> List[SyncRequest]:
        """Rows abandoned after reaching the attempt ceiling, newest first."""
        async with self.conn_db.session() as session:
            result = await session.execute(
                select(SyncRequest)
                .where(SyncRequest.processed_at.is_not(None), SyncRequest.last_error.is_not(None))
                .order_by(SyncRequest.processed_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    @log_operation()
    async def count_by_status(self) -> Dict[str, int]:
        status = case(
            (SyncRequest.processed_at.is_(None), "pending"),
            (SyncRequest.last_error.is_(None), "succeeded"),
            else_="failed",
        )
        async with self.conn_db.session() as session:
            result = await session.execute(select(status, func.count()).group_by(status))
            counts = {"pending": 0, "succeeded": 0, "failed": 0}
            counts.update({label: total for label, total in result.all()})
            return counts
