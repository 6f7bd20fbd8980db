"""
Despachador de la cola de sincronización.

Drena la tabla ``sync_requests`` en serie: cada fila pendiente se entrega al
orquestador, y el resultado (éxito o error) se registra sobre la misma fila.
Un fallo en una fila nunca detiene el lote ni el loop.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from appmax_sync.core.config import get_settings
from appmax_sync.db.models import SyncRequest
from appmax_sync.db.repositories.queue_repository import SyncQueueRepository
from appmax_sync.services.orders.orchestrator import OrderSyncOrchestrator
from appmax_sync.utils.error_handler import AppException, ExhaustedRetriesException, ValidationException, log_error

settings = get_settings()
logger = logging.getLogger(__name__)


class SyncQueueDispatcher:
    """
    Procesa filas pendientes de la cola, una a la vez.

    Una sola instancia por proceso: el lock de pedidos es local al proceso.
    """

    def __init__(
        self,
        queue: SyncQueueRepository,
        orchestrator: OrderSyncOrchestrator,
        poll_interval: Optional[float] = None,
        row_delay: Optional[float] = None,
        batch_size: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Inicializa el despachador.

        Args:
            queue: Repositorio de la cola
            orchestrator: Orquestador de sincronización
            poll_interval: Segundos de espera cuando la cola está vacía
            row_delay: Pausa mínima entre filas consecutivas
            batch_size: Máximo de filas leídas por pasada
            sleep: Función de espera (inyectable en tests)
        """
        self.queue = queue
        self.orchestrator = orchestrator
        self.poll_interval = settings.QUEUE_POLL_INTERVAL if poll_interval is None else poll_interval
        self.row_delay = settings.QUEUE_ROW_DELAY if row_delay is None else row_delay
        self.batch_size = batch_size or settings.QUEUE_BATCH_SIZE
        self._sleep = sleep

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._wakeup = asyncio.Event()
        self._pass_lock = asyncio.Lock()

        self.stats: Dict[str, Any] = {
            "passes": 0,
            "processed": 0,
            "succeeded": 0,
            "failed": 0,
            "exhausted": 0,
            "rejected": 0,
            "last_pass_at": None,
            "last_error": None,
        }

    @property
    def is_running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Inicia el loop en segundo plano."""
        if self.is_running:
            logger.warning("Queue dispatcher already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name="sync-queue-dispatcher")
        logger.info(f"🔄 Queue dispatcher started (poll every {self.poll_interval}s)")

    async def stop(self) -> None:
        """Detiene el loop y espera a que termine la fila en curso."""
        if not self._running:
            return

        self._running = False
        self._wakeup.set()

        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        self._task = None
        logger.info("🛑 Queue dispatcher stopped")

    def notify(self) -> None:
        """Despierta el loop antes del próximo intervalo (tras un enqueue)."""
        self._wakeup.set()

    async def process_pending(self) -> Dict[str, int]:
        """
        Ejecuta una pasada sobre las filas pendientes.

        Returns:
            Dict: Contadores de la pasada (processed, succeeded, failed, exhausted, rejected)
        """
        async with self._pass_lock:
            rows = await self.queue.fetch_pending(limit=self.batch_size)
            result = {"processed": 0, "succeeded": 0, "failed": 0, "exhausted": 0, "rejected": 0}

            for index, row in enumerate(rows):
                if index > 0 and self.row_delay > 0:
                    await self._sleep(self.row_delay)

                outcome = await self._process_row(row)
                result["processed"] += 1
                result[outcome] += 1
                if outcome in ("exhausted", "rejected"):
                    result["failed"] += 1

            self.stats["passes"] += 1
            self.stats["last_pass_at"] = datetime.now(timezone.utc).isoformat()
            for key, value in result.items():
                self.stats[key] += value

            if rows:
                logger.info(
                    f"Queue pass: {result['processed']} processed, {result['succeeded']} ok, "
                    f"{result['failed']} failed ({result['exhausted']} exhausted, {result['rejected']} rejected)"
                )
            return result

    async def _process_row(self, row: SyncRequest) -> str:
        try:
            await self.orchestrator.synchronize(row.payload, row.sync_state, row.financial_state)

        except ValidationException as e:
            self.stats["last_error"] = str(e)
            await self.queue.mark_processed(row.id, error=str(e), final=True)
            logger.warning(f"Sync request #{row.id} (Appmax #{row.source_order_id}) rejected: {e}")
            return "rejected"

        except Exception as e:
            error = str(e) if isinstance(e, AppException) else f"{type(e).__name__}: {e}"
            attempts = row.attempts + 1
            self.stats["last_error"] = error

            await self.queue.mark_processed(row.id, error=error)

            if attempts >= self.queue.max_attempts:
                log_error(
                    ExhaustedRetriesException(request_id=row.id, attempts=attempts, last_error=error),
                    context={"source_order_id": row.source_order_id, "event_type": row.event_type},
                )
                return "exhausted"

            logger.warning(
                f"Sync request #{row.id} (Appmax #{row.source_order_id}) failed, "
                f"attempt {attempts}/{self.queue.max_attempts}: {error}"
            )
            return "failed"

        await self.queue.mark_processed(row.id)
        return "succeeded"

    async def _run_loop(self) -> None:
        while self._running:
            try:
                self._wakeup.clear()
                await self.process_pending()

            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Queue store failures; rows stay pending for the next pass
                self.stats["last_error"] = str(e)
                logger.error(f"Error in queue dispatcher loop: {e}")

            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

    def get_status(self) -> Dict[str, Any]:
        """Estado del despachador para monitoreo."""
        return {
            "running": self.is_running,
            "poll_interval": self.poll_interval,
            "row_delay": self.row_delay,
            "batch_size": self.batch_size,
            "max_attempts": self.queue.max_attempts,
            **self.stats,
        }
