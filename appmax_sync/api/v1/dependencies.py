"""
Dependencias de FastAPI: las instancias únicas creadas en el lifespan.
"""

from fastapi import Request

from appmax_sync.db.connection import ConnDB
from appmax_sync.db.repositories.mapping_repository import MappingRepository
from appmax_sync.db.repositories.queue_repository import SyncQueueRepository
from appmax_sync.services.queue_dispatcher import SyncQueueDispatcher
from appmax_sync.services.webhook_handler import WebhookProcessor
from appmax_sync.utils.rate_limiter import RateLimitedClient


def get_conn_db(request: Request) -> ConnDB:
    return request.app.state.conn_db


def get_mapping_repository(request: Request) -> MappingRepository:
    return request.app.state.mapping_repository


def get_queue_repository(request: Request) -> SyncQueueRepository:
    return request.app.state.queue_repository


def get_dispatcher(request: Request) -> SyncQueueDispatcher:
    return request.app.state.dispatcher


def get_rate_limiter(request: Request) -> RateLimitedClient:
    return request.app.state.rate_limiter


def get_webhook_processor(request: Request) -> WebhookProcessor:
    return request.app.state.webhook_processor
