from appmax_sync.api.v1.schemas.appmax_schemas import (
    AppmaxWebhook,
    OrderMappingList,
    OrderMappingResponse,
    SyncRequestList,
    SyncRequestResponse,
    WebhookAck,
)

__all__ = [
    "AppmaxWebhook",
    "OrderMappingList",
    "OrderMappingResponse",
    "SyncRequestList",
    "SyncRequestResponse",
    "WebhookAck",
]
