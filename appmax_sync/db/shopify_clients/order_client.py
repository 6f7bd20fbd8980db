"""
Shopify REST Admin client for order operations.

Every HTTP request goes through the shared RateLimitedClient, so calls are
spaced, transient failures are retried with backoff and permanent errors
surface immediately as ShopifyAPIException.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import aiohttp
from aiohttp import ClientTimeout

from appmax_sync.core.config import get_settings
from appmax_sync.core.logging_config import log_api_call
from appmax_sync.utils.error_handler import ShopifyAPIException
from appmax_sync.utils.rate_limiter import RateLimitedClient

logger = logging.getLogger(__name__)

SOURCE_ID_ATTRIBUTE = "appmax_id"
SOURCE_ID_TAG_PREFIX = "appmax_id:"
SEARCH_FIELDS = "id,name,note_attributes,tags,financial_status,fulfillment_status,cancelled_at,total_price,currency,created_at"


@dataclass
class ShopifyResponse:
    status: int
    data: Dict[str, Any]
    next_url: Optional[str] = None


def order_matches_source_id(order: Dict[str, Any], source_order_id: str) -> bool:
    """Whether a Shopify order carries the idempotency tag of ``source_order_id``."""
    source_order_id = str(source_order_id)

    for attribute in order.get("note_attributes") or []:
        if attribute.get("name") == SOURCE_ID_ATTRIBUTE and str(attribute.get("value")) == source_order_id:
            return True

    tags = order.get("tags") or ""
    if isinstance(tags, str):
        tags = [tag.strip() for tag in tags.split(",")]
    return f"{SOURCE_ID_TAG_PREFIX}{source_order_id}" in tags


class ShopifyOrderClient:
    """
    Client for the Shopify REST orders API.

    Provides create, update, lookup, bounded search, cancel and refund
    operations used by the order synchronization orchestrator.
    """

    def __init__(self, rate_limiter: Optional[RateLimitedClient] = None):
        """Initialize the Shopify order client."""
        self.settings = get_settings()
        self.base_url = self.settings.shopify_api_base_url
        self.rate_limiter = rate_limiter or RateLimitedClient(name="shopify")
        self.session: Optional[aiohttp.ClientSession] = None

        logger.info(f"Initialized Shopify order client for {self.settings.SHOPIFY_SHOP_URL}")

    async def initialize(self):
        """Create the HTTP session."""
        if self.session:
            return

        timeout = ClientTimeout(total=self.settings.SHOPIFY_REQUEST_TIMEOUT, connect=10)
        connector = aiohttp.TCPConnector(limit=10)
        self.session = aiohttp.ClientSession(
            timeout=timeout,
            connector=connector,
            headers=self.settings.get_shopify_headers(),
        )
        logger.info("✅ Shopify order client initialized")

    async def close(self):
        """Close the HTTP session and clean up resources."""
        if self.session:
            await self.session.close()
            self.session = None
            logger.info("Shopify order client closed")

    # === OPERATIONS ===

    async def create_order(self, order: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request("POST", "/orders.json", json={"order": order}, operation="create_order")
        return response.data.get("order", {})

    async def update_order(self, order_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        body = {"order": {"id": int(order_id), **fields}}
        response = await self._request("PUT", f"/orders/{order_id}.json", json=body, operation="update_order")
        return response.data.get("order", {})

    async def get_order(self, order_id: str, fields: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Return the order or None when Shopify answers 404."""
        params = {"fields": fields} if fields else None
        try:
            response = await self._request("GET", f"/orders/{order_id}.json", params=params, operation="get_order")
        except ShopifyAPIException as e:
            if e.api_response_code == 404:
                return None
            raise
        return response.data.get("order")

    async def find_orders_by_source_id(self, source_order_id: str) -> List[Dict[str, Any]]:
        """
        Bounded search for orders tagged with ``source_order_id``.

        Scans orders created in the last ``SHOPIFY_SEARCH_DAYS`` days, at most
        ``SHOPIFY_SEARCH_MAX_PAGES`` pages, and filters them client-side by the
        ``appmax_id`` note attribute or tag.

        Returns:
            List of matching orders (newest first, as Shopify returns them)
        """
        created_at_min = datetime.now(timezone.utc) - timedelta(days=self.settings.SHOPIFY_SEARCH_DAYS)
        params: Optional[Dict[str, Any]] = {
            "status": "any",
            "limit": 250,
            "created_at_min": created_at_min.isoformat(),
            "fields": SEARCH_FIELDS,
        }
        url: Optional[str] = None
        matches: List[Dict[str, Any]] = []

        for page in range(1, self.settings.SHOPIFY_SEARCH_MAX_PAGES + 1):
            response = await self._request(
                "GET", "/orders.json", params=params, url=url, operation="search_orders"
            )
            orders = response.data.get("orders", [])
            matches.extend(order for order in orders if order_matches_source_id(order, source_order_id))

            if matches or not response.next_url:
                break

            # The next-page URL already carries page_info; other filters are not allowed with it
            url, params = response.next_url, None
        else:
            logger.debug(f"Search for Appmax #{source_order_id} stopped after {page} pages")

        return matches

    async def cancel_order(self, order_id: str, reason: str = "other") -> Dict[str, Any]:
        response = await self._request(
            "POST", f"/orders/{order_id}/cancel.json", json={"reason": reason}, operation="cancel_order"
        )
        return response.data.get("order", {})

    async def list_transactions(self, order_id: str) -> List[Dict[str, Any]]:
        response = await self._request("GET", f"/orders/{order_id}/transactions.json", operation="list_transactions")
        return response.data.get("transactions", [])

    async def create_refund(self, order_id: str, refund: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request(
            "POST", f"/orders/{order_id}/refunds.json", json={"refund": refund}, operation="create_refund"
        )
        return response.data.get("refund", {})

    async def test_connection(self) -> bool:
        """Check that the shop answers with the configured credentials."""
        try:
            response = await self._request("GET", "/shop.json", operation="test_connection")
            shop = response.data.get("shop", {})
            logger.info(f"✅ Connected to Shopify store: {shop.get('name', 'Unknown')} ({shop.get('currency', '?')})")
            return True
        except ShopifyAPIException as e:
            logger.error(f"❌ Shopify connection test failed: {e}")
            return False

    # === HTTP ===

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        url: Optional[str] = None,
    ) -> ShopifyResponse:
        return await self.rate_limiter.execute(
            self._send, method, url or f"{self.base_url}{path}", json=json, params=params, operation=operation
        )

    async def _send(
        self,
        method: str,
        url: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> ShopifyResponse:
        """
        Perform exactly one HTTP request.

        Raises:
            ShopifyAPIException: Transient for timeouts, network errors, 429 and
                5xx; DuplicateIdentityException for duplicate customer 422s;
                permanent for other error responses
        """
        if not self.session:
            raise ShopifyAPIException("Client not initialized. Call initialize() first.", is_retryable=False)

        start = time.monotonic()
        try:
            async with self.session.request(method, url, json=json, params=params) as response:
                log_api_call(method, url, response.status, time.monotonic() - start)
                body = await self._read_body(response)

                if response.status >= 400:
                    raise ShopifyAPIException.from_response(
                        response.status,
                        body,
                        endpoint=url,
                        retry_after=_parse_retry_after(response.headers.get("Retry-After")),
                    )

                next_link = response.links.get("next")
                next_url = str(next_link["url"]) if next_link else None
                return ShopifyResponse(status=response.status, data=body if isinstance(body, dict) else {}, next_url=next_url)

        except asyncio.TimeoutError as e:
            log_api_call(method, url, 0, time.monotonic() - start, error="timeout")
            raise ShopifyAPIException(f"Timeout calling Shopify {method} {url}", endpoint=url) from e
        except aiohttp.ClientError as e:
            log_api_call(method, url, 0, time.monotonic() - start, error=str(e))
            raise ShopifyAPIException(f"Network error calling Shopify: {str(e)}", endpoint=url) from e

    @staticmethod
    async def _read_body(response: aiohttp.ClientResponse) -> Any:
        text = await response.text()
        if not text:
            return {}
        try:
            return await response.json(content_type=None)
        except ValueError:
            return text

    def __repr__(self):
        return f"ShopifyOrderClient(base_url='{self.base_url}', initialized={self.session is not None})"


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None
