"""
ShopifyOrderBuilder service for building Shopify REST payloads from OrderDomain.

Every created order carries the idempotency tag: an "appmax_id" note
attribute and an "appmax_id:<id>" tag, so a duplicate create can be found
later by searching Shopify.
"""

import logging
import re
from decimal import Decimal
from typing import Any

from appmax_sync.core.config import get_settings
from appmax_sync.db.shopify_clients.order_client import SOURCE_ID_ATTRIBUTE, SOURCE_ID_TAG_PREFIX
from appmax_sync.domain.models import OrderDomain
from appmax_sync.services.status_mapper import (
    FinancialState,
    to_shopify_financial_status,
    to_shopify_fulfillment_status,
)
from appmax_sync.utils.error_handler import ValidationException

settings = get_settings()
logger = logging.getLogger(__name__)

PAYMENT_GATEWAY = "appmax"
DEFAULT_FREIGHT_TITLE = "Frete Padrão"


def format_brazilian_phone(phone: str | None) -> str | None:
    """
    Format a Brazilian phone number for Shopify.

    Accepts 10/11 digits (DDD + number) or 12/13 digits (with country code 55).

    Returns:
        "+55 (DD) NNNNN-NNNN" for mobiles, "+55 (DD) NNNN-NNNN" for landlines,
        or None when the number cannot be formatted
    """
    if not phone:
        return None

    digits = re.sub(r"\D", "", str(phone))

    if len(digits) in (11, 13):
        ddd, first, last = digits[-11:-9], digits[-9:-4], digits[-4:]
    elif len(digits) in (10, 12):
        ddd, first, last = digits[-10:-8], digits[-8:-4], digits[-4:]
    else:
        return None

    return f"+55 ({ddd}) {first}-{last}"


def money(value: Decimal | None) -> str:
    return f"{(value or Decimal('0')).quantize(Decimal('0.01'))}"


class ShopifyOrderBuilder:
    """
    Builds create, update and refund payloads for the Shopify REST API.
    """

    def __init__(self, currency: str | None = None, country_code: str = "BR"):
        self.currency = currency or settings.SHOPIFY_CURRENCY
        self.country_code = country_code

    def build_create_payload(
        self,
        order: OrderDomain,
        sync_state: str,
        financial_state: str,
        include_customer_identity: bool = True,
    ) -> dict[str, Any]:
        """
        Build the body of POST /orders.json (without the "order" envelope).

        Args:
            order: Normalized Appmax order
            sync_state: Canonical sync state being applied
            financial_state: Canonical financial state being applied
            include_customer_identity: When False the customer block only carries
                the email, so Shopify links the order to the existing customer

        Raises:
            ValidationException: If the order has no products
        """
        if not order.items:
            raise ValidationException(
                message=f"Order {order.source_order_id} has no products",
                field="bundles",
                invalid_value=None,
            )

        customer = order.customer
        phone = format_brazilian_phone(customer.phone)
        address = self._build_address(order, phone)
        total = money(order.grand_total)

        payload: dict[str, Any] = {
            "line_items": [
                {
                    "title": item.title,
                    "quantity": item.quantity,
                    "price": money(item.price),
                    "sku": item.sku,
                    "requires_shipping": True,
                    "taxable": True,
                    "fulfillment_service": "manual",
                    "grams": 0,
                }
                for item in order.items
            ],
            "customer": self._build_customer(order, phone, include_customer_identity),
            "shipping_address": address,
            "billing_address": dict(address),
            "financial_status": to_shopify_financial_status(financial_state),
            "fulfillment_status": to_shopify_fulfillment_status(sync_state),
            "currency": self.currency,
            "total_price": total,
            "subtotal_price": money(order.total_products if order.total_products is not None else order.items_total),
            "total_tax": "0.00",
            "total_discounts": money(order.discount),
            "shipping_lines": [
                {
                    "price": money(order.freight_value),
                    "code": order.freight_type or "Standard",
                    "title": order.freight_type or DEFAULT_FREIGHT_TITLE,
                }
            ],
            "tags": self._build_tags(order, sync_state),
            "note": f"Pedido Appmax #{order.source_order_id}",
            "note_attributes": self._build_note_attributes(order, sync_state),
            "send_receipt": False,
            "send_fulfillment_receipt": False,
        }

        if customer.email:
            payload["email"] = customer.email
        if phone and include_customer_identity:
            payload["phone"] = phone

        if str(getattr(financial_state, "value", financial_state)) == FinancialState.PAID.value:
            payload["transactions"] = [
                {"kind": "sale", "status": "success", "amount": total, "gateway": PAYMENT_GATEWAY}
            ]

        return payload

    def build_update_payload(self, order: OrderDomain, sync_state: str, financial_state: str) -> dict[str, Any]:
        """Fields sent with PUT /orders/{id}.json for a status transition."""
        return {
            "financial_status": to_shopify_financial_status(financial_state),
            "tags": self._build_tags(order, sync_state),
            "note_attributes": self._build_note_attributes(order, sync_state),
        }

    def build_refund_payload(
        self,
        order: OrderDomain,
        sink_order: dict[str, Any],
        parent_transaction: dict[str, Any],
    ) -> dict[str, Any]:
        """Body of POST /orders/{id}/refunds.json refunding the payment transaction in full."""
        amount = parent_transaction.get("amount") or sink_order.get("total_price") or money(order.grand_total)
        return {
            "currency": sink_order.get("currency") or self.currency,
            "notify": True,
            "note": f"Reembolso automático - Appmax #{order.source_order_id}",
            "transactions": [
                {
                    "parent_id": parent_transaction["id"],
                    "amount": str(amount),
                    "kind": "refund",
                    "gateway": parent_transaction.get("gateway") or PAYMENT_GATEWAY,
                }
            ],
        }

    def _build_customer(self, order: OrderDomain, phone: str | None, include_identity: bool) -> dict[str, Any]:
        customer = order.customer
        if not include_identity:
            return {"email": customer.email} if customer.email else {}

        data: dict[str, Any] = {"first_name": customer.first_name, "last_name": customer.last_name}
        if customer.email:
            data["email"] = customer.email
        if phone:
            data["phone"] = phone
        return data

    def _build_address(self, order: OrderDomain, phone: str | None) -> dict[str, Any]:
        customer = order.customer
        return {
            "first_name": customer.first_name,
            "last_name": customer.last_name,
            "address1": customer.address1,
            "address2": customer.address2,
            "city": customer.city,
            "province": customer.province,
            "zip": customer.zip_code,
            "country": self.country_code,
            "phone": phone,
        }

    @staticmethod
    def _build_tags(order: OrderDomain, sync_state: str) -> str:
        state = str(getattr(sync_state, "value", sync_state))
        tags = [order.status, f"appmax_status_{state}", f"{SOURCE_ID_TAG_PREFIX}{order.source_order_id}"]
        return ", ".join(tag for tag in tags if tag)

    @staticmethod
    def _build_note_attributes(order: OrderDomain, sync_state: str) -> list[dict[str, str]]:
        return [
            {"name": SOURCE_ID_ATTRIBUTE, "value": order.source_order_id},
            {"name": "appmax_status", "value": order.status or ""},
            {"name": "appmax_payment_type", "value": order.payment_type or ""},
            {"name": "appmax_sync_state", "value": str(getattr(sync_state, "value", sync_state))},
        ]
