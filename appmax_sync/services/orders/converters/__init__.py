"""Converters from Appmax domain orders to Shopify payloads."""

from .shopify_order_builder import ShopifyOrderBuilder, format_brazilian_phone

__all__ = ["ShopifyOrderBuilder", "format_brazilian_phone"]
