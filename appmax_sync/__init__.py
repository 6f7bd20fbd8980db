"""Sincronización de pedidos Appmax hacia Shopify."""

__version__ = "0.1.0"
