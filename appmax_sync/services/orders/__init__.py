"""
Order services package for Appmax to Shopify synchronization.

This package contains payload normalization, Shopify payload building and the
orchestrator that applies canonical transitions to Shopify orders.
"""
