"""Payload validation services."""

from .payload_normalizer import DEFAULT_CUSTOMER_FIELD_ALIASES, OrderPayloadNormalizer

__all__ = ["OrderPayloadNormalizer", "DEFAULT_CUSTOMER_FIELD_ALIASES"]
