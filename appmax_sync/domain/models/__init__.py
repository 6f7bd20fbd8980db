"""
Domain models for Appmax orders.
"""

from appmax_sync.domain.models.customer import CustomerDomain
from appmax_sync.domain.models.order import OrderDomain, OrderItemDomain

__all__ = ["CustomerDomain", "OrderDomain", "OrderItemDomain"]
