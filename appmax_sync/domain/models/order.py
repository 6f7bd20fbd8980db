"""
Order domain model.

Represents an Appmax order after payload normalization, independent of the
shape the webhook delivered it in.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from appmax_sync.domain.models.customer import CustomerDomain


@dataclass
class OrderItemDomain:
    title: str
    quantity: int
    price: Decimal
    sku: str | None = None

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError(f"Quantity must be positive: {self.quantity}")


@dataclass
class OrderDomain:
    """
    Domain model representing an Appmax order.

    Attributes:
        source_order_id: Appmax order id (always a string)
        customer: Normalized customer
        items: Line items flattened from bundles/products
        status: Appmax native status text (e.g. "aprovado")
        total: Order total, None when not sent
        total_products: Products subtotal
        discount: Discount amount
        freight_value: Shipping price
        freight_type: Shipping method name
        payment_type: Appmax payment type (CreditCard, Pix, Boleto)
    """

    source_order_id: str
    customer: CustomerDomain
    items: list[OrderItemDomain] = field(default_factory=list)
    status: str | None = None
    total: Decimal | None = None
    total_products: Decimal | None = None
    discount: Decimal = Decimal("0")
    freight_value: Decimal = Decimal("0")
    freight_type: str | None = None
    payment_type: str | None = None

    @property
    def items_total(self) -> Decimal:
        return sum((item.price * item.quantity for item in self.items), Decimal("0"))

    @property
    def grand_total(self) -> Decimal:
        """Total sent by Appmax, or products + freight - discount when absent."""
        if self.total is not None:
            return self.total
        subtotal = self.total_products if self.total_products is not None else self.items_total
        return subtotal + self.freight_value - self.discount

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_order_id": self.source_order_id,
            "status": self.status,
            "customer": self.customer.to_dict(),
            "items_count": len(self.items),
            "total": str(self.grand_total),
            "payment_type": self.payment_type,
        }
