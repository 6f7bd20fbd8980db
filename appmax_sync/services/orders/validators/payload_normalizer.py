"""
OrderPayloadNormalizer service for turning Appmax webhook payloads into OrderDomain.

Appmax payloads observed in practice vary in shape: the order may be nested
under an "order" key or not, and customer fields arrive in snake_case,
camelCase or generic names. Field precedence is an ordered alias table that
can be overridden through CUSTOMER_FIELD_ALIASES.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from appmax_sync.core.config import get_settings
from appmax_sync.domain.models import CustomerDomain, OrderDomain, OrderItemDomain
from appmax_sync.utils.error_handler import ValidationException

settings = get_settings()
logger = logging.getLogger(__name__)

# First alias present with a non-empty value wins
DEFAULT_CUSTOMER_FIELD_ALIASES: dict[str, list[str]] = {
    "first_name": ["firstname", "first_name", "firstName"],
    "last_name": ["lastname", "last_name", "lastName"],
    "full_name": ["fullname", "full_name", "fullName", "name"],
    "email": ["email", "mail"],
    "phone": ["telephone", "phone", "cellphone", "mobile"],
    "document": ["document_number", "documentNumber", "cpf", "document"],
    "street": ["address_street", "addressStreet", "street", "address1"],
    "number": ["address_street_number", "addressStreetNumber", "number"],
    "complement": ["address_street_complement", "addressStreetComplement", "complement", "address2"],
    "district": ["address_street_district", "addressStreetDistrict", "district", "neighborhood"],
    "city": ["address_city", "addressCity", "city"],
    "province": ["address_state", "addressState", "state", "province"],
    "zip_code": ["postcode", "post_code", "postCode", "zipcode", "zip_code", "zip"],
}

ORDER_ID_ALIASES = ["id", "order_id", "orderId"]
PRODUCT_LIST_KEYS = ["products", "items"]


class OrderPayloadNormalizer:
    """
    Validates and normalizes Appmax order payloads.

    Responsibilities:
    - Unwrap an optional "order" envelope
    - Require a non-empty order id and a customer sub-record
    - Fill missing customer fields with defaults instead of failing
    - Flatten bundles/products into line items
    """

    def __init__(
        self,
        field_aliases: dict[str, list[str]] | None = None,
        default_first_name: str | None = None,
        default_last_name: str | None = None,
    ):
        """
        Initialize normalizer with configurable field precedence.

        Args:
            field_aliases: Per-field alias lists replacing the defaults for those fields.
                           Defaults to settings.CUSTOMER_FIELD_ALIASES.
            default_first_name: First name used when the payload has none
            default_last_name: Last name used when the payload has none
        """
        overrides = field_aliases if field_aliases is not None else settings.CUSTOMER_FIELD_ALIASES
        self.field_aliases = {**DEFAULT_CUSTOMER_FIELD_ALIASES, **(overrides or {})}
        self.default_first_name = default_first_name or settings.DEFAULT_CUSTOMER_FIRST_NAME
        self.default_last_name = default_last_name or settings.DEFAULT_CUSTOMER_LAST_NAME

    @staticmethod
    def unwrap(payload: dict[str, Any]) -> dict[str, Any]:
        """Return the order record, merging an "order" envelope over its outer keys."""
        inner = payload.get("order")
        if isinstance(inner, dict):
            outer = {key: value for key, value in payload.items() if key != "order"}
            return {**outer, **inner}
        return payload

    def peek_source_id(self, payload: Any) -> str | None:
        """Return the order id if present, without validating anything else."""
        if not isinstance(payload, dict):
            return None
        order = self.unwrap(payload)
        value = _first_present(order, ORDER_ID_ALIASES)
        return str(value).strip() if value is not None and str(value).strip() else None

    def extract_source_id(self, payload: dict[str, Any]) -> str:
        """
        Return the Appmax order id as a string.

        Raises:
            ValidationException: If the id is missing or empty
        """
        source_id = self.peek_source_id(payload)
        if not source_id:
            raise ValidationException(
                message="Order payload has no Appmax order id",
                field="id",
                invalid_value=None,
            )
        return source_id

    def normalize(self, payload: dict[str, Any]) -> OrderDomain:
        """
        Validate a payload and convert it to an OrderDomain.

        Args:
            payload: Webhook "data" object

        Returns:
            OrderDomain: Normalized order

        Raises:
            ValidationException: If the id or the customer record is missing
        """
        if not isinstance(payload, dict):
            raise ValidationException(
                message="Order payload must be an object",
                field="data",
                invalid_value=type(payload).__name__,
            )

        source_id = self.extract_source_id(payload)
        order = self.unwrap(payload)

        customer_data = order.get("customer")
        if not isinstance(customer_data, dict):
            raise ValidationException(
                message=f"Order {source_id} has no customer record",
                field="customer",
                invalid_value=customer_data,
            )

        return OrderDomain(
            source_order_id=source_id,
            customer=self._normalize_customer(customer_data, source_id),
            items=self._collect_items(order, source_id),
            status=_as_text(order.get("status")),
            total=_to_decimal(order.get("total")),
            total_products=_to_decimal(_first_present(order, ["total_products", "totalProducts"])),
            discount=_to_decimal(order.get("discount")) or Decimal("0"),
            freight_value=_to_decimal(_first_present(order, ["freight_value", "freightValue"])) or Decimal("0"),
            freight_type=_as_text(_first_present(order, ["freight_type", "freightType"])),
            payment_type=_as_text(_first_present(order, ["payment_type", "paymentType"])),
        )

    def _normalize_customer(self, data: dict[str, Any], source_id: str) -> CustomerDomain:
        values = {name: _as_text(_first_present(data, aliases)) for name, aliases in self.field_aliases.items()}

        first_name = values.get("first_name")
        last_name = values.get("last_name")
        full_name = values.get("full_name")
        if not first_name and full_name:
            first_name, _, rest = full_name.partition(" ")
            last_name = last_name or rest.strip() or None

        defaulted = [name for name in ("first_name", "last_name", "email", "phone") if not values.get(name)]
        if defaulted:
            logger.debug(f"Order {source_id}: customer fields missing, using defaults for {defaulted}")

        return CustomerDomain(
            first_name=first_name or self.default_first_name,
            last_name=last_name or self.default_last_name,
            email=values.get("email"),
            phone=values.get("phone"),
            document=values.get("document"),
            street=values.get("street") or "",
            number=values.get("number") or "",
            complement=values.get("complement") or "",
            district=values.get("district") or "",
            city=values.get("city") or "",
            province=values.get("province") or "",
            zip_code=values.get("zip_code") or "",
        )

    def _collect_items(self, order: dict[str, Any], source_id: str) -> list[OrderItemDomain]:
        products: list[dict[str, Any]] = []
        for bundle in order.get("bundles") or []:
            if isinstance(bundle, dict):
                products.extend(p for p in bundle.get("products") or [] if isinstance(p, dict))

        if not products:
            for key in PRODUCT_LIST_KEYS:
                candidates = order.get(key)
                if isinstance(candidates, list) and candidates:
                    products = [p for p in candidates if isinstance(p, dict)]
                    break

        items = []
        for product in products:
            quantity = _to_int(product.get("quantity"), default=1)
            if quantity <= 0:
                logger.warning(f"Order {source_id}: skipping product {product.get('sku')} with quantity {quantity}")
                continue
            items.append(
                OrderItemDomain(
                    title=_as_text(_first_present(product, ["name", "title", "description"])) or "Produto",
                    quantity=quantity,
                    price=_to_decimal(product.get("price")) or Decimal("0"),
                    sku=_as_text(product.get("sku")),
                )
            )
        return items


def _first_present(data: dict[str, Any], aliases: list[str]) -> Any:
    for alias in aliases:
        value = data.get(alias)
        if value is not None and value != "":
            return value
    return None


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value).replace(",", "."))
    except InvalidOperation:
        logger.warning(f"Invalid monetary value ignored: {value!r}")
        return None


def _to_int(value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        return default
