"""
Customer domain model.

Represents the buyer of an Appmax order after normalization. Missing fields
are already replaced by defaults, so every attribute is safe to read.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class CustomerDomain:
    """
    Domain model representing an Appmax customer.

    Attributes:
        first_name: Customer first name (defaults to "Cliente")
        last_name: Customer last name (defaults to "Appmax")
        email: Customer email, None when Appmax did not send one
        phone: Raw phone number as sent by Appmax
        document: CPF/CNPJ
        street, number, complement, district, city, province, zip_code: Address parts
    """

    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    document: str | None = None
    street: str = ""
    number: str = ""
    complement: str = ""
    district: str = ""
    city: str = ""
    province: str = ""
    zip_code: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def address1(self) -> str:
        """Street with its number, as Shopify expects in address1."""
        if self.street and self.number:
            return f"{self.street}, {self.number}"
        return self.street

    @property
    def address2(self) -> str:
        return ", ".join(part for part in (self.complement, self.district) if part)

    def to_dict(self) -> dict[str, Any]:
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "document": self.document,
            "address1": self.address1,
            "address2": self.address2,
            "city": self.city,
            "province": self.province,
            "zip": self.zip_code,
        }
