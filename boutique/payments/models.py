# module boutique.payments.models
"""Payloads entrants du flux de paiement."""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from boutique.payments.metadata import Address


class CheckoutRequest(BaseModel):
    """Adresse de livraison + code promo optionnel (JSON camelCase du front)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    street: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    postal_code: str = Field(min_length=1, max_length=20)
    country: str = Field(min_length=1, max_length=100)
    discount_code: Optional[str] = Field(default=None, max_length=100)

    @field_validator("discount_code")
    @classmethod
    def _blank_code_is_none(cls, v: Optional[str]) -> Optional[str]:
        v = (v or "").strip()
        return v or None

    def address(self) -> Address:
        return Address(
            first_name=self.first_name,
            last_name=self.last_name,
            street=self.street,
            city=self.city,
            state=self.state,
            postal_code=self.postal_code,
            country=self.country,
        )


class ConfirmRequest(BaseModel):
    session_id: str = Field(min_length=1)
    reference: Optional[str] = None
