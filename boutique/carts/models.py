# module boutique.carts.models
"""Schémas des payloads panier (JSON front ou cookie invité)."""
from typing import List

from pydantic import BaseModel, ConfigDict, Field, RootModel


class GuestCartLine(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="productId", min_length=1)
    quantity: int = Field(ge=1)


class GuestCart(RootModel[List[GuestCartLine]]):
    pass


class AddToCartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="productId", min_length=1)
    quantity: int = Field(default=1, ge=1)


class RemoveFromCartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    quantity: int = Field(default=1, ge=1)
    remove_all: bool = Field(default=False, alias="removeAll")
