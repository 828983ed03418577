"""Catalog value types shared by the cart and the inventory editor."""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Variation(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    price_delta: Decimal = Decimal("0")


class AddOn(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: str = ""
    price: Decimal = Field(default=Decimal("0"), ge=0)


class SelectedAddOn(AddOn):
    quantity: int = Field(default=1, ge=1)


class CatalogItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: str
    description: Optional[str] = None
    base_price: Decimal = Field(ge=0)
    discount_price: Optional[Decimal] = Field(default=None, ge=0)
    is_on_discount: bool = False
    effective_price: Optional[Decimal] = Field(default=None, ge=0)
    track_inventory: bool = False
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    low_stock_threshold: int = Field(default=0, ge=0)
    available: bool = True
    variations: tuple[Variation, ...] = ()
    add_ons: tuple[AddOn, ...] = ()

    @model_validator(mode="after")
    def _effective_not_above_base(self) -> "CatalogItem":
        if self.effective_price is not None and self.effective_price > self.base_price:
            raise ValueError("effective_price must not exceed base_price")
        return self

    def variation(self, variation_id: str) -> Optional[Variation]:
        for variation in self.variations:
            if variation.id == variation_id:
                return variation
        return None

    def add_on(self, add_on_id: str) -> Optional[AddOn]:
        for add_on in self.add_ons:
            if add_on.id == add_on_id:
                return add_on
        return None


def search_items(items: Iterable[CatalogItem], query: Optional[str]) -> list[CatalogItem]:
    """Case-insensitive substring match on name or category; blank returns all."""
    term = (query or "").strip().lower()
    if not term:
        return list(items)
    return [
        item
        for item in items
        if term in item.name.lower() or term in item.category.lower()
    ]


def group_by_category(items: Iterable[CatalogItem]) -> dict[str, list[CatalogItem]]:
    groups: dict[str, list[CatalogItem]] = {}
    for item in items:
        groups.setdefault(item.category, []).append(item)
    return groups
