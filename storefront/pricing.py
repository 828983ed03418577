from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence

from pydantic import BaseModel

from storefront.catalog import AddOn, CatalogItem, Variation

CENTS = Decimal("0.01")


class PriceDisplay(BaseModel):
    effective_price: Decimal
    discounted_price: Optional[Decimal] = None
    show_discount: bool = False


def quantize(amount: Decimal) -> Decimal:
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def format_money(amount: Decimal, symbol: str) -> str:
    return f"{symbol}{quantize(amount)}"


def base_price(item: CatalogItem) -> Decimal:
    if item.effective_price is not None:
        return item.effective_price
    return item.base_price


def unit_price(
    item: CatalogItem,
    variation: Optional[Variation] = None,
    add_ons: Optional[Sequence[AddOn]] = None,
) -> Decimal:
    """Price of one unit: discounted base, then the variation delta, then add-ons.

    Plain add-ons count once per occurrence; grouped add-ons carry a quantity.
    """
    price = base_price(item)
    if variation is not None:
        price += variation.price_delta
    for add_on in add_ons or ():
        price += add_on.price * getattr(add_on, "quantity", 1)
    return price


def discount_display(item: CatalogItem) -> PriceDisplay:
    effective = base_price(item)
    explicit = item.is_on_discount and item.discount_price is not None
    implicit = effective < item.base_price
    if explicit:
        discounted = item.discount_price
    elif implicit:
        discounted = effective
    else:
        discounted = None
    return PriceDisplay(
        effective_price=effective,
        discounted_price=discounted,
        show_discount=explicit or implicit,
    )
