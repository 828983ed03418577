from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional, Sequence

from pydantic import BaseModel, Field

from storefront.catalog import AddOn, CatalogItem, SelectedAddOn, Variation
from storefront.errors import CartLineNotFound, OutOfStock
from storefront.pricing import unit_price

logger = logging.getLogger("storefront.cart")


class CartLine(BaseModel):
    id: str
    menu_item_id: str
    name: str
    quantity: int = Field(ge=1)
    selected_variation: Optional[Variation] = None
    selected_add_ons: tuple[SelectedAddOn, ...] = ()
    total_price: Decimal
    track_inventory: bool = False
    stock_quantity: Optional[int] = None

    @property
    def line_total(self) -> Decimal:
        return self.total_price * self.quantity

    def add_ons_label(self) -> str:
        return ", ".join(
            f"{add_on.name} x{add_on.quantity}" if add_on.quantity > 1 else add_on.name
            for add_on in self.selected_add_ons
        )


def group_add_ons(add_ons: Optional[Sequence[AddOn]]) -> list[SelectedAddOn]:
    """Collapse repeated add-ons into one entry per id, keeping first-seen order."""
    grouped: dict[str, SelectedAddOn] = {}
    for add_on in add_ons or ():
        count = getattr(add_on, "quantity", 1)
        existing = grouped.get(add_on.id)
        if existing is None:
            grouped[add_on.id] = SelectedAddOn(
                id=add_on.id,
                name=add_on.name,
                category=add_on.category,
                price=add_on.price,
                quantity=count,
            )
        else:
            grouped[add_on.id] = existing.model_copy(update={"quantity": existing.quantity + count})
    return list(grouped.values())


def line_key(menu_item_id: str, variation: Optional[Variation], add_ons: Sequence[SelectedAddOn]) -> str:
    tokens = sorted(f"{add_on.id}-{add_on.quantity}" for add_on in add_ons)
    variation_part = variation.id if variation is not None else "default"
    return f"{menu_item_id}-{variation_part}-{','.join(tokens) or 'none'}"


class CartLedger:
    """Cart lines for one shopper, with stock admission per catalog item."""

    def __init__(self) -> None:
        self._lines: list[CartLine] = []

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines)

    def get(self, line_id: str) -> Optional[CartLine]:
        for line in self._lines:
            if line.id == line_id:
                return line
        return None

    def quantity_for(self, menu_item_id: str, exclude_line_id: Optional[str] = None) -> int:
        return sum(
            line.quantity
            for line in self._lines
            if line.menu_item_id == menu_item_id and line.id != exclude_line_id
        )

    def add(
        self,
        item: CatalogItem,
        quantity: int = 1,
        variation: Optional[Variation] = None,
        add_ons: Optional[Sequence[AddOn]] = None,
    ) -> CartLine:
        if quantity <= 0:
            raise ValueError("quantity must be positive")
        if item.track_inventory and item.stock_quantity is not None:
            existing = self.quantity_for(item.id)
            if existing + quantity > item.stock_quantity:
                logger.info(
                    "rejected add of %s x%d: %d already in cart, stock %d",
                    item.id, quantity, existing, item.stock_quantity,
                )
                raise OutOfStock(item.id, existing + quantity, item.stock_quantity)

        grouped = group_add_ons(add_ons)
        key = line_key(item.id, variation, grouped)
        for index, line in enumerate(self._lines):
            if line.id == key:
                merged = line.model_copy(update={"quantity": line.quantity + quantity})
                self._lines[index] = merged
                return merged

        line = CartLine(
            id=key,
            menu_item_id=item.id,
            name=item.name,
            quantity=quantity,
            selected_variation=variation,
            selected_add_ons=tuple(grouped),
            total_price=unit_price(item, variation, grouped),
            track_inventory=item.track_inventory,
            stock_quantity=item.stock_quantity,
        )
        self._lines.append(line)
        return line

    def update_quantity(self, line_id: str, quantity: int) -> Optional[CartLine]:
        if quantity <= 0:
            self.remove(line_id)
            return None
        line = self.get(line_id)
        if line is None:
            raise CartLineNotFound(line_id)
        if line.track_inventory and line.stock_quantity is not None:
            others = self.quantity_for(line.menu_item_id, exclude_line_id=line_id)
            if others + quantity > line.stock_quantity:
                logger.info(
                    "rejected update of %s to %d: %d in other lines, stock %d",
                    line_id, quantity, others, line.stock_quantity,
                )
                raise OutOfStock(line.menu_item_id, others + quantity, line.stock_quantity)
        updated = line.model_copy(update={"quantity": quantity})
        self._lines = [updated if existing.id == line_id else existing for existing in self._lines]
        return updated

    def remove(self, line_id: str) -> None:
        self._lines = [line for line in self._lines if line.id != line_id]

    def clear(self) -> None:
        self._lines = []

    def total_price(self) -> Decimal:
        return sum((line.line_total for line in self._lines), Decimal("0"))

    def total_item_count(self) -> int:
        return sum(line.quantity for line in self._lines)
