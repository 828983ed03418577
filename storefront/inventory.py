"""Local inventory edits layered over the canonical catalog.

Nothing here writes to the record store. ``StockOverlay`` keeps unsaved edits
next to the last fetched catalog snapshot, and ``resolve_availability`` derives
the stock status shown for an item. Committing the edits is the job of
``storefront.reconcile``.
"""

from __future__ import annotations

import logging
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from storefront.catalog import CatalogItem
from storefront.errors import ItemNotFound

logger = logging.getLogger("storefront.inventory")

STATUS_NOT_TRACKING = "not tracking"
STATUS_LOW_STOCK = "low stock"
STATUS_IN_STOCK = "in stock"

ADJUSTMENT_IN = "in"
ADJUSTMENT_OUT = "out"

# Largest value the stock columns hold.
MAX_QUANTITY = 2**31 - 1


class PendingItemEdit(BaseModel):
    """Field overrides for one item. Only explicitly set fields are overrides."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    track_inventory: Optional[bool] = None
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    low_stock_threshold: Optional[int] = Field(default=None, ge=0)
    base_price: Optional[Decimal] = Field(default=None, ge=0)
    available: Optional[bool] = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class StockAdjustment(BaseModel):
    model_config = ConfigDict(frozen=True)

    goods_in: int = Field(default=0, ge=0)
    goods_out: int = Field(default=0, ge=0)

    @property
    def is_nonzero(self) -> bool:
        return self.goods_in > 0 or self.goods_out > 0


class Availability(BaseModel):
    tracking: bool
    stock: Optional[int] = None
    threshold: Optional[int] = None
    low: bool = False
    status: str


def resolve_availability(item: CatalogItem) -> Availability:
    tracking = bool(item.track_inventory)
    if not tracking:
        return Availability(tracking=False, status=STATUS_NOT_TRACKING)
    stock = item.stock_quantity or 0
    threshold = item.low_stock_threshold or 0
    low = stock <= threshold
    return Availability(
        tracking=True,
        stock=stock,
        threshold=threshold,
        low=low,
        status=STATUS_LOW_STOCK if low else STATUS_IN_STOCK,
    )


def stock_notice(item: CatalogItem) -> Optional[str]:
    """Customer-facing stock line for a catalog card, or None when untracked."""
    if not item.track_inventory or item.stock_quantity is None:
        return None
    if item.stock_quantity == 0:
        return "Currently out of stock"
    if item.stock_quantity <= item.low_stock_threshold:
        return f"Hurry! Only {item.stock_quantity} left in stock"
    return f"{item.stock_quantity} available in stock"


def parse_quantity(raw: Any) -> int:
    """Parse operator input into a non-negative whole number.

    Junk, negatives and anything above MAX_QUANTITY become 0.
    """
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation:
        return 0
    if not value.is_finite() or value < 0 or value > MAX_QUANTITY:
        return 0
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def _discounted_price(item: CatalogItem, base_price: Decimal) -> Optional[Decimal]:
    if item.is_on_discount and item.discount_price is not None:
        return min(item.discount_price, base_price)
    if item.effective_price is not None:
        return min(item.effective_price, base_price)
    return None


def _non_negative_int(value: Optional[int]) -> int:
    return max(0, int(value or 0))


class StockOverlay:
    def __init__(self, items: Iterable[CatalogItem] = ()) -> None:
        self._catalog: dict[str, CatalogItem] = {}
        self._edits: Mapping[str, PendingItemEdit] = {}
        self._adjustments: Mapping[str, StockAdjustment] = {}
        self.replace_catalog(items)

    def replace_catalog(self, items: Iterable[CatalogItem]) -> None:
        self._catalog = {item.id: item for item in items}

    @property
    def catalog(self) -> list[CatalogItem]:
        return list(self._catalog.values())

    def _canonical(self, item_id: str) -> CatalogItem:
        item = self._catalog.get(item_id)
        if item is None:
            raise ItemNotFound(item_id)
        return item

    def pending_edit(self, item_id: str) -> Optional[PendingItemEdit]:
        return self._edits.get(item_id)

    def adjustment(self, item_id: str) -> StockAdjustment:
        return self._adjustments.get(item_id, StockAdjustment())

    def effective_item(self, item_id: str) -> CatalogItem:
        item = self._canonical(item_id)
        edit = self._edits.get(item_id)
        if edit is None:
            return item
        changes = edit.changes()
        if changes.get("base_price") is not None:
            changes["effective_price"] = _discounted_price(item, changes["base_price"])
        return item.model_copy(update=changes)

    def set_field_override(
        self, item_id: str, patch: Union[PendingItemEdit, Mapping[str, Any]]
    ) -> PendingItemEdit:
        if not isinstance(patch, PendingItemEdit):
            patch = PendingItemEdit.model_validate(dict(patch))
        fields = patch.changes()
        effective = self.effective_item(item_id)
        current = self._edits.get(item_id)
        prior = current.changes() if current is not None else {}

        if "track_inventory" in fields:
            if fields["track_inventory"]:
                fields.setdefault("stock_quantity", _non_negative_int(effective.stock_quantity))
                fields.setdefault("low_stock_threshold", _non_negative_int(effective.low_stock_threshold))
            else:
                fields["stock_quantity"] = None
                fields["low_stock_threshold"] = 0

        merged = PendingItemEdit(**{**prior, **fields})
        self._edits = {**self._edits, item_id: merged}
        logger.debug("override %s -> %s", item_id, merged.changes())
        return merged

    def toggle_tracking(self, item_id: str, track: bool) -> PendingItemEdit:
        return self.set_field_override(item_id, {"track_inventory": track})

    def adjust_stock(self, item_id: str, delta: int) -> Optional[PendingItemEdit]:
        """Step the stock by ``delta`` as if the operator typed the new value."""
        effective = self.effective_item(item_id)
        if not effective.track_inventory:
            return None
        next_stock = min(MAX_QUANTITY, max(0, (effective.stock_quantity or 0) + delta))
        return self.set_field_override(
            item_id, {"track_inventory": True, "stock_quantity": next_stock}
        )

    def set_stock_quantity(self, item_id: str, raw: Any) -> Optional[PendingItemEdit]:
        if not self.effective_item(item_id).track_inventory:
            return None
        return self.set_field_override(
            item_id, {"track_inventory": True, "stock_quantity": parse_quantity(raw)}
        )

    def set_low_stock_threshold(self, item_id: str, raw: Any) -> Optional[PendingItemEdit]:
        if not self.effective_item(item_id).track_inventory:
            return None
        return self.set_field_override(
            item_id, {"track_inventory": True, "low_stock_threshold": parse_quantity(raw)}
        )

    def set_adjustment(self, item_id: str, kind: str, quantity: Any) -> StockAdjustment:
        """Record goods received (``in``) or consumed (``out``) for the next commit."""
        if kind not in (ADJUSTMENT_IN, ADJUSTMENT_OUT):
            raise ValueError(f"unknown adjustment kind: {kind!r}")
        self._canonical(item_id)
        current = self.adjustment(item_id)
        field = "goods_in" if kind == ADJUSTMENT_IN else "goods_out"
        updated = current.model_copy(update={field: parse_quantity(quantity)})
        self._adjustments = {**self._adjustments, item_id: updated}
        return updated

    def discard(self, item_id: str) -> None:
        self._edits = {k: v for k, v in self._edits.items() if k != item_id}
        self._adjustments = {k: v for k, v in self._adjustments.items() if k != item_id}

    def discard_all(self) -> None:
        self._edits = {}
        self._adjustments = {}

    def has_pending_changes(self, item_id: str) -> bool:
        return item_id in self._edits or self.adjustment(item_id).is_nonzero

    def modified_ids(self) -> list[str]:
        ids = list(self._edits)
        ids.extend(
            item_id
            for item_id, adjustment in self._adjustments.items()
            if adjustment.is_nonzero and item_id not in self._edits
        )
        return ids

    def modified_count(self) -> int:
        return len(self.modified_ids())
