from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.catalog import AddOn, CatalogItem, Variation
from storefront.models import MenuItem, MenuItemAddOn, MenuItemVariation

logger = logging.getLogger("storefront.store")

UPDATABLE_FIELDS = frozenset(
    {"track_inventory", "stock_quantity", "low_stock_threshold", "base_price", "available"}
)


class RecordStore(Protocol):
    def fetch_catalog(self) -> list[CatalogItem]:
        ...

    def update_item(self, item_id: str, fields: Mapping[str, Any]) -> None:
        ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


def to_catalog_item(
    row: MenuItem,
    variations: list[MenuItemVariation],
    add_ons: list[MenuItemAddOn],
) -> CatalogItem:
    effective_price = None
    if row.is_on_discount and row.discount_price is not None:
        effective_price = min(row.discount_price, row.base_price)
    return CatalogItem(
        id=row.id,
        name=row.name,
        category=row.category,
        description=row.description,
        base_price=row.base_price,
        discount_price=row.discount_price,
        is_on_discount=row.is_on_discount,
        effective_price=effective_price,
        track_inventory=row.track_inventory,
        stock_quantity=row.stock_quantity,
        low_stock_threshold=row.low_stock_threshold,
        available=row.available,
        variations=tuple(
            Variation(id=v.id, name=v.name, price_delta=v.price_delta) for v in variations
        ),
        add_ons=tuple(
            AddOn(id=a.id, name=a.name, category=a.category, price=a.price) for a in add_ons
        ),
    )


def load_catalog(db: Session) -> list[CatalogItem]:
    rows = db.scalars(select(MenuItem).order_by(MenuItem.category, MenuItem.name)).all()
    variations: dict[str, list[MenuItemVariation]] = {}
    for variation in db.scalars(
        select(MenuItemVariation).order_by(MenuItemVariation.sort_order, MenuItemVariation.id)
    ):
        variations.setdefault(variation.menu_item_id, []).append(variation)
    add_ons: dict[str, list[MenuItemAddOn]] = {}
    for add_on in db.scalars(
        select(MenuItemAddOn).order_by(MenuItemAddOn.sort_order, MenuItemAddOn.id)
    ):
        add_ons.setdefault(add_on.menu_item_id, []).append(add_on)
    return [
        to_catalog_item(row, variations.get(row.id, []), add_ons.get(row.id, []))
        for row in rows
    ]


class SqlRecordStore:
    """Record store backed by the ``menu_item`` tables, one session per call."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def fetch_catalog(self) -> list[CatalogItem]:
        db = self._session_factory()
        try:
            return load_catalog(db)
        finally:
            db.close()

    def update_item(self, item_id: str, fields: Mapping[str, Any]) -> None:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"fields not updatable: {sorted(unknown)}")
        db = self._session_factory()
        try:
            row = db.get(MenuItem, item_id)
            if row is None:
                raise LookupError(f"menu item not found: {item_id}")
            for name, value in fields.items():
                setattr(row, name, value)
            row.updated_at = _now()
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("update of %s failed", item_id)
            raise
        finally:
            db.close()
        logger.info("updated %s: %s", item_id, dict(fields))
