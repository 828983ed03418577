from __future__ import annotations

from typing import Optional
from uuid import uuid4

from storefront.cart import CartLedger
from storefront.catalog import CatalogItem
from storefront.errors import ItemNotFound
from storefront.inventory import StockOverlay
from storefront.reconcile import CommitReport, ReconciliationCommitter
from storefront.store import RecordStore


class StorefrontContext:
    """Per-process state handed to request handlers: store, carts and the inventory editor."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store
        self.carts: dict[str, CartLedger] = {}
        self.overlay = StockOverlay()
        self.committer = ReconciliationCommitter(store)

    def refresh_catalog(self) -> list[CatalogItem]:
        items = self.store.fetch_catalog()
        self.overlay.replace_catalog(items)
        return items

    def catalog_item(self, item_id: str) -> CatalogItem:
        for item in self.refresh_catalog():
            if item.id == item_id:
                return item
        raise ItemNotFound(item_id)

    def open_cart(self) -> str:
        cart_id = f"cart_{uuid4().hex}"
        self.carts[cart_id] = CartLedger()
        return cart_id

    def cart(self, cart_id: str) -> Optional[CartLedger]:
        return self.carts.get(cart_id)

    def commit_inventory(self) -> CommitReport:
        items = self.refresh_catalog()
        report = self.committer.commit(items, self.overlay)
        self.refresh_catalog()
        return report
