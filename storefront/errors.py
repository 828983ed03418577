from __future__ import annotations

from typing import Optional


class StorefrontError(Exception):
    """Base class for storefront domain errors."""


class OutOfStock(StorefrontError):
    """Cart admission would exceed the tracked stock of a catalog item."""

    def __init__(self, menu_item_id: str, requested: int, stock_quantity: int) -> None:
        self.menu_item_id = menu_item_id
        self.requested = requested
        self.stock_quantity = stock_quantity
        super().__init__(f"Only {stock_quantity} units available in stock.")


class CartLineNotFound(StorefrontError):
    def __init__(self, line_id: str) -> None:
        self.line_id = line_id
        super().__init__(f"cart line not found: {line_id}")


class ItemNotFound(StorefrontError):
    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(f"menu item not found: {item_id}")


class RemoteUpdateFailure(StorefrontError):
    """Wraps whatever the record store raised while updating one item."""

    def __init__(self, item_id: str, cause: Optional[BaseException] = None) -> None:
        self.item_id = item_id
        self.cause = cause
        super().__init__(f"update of {item_id} failed: {cause}")


class CommitInProgress(StorefrontError):
    def __init__(self) -> None:
        super().__init__("a commit is already running")
