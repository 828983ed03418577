from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict

from storefront.catalog import CatalogItem
from storefront.errors import CommitInProgress, ItemNotFound, RemoteUpdateFailure
from storefront.inventory import StockOverlay
from storefront.store import RecordStore

logger = logging.getLogger("storefront.commit")

OUTCOME_APPLIED = "applied"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"


class CommitResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    item_id: str
    outcome: str
    updates: dict[str, Any] = {}
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.outcome == OUTCOME_APPLIED


class CommitReport(BaseModel):
    results: list[CommitResult] = []

    @property
    def succeeded(self) -> list[str]:
        return [r.item_id for r in self.results if r.outcome == OUTCOME_APPLIED]

    @property
    def failed(self) -> list[str]:
        return [r.item_id for r in self.results if r.outcome == OUTCOME_FAILED]

    @property
    def skipped(self) -> list[str]:
        return [r.item_id for r in self.results if r.outcome == OUTCOME_SKIPPED]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed

    def result_for(self, item_id: str) -> Optional[CommitResult]:
        for result in self.results:
            if result.item_id == item_id:
                return result
        return None


def build_updates(item: CatalogItem, overlay: StockOverlay) -> dict[str, Any]:
    """Final field values for one item: overrides, then goods in/out, then availability."""
    edit = overlay.pending_edit(item.id)
    updates = edit.changes() if edit is not None else {}

    adjustment = overlay.adjustment(item.id)
    if adjustment.is_nonzero:
        current = updates.get("stock_quantity")
        if current is None:
            current = item.stock_quantity or 0
        updates["stock_quantity"] = max(0, current + adjustment.goods_in - adjustment.goods_out)
        updates["track_inventory"] = True

    tracking = updates.get("track_inventory", item.track_inventory)
    if tracking:
        final_stock = updates.get("stock_quantity")
        if final_stock is None:
            final_stock = item.stock_quantity or 0
        final_threshold = updates.get("low_stock_threshold")
        if final_threshold is None:
            final_threshold = item.low_stock_threshold or 0
        updates["available"] = final_stock > final_threshold
    return updates


class ReconciliationCommitter:
    """Applies overlay edits to the record store one item at a time."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store
        self._lock = Lock()
        self.processing_id: Optional[str] = None

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    def commit(self, items: Iterable[CatalogItem], overlay: StockOverlay) -> CommitReport:
        if not self._lock.acquire(blocking=False):
            raise CommitInProgress()
        try:
            return self._commit(items, overlay)
        finally:
            self.processing_id = None
            self._lock.release()

    def _commit(self, items: Iterable[CatalogItem], overlay: StockOverlay) -> CommitReport:
        canonical = {item.id: item for item in items}
        report = CommitReport()
        for item_id in overlay.modified_ids():
            self.processing_id = item_id
            item = canonical.get(item_id)
            if item is None:
                error = ItemNotFound(item_id)
                logger.warning("skipping pending edit: %s", error)
                report.results.append(CommitResult(item_id=item_id, outcome=OUTCOME_SKIPPED, error=error))
                overlay.discard(item_id)
                continue

            updates = build_updates(item, overlay)
            try:
                self._store.update_item(item_id, updates)
            except Exception as exc:
                failure = RemoteUpdateFailure(item_id, exc)
                logger.error("commit of %s failed: %s", item_id, exc)
                report.results.append(
                    CommitResult(item_id=item_id, outcome=OUTCOME_FAILED, updates=updates, error=failure)
                )
                continue

            report.results.append(CommitResult(item_id=item_id, outcome=OUTCOME_APPLIED, updates=updates))
            overlay.discard(item_id)

        if report.all_succeeded:
            overlay.discard_all()
        logger.info(
            "commit finished: %d applied, %d failed, %d skipped",
            len(report.succeeded), len(report.failed), len(report.skipped),
        )
        return report
