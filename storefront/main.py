from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from functools import lru_cache
from typing import Any, Literal, Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from storefront.cart import CartLedger, CartLine
from storefront.catalog import CatalogItem, group_by_category, search_items
from storefront.config import settings
from storefront.context import StorefrontContext
from storefront.db import SessionLocal
from storefront.errors import CartLineNotFound, CommitInProgress, ItemNotFound, OutOfStock
from storefront.inventory import MAX_QUANTITY, resolve_availability, stock_notice
from storefront.models import MenuItem, MenuItemAddOn, MenuItemVariation
from storefront.pricing import discount_display, format_money, quantize
from storefront.reconcile import CommitReport
from storefront.store import SqlRecordStore, load_catalog

logging.basicConfig(level=settings.log_level)

app = FastAPI(title="Storefront")


class Meta(BaseModel):
    request_id: str
    warnings: list[str]


class Envelope(BaseModel):
    data: Any
    meta: Meta


def _meta(request_id: Optional[str] = None, warnings: Optional[list[str]] = None) -> dict:
    return {
        "request_id": request_id or f"req_{uuid4().hex}",
        "warnings": warnings or [],
    }


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def get_context() -> StorefrontContext:
    return StorefrontContext(SqlRecordStore(SessionLocal))


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _money(amount: Optional[Decimal]) -> Optional[str]:
    if amount is None:
        return None
    return str(quantize(amount))


def _item_data(item: CatalogItem) -> dict:
    display = discount_display(item)
    return {
        "menu_item_id": item.id,
        "name": item.name,
        "category": item.category,
        "description": item.description,
        "base_price": _money(item.base_price),
        "effective_price": _money(display.effective_price),
        "price_label": format_money(display.effective_price, settings.currency_symbol),
        "discounted_price": _money(display.discounted_price),
        "show_discount": display.show_discount,
        "track_inventory": item.track_inventory,
        "stock_quantity": item.stock_quantity,
        "low_stock_threshold": item.low_stock_threshold,
        "available": item.available,
        "stock_notice": stock_notice(item),
        "variations": [
            {"variation_id": v.id, "name": v.name, "price_delta": _money(v.price_delta)}
            for v in item.variations
        ],
        "add_ons": [
            {"add_on_id": a.id, "name": a.name, "category": a.category, "price": _money(a.price)}
            for a in item.add_ons
        ],
    }


def _line_data(line: CartLine) -> dict:
    return {
        "line_id": line.id,
        "menu_item_id": line.menu_item_id,
        "name": line.name,
        "quantity": line.quantity,
        "variation": (
            {"variation_id": line.selected_variation.id, "name": line.selected_variation.name}
            if line.selected_variation
            else None
        ),
        "add_ons": [
            {"add_on_id": a.id, "name": a.name, "quantity": a.quantity, "price": _money(a.price)}
            for a in line.selected_add_ons
        ],
        "add_ons_label": line.add_ons_label(),
        "unit_price": _money(line.total_price),
        "line_total": _money(line.line_total),
    }


def _cart_data(cart_id: str, cart: CartLedger) -> dict:
    return {
        "cart_id": cart_id,
        "lines": [_line_data(line) for line in cart.lines],
        "total_price": _money(cart.total_price()),
        "total_label": format_money(cart.total_price(), settings.currency_symbol),
        "total_item_count": cart.total_item_count(),
    }


def _report_data(report: CommitReport) -> dict:
    return {
        "succeeded": report.succeeded,
        "failed": [
            {"menu_item_id": r.item_id, "error": str(r.error)}
            for r in report.results
            if r.item_id in report.failed
        ],
        "skipped": report.skipped,
        "all_succeeded": report.all_succeeded,
    }


@app.get("/", tags=["root"])
def read_root() -> dict:
    return {"status": "ok"}


@app.get("/health", tags=["health"])
def health_check() -> dict:
    return {"status": "healthy"}


class VariationCreate(BaseModel):
    name: str
    price_delta: Decimal = Decimal("0")


class AddOnCreate(BaseModel):
    name: str
    category: str = ""
    price: Decimal = Field(default=Decimal("0"), ge=0)


class MenuItemCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'name': 'Siomai', 'category': 'dim-sum', 'base_price': '120.00', 'track_inventory': True, 'stock_quantity': 40, 'low_stock_threshold': 5, 'variations': [{'name': 'Large', 'price_delta': '30.00'}], 'add_ons': [{'name': 'Chili Oil', 'category': 'sauce', 'price': '10.00'}]}}}
    name: str
    category: str
    description: Optional[str] = None
    base_price: Decimal = Field(ge=0)
    discount_price: Optional[Decimal] = Field(default=None, ge=0)
    is_on_discount: bool = False
    track_inventory: bool = False
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    low_stock_threshold: int = Field(default=0, ge=0)
    available: bool = True
    variations: list[VariationCreate] = []
    add_ons: list[AddOnCreate] = []


@app.post("/api/v1/menu-items", tags=["Menu Items"])
def create_menu_item(payload: MenuItemCreate, db: Session = Depends(get_db)) -> dict:
    item = MenuItem(
        name=payload.name,
        category=payload.category,
        description=payload.description,
        base_price=payload.base_price,
        discount_price=payload.discount_price,
        is_on_discount=payload.is_on_discount,
        track_inventory=payload.track_inventory,
        stock_quantity=payload.stock_quantity if payload.track_inventory else None,
        low_stock_threshold=payload.low_stock_threshold,
        available=payload.available,
        created_at=_now(),
    )
    db.add(item)
    db.flush()
    for index, variation in enumerate(payload.variations):
        db.add(
            MenuItemVariation(
                menu_item_id=item.id,
                name=variation.name,
                price_delta=variation.price_delta,
                sort_order=index,
            )
        )
    for index, add_on in enumerate(payload.add_ons):
        db.add(
            MenuItemAddOn(
                menu_item_id=item.id,
                name=add_on.name,
                category=add_on.category,
                price=add_on.price,
                sort_order=index,
            )
        )
    db.commit()
    created = next(i for i in load_catalog(db) if i.id == item.id)
    return {"data": _item_data(created), "meta": _meta()}


@app.get("/api/v1/menu-items/{menu_item_id}", tags=["Menu Items"])
def get_menu_item(menu_item_id: str, db: Session = Depends(get_db)) -> dict:
    if db.get(MenuItem, menu_item_id) is None:
        raise HTTPException(status_code=404, detail="menu item not found")
    item = next(i for i in load_catalog(db) if i.id == menu_item_id)
    return {"data": _item_data(item), "meta": _meta()}


@app.get("/api/v1/menu-items", tags=["Menu Items"])
def list_menu_items(
    category: Optional[str] = Query(default=None),
    available: Optional[bool] = Query(default=None),
    q: Optional[str] = Query(default=None),
    grouped: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> dict:
    items = search_items(load_catalog(db), q)
    if category is not None:
        items = [item for item in items if item.category == category]
    if available is not None:
        items = [item for item in items if item.available == available]
    if grouped:
        data: Any = {
            name: [_item_data(item) for item in members]
            for name, members in group_by_category(items).items()
        }
    else:
        data = [_item_data(item) for item in items]
    return {"data": data, "meta": _meta()}


def _get_cart(context: StorefrontContext, cart_id: str) -> CartLedger:
    cart = context.cart(cart_id)
    if cart is None:
        raise HTTPException(status_code=404, detail="cart not found")
    return cart


@app.post("/api/v1/carts", tags=["Carts"])
def create_cart(context: StorefrontContext = Depends(get_context)) -> dict:
    cart_id = context.open_cart()
    return {"data": _cart_data(cart_id, context.carts[cart_id]), "meta": _meta()}


@app.get("/api/v1/carts/{cart_id}", tags=["Carts"])
def get_cart(cart_id: str, context: StorefrontContext = Depends(get_context)) -> dict:
    cart = _get_cart(context, cart_id)
    return {"data": _cart_data(cart_id, cart), "meta": _meta()}


class CartLineCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'menu_item_id': 'a1b2c3', 'quantity': 1, 'variation_id': None, 'add_on_ids': ['chili', 'chili']}}}
    menu_item_id: str
    quantity: int = Field(default=1, ge=1)
    variation_id: Optional[str] = None
    add_on_ids: list[str] = []


class CartLineUpdate(BaseModel):
    quantity: int


@app.post("/api/v1/carts/{cart_id}/lines", tags=["Carts"])
def add_cart_line(
    cart_id: str,
    payload: CartLineCreate,
    context: StorefrontContext = Depends(get_context),
) -> dict:
    cart = _get_cart(context, cart_id)
    try:
        item = context.catalog_item(payload.menu_item_id)
    except ItemNotFound:
        raise HTTPException(status_code=404, detail="menu item not found")
    if not item.available:
        raise HTTPException(status_code=409, detail="menu item is currently unavailable")

    variation = None
    if payload.variation_id is not None:
        variation = item.variation(payload.variation_id)
        if variation is None:
            raise HTTPException(status_code=400, detail="invalid variation_id")
    add_ons = []
    for add_on_id in payload.add_on_ids:
        add_on = item.add_on(add_on_id)
        if add_on is None:
            raise HTTPException(status_code=400, detail="invalid add_on_id")
        add_ons.append(add_on)

    try:
        cart.add(item, payload.quantity, variation, add_ons)
    except OutOfStock as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return {"data": _cart_data(cart_id, cart), "meta": _meta()}


@app.patch("/api/v1/carts/{cart_id}/lines/{line_id}", tags=["Carts"])
def update_cart_line(
    cart_id: str,
    line_id: str,
    payload: CartLineUpdate,
    context: StorefrontContext = Depends(get_context),
) -> dict:
    cart = _get_cart(context, cart_id)
    try:
        cart.update_quantity(line_id, payload.quantity)
    except CartLineNotFound:
        raise HTTPException(status_code=404, detail="cart line not found")
    except OutOfStock as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return {"data": _cart_data(cart_id, cart), "meta": _meta()}


@app.delete("/api/v1/carts/{cart_id}/lines/{line_id}", tags=["Carts"])
def remove_cart_line(
    cart_id: str, line_id: str, context: StorefrontContext = Depends(get_context)
) -> dict:
    cart = _get_cart(context, cart_id)
    cart.remove(line_id)
    return {"data": _cart_data(cart_id, cart), "meta": _meta()}


@app.delete("/api/v1/carts/{cart_id}/lines", tags=["Carts"])
def clear_cart(cart_id: str, context: StorefrontContext = Depends(get_context)) -> dict:
    cart = _get_cart(context, cart_id)
    cart.clear()
    return {"data": _cart_data(cart_id, cart), "meta": _meta()}


def _inventory_row(context: StorefrontContext, item_id: str) -> dict:
    overlay = context.overlay
    effective = overlay.effective_item(item_id)
    edit = overlay.pending_edit(item_id)
    adjustment = overlay.adjustment(item_id)
    return {
        "item": _item_data(effective),
        "availability": resolve_availability(effective).model_dump(),
        "pending": {
            key: (_money(value) if isinstance(value, Decimal) else value)
            for key, value in (edit.changes() if edit else {}).items()
        },
        "adjustment": adjustment.model_dump(),
        "modified": overlay.has_pending_changes(item_id),
        "processing": context.committer.processing_id == item_id,
    }


def _inventory_meta(context: StorefrontContext) -> dict:
    meta = _meta()
    meta["modified_count"] = context.overlay.modified_count()
    meta["commit_in_progress"] = context.committer.in_progress
    return meta


class InventoryPatch(BaseModel):
    model_config = {"json_schema_extra": {"example": {'track_inventory': True, 'stock_quantity': 12, 'low_stock_threshold': 3}}}
    track_inventory: Optional[bool] = None
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    low_stock_threshold: Optional[int] = Field(default=None, ge=0)
    base_price: Optional[Decimal] = Field(default=None, ge=0)
    available: Optional[bool] = None


class StockStep(BaseModel):
    delta: int = Field(ge=-MAX_QUANTITY, le=MAX_QUANTITY)


class AdjustmentSet(BaseModel):
    model_config = {"json_schema_extra": {"example": {'kind': 'in', 'quantity': '12'}}}
    kind: Literal["in", "out"]
    quantity: str


@app.get("/api/v1/inventory", tags=["Inventory"])
def list_inventory(
    q: Optional[str] = Query(default=None),
    context: StorefrontContext = Depends(get_context),
) -> dict:
    items = search_items(context.refresh_catalog(), q)
    data = [_inventory_row(context, item.id) for item in items]
    return {"data": data, "meta": _inventory_meta(context)}


@app.patch("/api/v1/inventory/{menu_item_id}", tags=["Inventory"])
def override_inventory_fields(
    menu_item_id: str,
    payload: InventoryPatch,
    context: StorefrontContext = Depends(get_context),
) -> dict:
    context.refresh_catalog()
    try:
        context.overlay.set_field_override(menu_item_id, payload.model_dump(exclude_unset=True))
    except ItemNotFound:
        raise HTTPException(status_code=404, detail="menu item not found")
    return {"data": _inventory_row(context, menu_item_id), "meta": _inventory_meta(context)}


@app.post("/api/v1/inventory/{menu_item_id}/adjust", tags=["Inventory"])
def step_inventory_stock(
    menu_item_id: str,
    payload: StockStep,
    context: StorefrontContext = Depends(get_context),
) -> dict:
    context.refresh_catalog()
    try:
        context.overlay.adjust_stock(menu_item_id, payload.delta)
    except ItemNotFound:
        raise HTTPException(status_code=404, detail="menu item not found")
    return {"data": _inventory_row(context, menu_item_id), "meta": _inventory_meta(context)}


@app.put("/api/v1/inventory/{menu_item_id}/adjustment", tags=["Inventory"])
def set_inventory_adjustment(
    menu_item_id: str,
    payload: AdjustmentSet,
    context: StorefrontContext = Depends(get_context),
) -> dict:
    context.refresh_catalog()
    try:
        context.overlay.set_adjustment(menu_item_id, payload.kind, payload.quantity)
    except ItemNotFound:
        raise HTTPException(status_code=404, detail="menu item not found")
    return {"data": _inventory_row(context, menu_item_id), "meta": _inventory_meta(context)}


@app.delete("/api/v1/inventory/pending", tags=["Inventory"])
def discard_inventory_changes(context: StorefrontContext = Depends(get_context)) -> dict:
    context.overlay.discard_all()
    return {"data": {"modified_count": 0}, "meta": _inventory_meta(context)}


@app.post("/api/v1/inventory/commit", tags=["Inventory"])
def commit_inventory(context: StorefrontContext = Depends(get_context)) -> dict:
    try:
        report = context.commit_inventory()
    except CommitInProgress:
        raise HTTPException(status_code=409, detail="a commit is already running")
    warnings = []
    if not report.all_succeeded:
        warnings.append(f"{len(report.failed)} item(s) failed to save; edits kept for retry")
    return {"data": _report_data(report), "meta": _meta(warnings=warnings)}
