from decimal import Decimal
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from storefront.db import Base

MONEY_TYPE = Numeric(12, 2)


def _new_id() -> str:
    return uuid4().hex


class MenuItem(Base):
    __tablename__ = "menu_item"
    __table_args__ = (
        CheckConstraint("base_price >= 0", name="ck_menu_item_base_price"),
        CheckConstraint("discount_price IS NULL OR discount_price >= 0", name="ck_menu_item_discount_price"),
        CheckConstraint("stock_quantity IS NULL OR stock_quantity >= 0", name="ck_menu_item_stock_quantity"),
        CheckConstraint("low_stock_threshold >= 0", name="ck_menu_item_low_stock_threshold"),
        Index("ix_menu_item_category", "category"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    base_price: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False)
    discount_price: Mapped[Decimal | None] = mapped_column(MONEY_TYPE)
    is_on_discount: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    track_inventory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    stock_quantity: Mapped[int | None] = mapped_column(Integer)
    low_stock_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True))


class MenuItemVariation(Base):
    __tablename__ = "menu_item_variation"

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=_new_id)
    menu_item_id: Mapped[str] = mapped_column(
        Text, ForeignKey("menu_item.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    price_delta: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False, default=Decimal("0"))
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class MenuItemAddOn(Base):
    __tablename__ = "menu_item_add_on"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_menu_item_add_on_price"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=_new_id)
    menu_item_id: Mapped[str] = mapped_column(
        Text, ForeignKey("menu_item.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False, default=Decimal("0"))
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
