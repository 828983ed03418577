from decimal import Decimal

import pytest

from storefront.cart import CartLedger, group_add_ons, line_key
from storefront.catalog import AddOn, CatalogItem, Variation
from storefront.errors import CartLineNotFound, OutOfStock

LARGE = Variation(id="large", name="Large", price_delta=Decimal("30.00"))
CHILI = AddOn(id="chili", name="Chili Oil", category="sauce", price=Decimal("10.00"))
EGG = AddOn(id="egg", name="Egg", category="extras", price=Decimal("15.00"))


def _item(**overrides) -> CatalogItem:
    fields = {
        "id": "siomai",
        "name": "Siomai",
        "category": "dim-sum",
        "base_price": Decimal("120.00"),
        "variations": (LARGE,),
        "add_ons": (CHILI, EGG),
    }
    fields.update(overrides)
    return CatalogItem(**fields)


def _tracked(stock: int) -> CatalogItem:
    return _item(track_inventory=True, stock_quantity=stock, low_stock_threshold=2)


def test_add_creates_line_with_frozen_unit_price() -> None:
    cart = CartLedger()
    line = cart.add(_item(), 2, LARGE, [CHILI])

    assert line.id == "siomai-large-chili-1"
    assert line.total_price == Decimal("160.00")
    assert cart.total_price() == Decimal("320.00")
    assert cart.total_item_count() == 2


def test_same_selection_merges_into_one_line() -> None:
    cart = CartLedger()
    cart.add(_item(), 1, LARGE, [EGG, CHILI])
    cart.add(_item(), 2, LARGE, [CHILI, EGG])

    assert len(cart.lines) == 1
    assert cart.lines[0].quantity == 3


def test_merge_keeps_price_from_first_add() -> None:
    cart = CartLedger()
    cart.add(_item(), 1)
    cart.add(_item(base_price=Decimal("200.00")), 1)

    assert len(cart.lines) == 1
    assert cart.lines[0].total_price == Decimal("120.00")


def test_different_add_on_counts_are_different_lines() -> None:
    cart = CartLedger()
    cart.add(_item(), 1, None, [CHILI])
    cart.add(_item(), 1, None, [CHILI, CHILI])
    cart.add(_item(), 1)

    assert [line.id for line in cart.lines] == [
        "siomai-default-chili-1",
        "siomai-default-chili-2",
        "siomai-default-none",
    ]


def test_repeated_add_on_is_grouped() -> None:
    cart = CartLedger()
    line = cart.add(_item(), 1, None, [CHILI, CHILI, CHILI])

    assert len(line.selected_add_ons) == 1
    assert line.selected_add_ons[0].quantity == 3
    assert line.total_price == Decimal("150.00")
    assert line.add_ons_label() == "Chili Oil x3"


def test_group_add_ons_keeps_first_seen_order() -> None:
    grouped = group_add_ons([EGG, CHILI, EGG])

    assert [(a.id, a.quantity) for a in grouped] == [("egg", 2), ("chili", 1)]
    assert line_key("siomai", None, grouped) == "siomai-default-chili-1,egg-2"


def test_add_rejects_over_stock_across_variants() -> None:
    cart = CartLedger()
    item = _tracked(3)
    cart.add(item, 2)
    cart.add(item, 1, LARGE)

    with pytest.raises(OutOfStock) as excinfo:
        cart.add(item, 1, None, [CHILI])

    assert str(excinfo.value) == "Only 3 units available in stock."
    assert cart.total_item_count() == 3
    assert len(cart.lines) == 2


def test_zero_stock_fails_before_insertion() -> None:
    cart = CartLedger()

    with pytest.raises(OutOfStock):
        cart.add(_tracked(0), 1)

    assert cart.lines == []


def test_untracked_item_is_not_limited() -> None:
    cart = CartLedger()
    cart.add(_item(stock_quantity=1), 50)

    assert cart.total_item_count() == 50


def test_update_quantity_checks_other_lines() -> None:
    cart = CartLedger()
    item = _tracked(5)
    plain = cart.add(item, 2)
    large = cart.add(item, 1, LARGE)

    cart.update_quantity(plain.id, 4)
    assert cart.get(plain.id).quantity == 4

    with pytest.raises(OutOfStock):
        cart.update_quantity(large.id, 2)

    assert cart.get(large.id).quantity == 1
    assert cart.total_item_count() == 5


def test_update_quantity_to_zero_removes_line() -> None:
    cart = CartLedger()
    line = cart.add(_item(), 2)

    assert cart.update_quantity(line.id, 0) is None
    assert cart.lines == []


def test_update_unknown_line_raises() -> None:
    with pytest.raises(CartLineNotFound):
        CartLedger().update_quantity("missing", 1)


def test_add_rejects_non_positive_quantity() -> None:
    with pytest.raises(ValueError):
        CartLedger().add(_item(), 0)


def test_remove_and_clear() -> None:
    cart = CartLedger()
    first = cart.add(_item(), 1)
    cart.add(_item(), 1, LARGE)

    cart.remove(first.id)
    cart.remove("not-there")
    assert len(cart.lines) == 1

    cart.clear()
    assert cart.lines == []
    assert cart.total_price() == Decimal("0")


def test_quantity_for_sums_all_variants() -> None:
    cart = CartLedger()
    cart.add(_item(), 2)
    cart.add(_item(), 3, LARGE)
    cart.add(_item(id="hakaw", name="Hakaw"), 1)

    assert cart.quantity_for("siomai") == 5
    assert cart.quantity_for("hakaw") == 1
