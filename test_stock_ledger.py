# test_stock_ledger.py
from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.dialects import postgresql

from barpos.errors import BarPosError, InsufficientStock, InvalidIndex, InvalidState, NotFound
from barpos.models.core import Guest, OrderStatus, PaymentMethod, Product, ProductIngredient
from barpos.services import ledger
from barpos.services import orders as order_service
from barpos.services.shifts import open_shift


def _product(db, name, price=0, stock=0, unit_size=1, composite=False, unit="шт"):
    p = Product(name=name, price=Decimal(str(price)), stock=Decimal(str(stock)),
                unit_size=Decimal(str(unit_size)), unit=unit, is_composite=composite)
    db.add(p)
    db.flush()
    return p


def _link(db, composite, ingredient, qty):
    db.add(ProductIngredient(composite_product_id=composite.id, ingredient_product_id=ingredient.id,
                             quantity=Decimal(str(qty))))
    db.flush()


@pytest.fixture
def shift(db):
    return open_shift(db, opened_by=None)


@pytest.fixture
def mojito(db):
    rum = _product(db, "Rum", stock="1.0", unit="л")
    lime = _product(db, "Lime", stock=3)
    mojito = _product(db, "Mojito", price=450, composite=True)
    _link(db, mojito, rum, "0.05")
    _link(db, mojito, lime, 1)
    return mojito, rum, lime


def _total_matches_items(order):
    expected = sum((Decimal(str(it["price"])) * Decimal(str(it["quantity"])) for it in order.order_items), Decimal(0))
    return Decimal(order.total_amount) == expected


def test_mojito_portions_and_sale(db, shift, mojito):
    cocktail, rum, lime = mojito
    assert ledger.available_portions(db, cocktail) == 3

    o = order_service.create_order(db, guest_name="Anna", guest_id=None,
                                   items=[{"product_id": cocktail.id, "quantity": 2}])
    assert Decimal(rum.stock) == Decimal("0.9")
    assert Decimal(lime.stock) == Decimal("1")
    assert Decimal(o.total_amount) == Decimal("900")
    assert ledger.available_portions(db, cocktail) == 1


def test_available_portions_without_ingredients_is_zero(db):
    empty = _product(db, "Empty cocktail", price=100, composite=True)
    assert ledger.available_portions(db, empty) == 0


def test_available_portions_ignores_non_positive_links(db):
    cocktail = _product(db, "Gin tonic", price=300, composite=True)
    gin = _product(db, "Gin", stock="0.5")
    ice = _product(db, "Ice", stock=0)
    _link(db, cocktail, gin, "0.05")
    _link(db, cocktail, ice, 0)
    assert ledger.available_portions(db, cocktail) == 10


def test_two_item_example(db, shift):
    p1 = _product(db, "Beer", price=100, stock=10, unit_size="0.5", unit="л")
    p2 = _product(db, "Chips", price=50, stock=5)
    o = order_service.create_order(db, guest_name=None, guest_id=None, items=[
        {"product_id": p1.id, "quantity": 2},
        {"product_id": p2.id, "quantity": 1},
    ])
    assert Decimal(o.total_amount) == Decimal("250")
    assert Decimal(p1.stock) == Decimal("9")

    removed = ledger.remove_item_from_order(db, o, 0)
    assert removed["product_id"] == p1.id
    assert Decimal(o.total_amount) == Decimal("50")
    assert Decimal(p1.stock) == Decimal("10")
    assert o.status == OrderStatus.ACTIVE


def test_add_then_remove_restores_stock(db, shift, mojito):
    cocktail, rum, lime = mojito
    beer = _product(db, "Beer", price=100, stock=10)
    o = order_service.create_order(db, guest_name="Bob", guest_id=None,
                                   items=[{"product_id": beer.id, "quantity": 1}])

    ledger.add_item_to_order(db, o, cocktail.id, 2)
    assert Decimal(rum.stock) == Decimal("0.9")
    assert _total_matches_items(o)

    ledger.remove_item_from_order(db, o, 1)
    assert Decimal(rum.stock) == Decimal("1")
    assert Decimal(lime.stock) == Decimal("3")
    assert Decimal(beer.stock) == Decimal("9")
    assert _total_matches_items(o)


def test_add_merges_same_product_and_keeps_snapshot_price(db, shift):
    beer = _product(db, "Beer", price=100, stock=10)
    o = order_service.create_order(db, guest_name=None, guest_id=None,
                                   items=[{"product_id": beer.id, "quantity": 1}])
    beer.price = Decimal("120")
    db.flush()

    ledger.add_item_to_order(db, o, beer.id, 2)
    assert len(o.order_items) == 1
    assert o.order_items[0]["quantity"] == 3
    assert o.order_items[0]["price"] == 100
    assert Decimal(o.total_amount) == Decimal("300")
    assert Decimal(beer.stock) == Decimal("7")


def test_insufficient_stock_leaves_state_unchanged(db, shift, mojito):
    cocktail, rum, lime = mojito
    beer = _product(db, "Beer", price=100, stock=10)
    o = order_service.create_order(db, guest_name=None, guest_id=None,
                                   items=[{"product_id": beer.id, "quantity": 1}])
    items_before = [dict(it) for it in o.order_items]

    with pytest.raises(InsufficientStock) as exc:
        ledger.add_item_to_order(db, o, cocktail.id, 4)
    assert exc.value.available == 3
    assert "available 3" in str(exc.value)

    assert o.order_items == items_before
    assert Decimal(rum.stock) == Decimal("1")
    assert Decimal(lime.stock) == Decimal("3")
    assert Decimal(o.total_amount) == Decimal("100")


def test_insufficient_simple_stock_on_create(db, shift):
    beer = _product(db, "Beer", price=100, stock=1, unit_size="0.5")
    with pytest.raises(InsufficientStock) as exc:
        order_service.create_order(db, guest_name=None, guest_id=None,
                                   items=[{"product_id": beer.id, "quantity": 3}])
    assert exc.value.available == Decimal("1")
    assert Decimal(beer.stock) == Decimal("1")


def test_removing_last_item_cancels_order(db, shift):
    beer = _product(db, "Beer", price=100, stock=10)
    o = order_service.create_order(db, guest_name=None, guest_id=None,
                                   items=[{"product_id": beer.id, "quantity": 2}])
    ledger.remove_item_from_order(db, o, 0)

    assert o.status == OrderStatus.CANCELLED
    assert Decimal(o.total_amount) == 0
    assert o.order_items == []
    assert ledger.EMPTY_ORDER_COMMENT in o.comment
    assert Decimal(beer.stock) == Decimal("10")


def test_remove_with_bad_index(db, shift):
    beer = _product(db, "Beer", price=100, stock=10)
    o = order_service.create_order(db, guest_name=None, guest_id=None,
                                   items=[{"product_id": beer.id, "quantity": 1}])
    with pytest.raises(InvalidIndex):
        ledger.remove_item_from_order(db, o, 1)
    with pytest.raises(InvalidIndex):
        ledger.remove_item_from_order(db, o, -1)
    assert Decimal(beer.stock) == Decimal("9")


def test_closed_order_is_frozen_and_stock_untouched(db, shift):
    beer = _product(db, "Beer", price=100, stock=10)
    o = order_service.create_order(db, guest_name=None, guest_id=None,
                                   items=[{"product_id": beer.id, "quantity": 2}])
    ledger.close_order(db, o, OrderStatus.CANCELLED)
    assert Decimal(beer.stock) == Decimal("8")

    with pytest.raises(InvalidState):
        ledger.add_item_to_order(db, o, beer.id, 1)
    with pytest.raises(InvalidState):
        ledger.remove_item_from_order(db, o, 0)
    with pytest.raises(InvalidState):
        ledger.close_order(db, o, OrderStatus.COMPLETED)
    assert o.status == OrderStatus.CANCELLED


def test_add_unknown_product(db, shift):
    beer = _product(db, "Beer", price=100, stock=10)
    o = order_service.create_order(db, guest_name=None, guest_id=None,
                                   items=[{"product_id": beer.id, "quantity": 1}])
    with pytest.raises(NotFound):
        ledger.add_item_to_order(db, o, "no-such-product", 1)


def test_replace_items_applies_only_the_delta(db, shift, mojito):
    cocktail, rum, lime = mojito
    beer = _product(db, "Beer", price=100, stock=10)
    o = order_service.create_order(db, guest_name=None, guest_id=None, items=[
        {"product_id": beer.id, "quantity": 3},
        {"product_id": cocktail.id, "quantity": 1},
    ])
    assert Decimal(beer.stock) == Decimal("7")
    assert Decimal(lime.stock) == Decimal("2")

    ledger.replace_items(db, o, [{"product_id": beer.id, "quantity": 1}])
    assert Decimal(beer.stock) == Decimal("9")
    assert Decimal(lime.stock) == Decimal("3")
    assert Decimal(rum.stock) == Decimal("1")
    assert Decimal(o.total_amount) == Decimal("100")


def test_apply_items_delta_has_no_floor(db):
    beer = _product(db, "Beer", price=100, stock=1)
    ledger.apply_items_delta(db, [], [{"product_id": beer.id, "quantity": 3}])
    assert Decimal(beer.stock) == Decimal("-2")


def test_completion_updates_guest_stats(db, shift):
    guest = Guest(name="Regular", discount_percent=Decimal("10"))
    db.add(guest)
    db.flush()
    beer = _product(db, "Beer", price=100, stock=10)

    o = order_service.create_order(db, guest_name=None, guest_id=guest.id,
                                   items=[{"product_id": beer.id, "quantity": 2}])
    assert Decimal(o.discount_amount) == Decimal("20")
    assert Decimal(o.net_amount) == Decimal("180")

    ledger.close_order(db, o, OrderStatus.COMPLETED, PaymentMethod.CARD)
    assert guest.visit_count == 1
    assert Decimal(guest.total_orders_amount) == Decimal("200")
    assert Decimal(guest.average_check) == Decimal("200")
    assert o.payment_method == PaymentMethod.CARD
    assert Decimal(beer.stock) == Decimal("8")


def test_write_off_deducts_through_ingredients(db, shift, mojito):
    cocktail, rum, lime = mojito
    beer = _product(db, "Beer", price=100, stock=10)
    o = order_service.create_order(db, guest_name=None, guest_id=None,
                                   items=[{"product_id": beer.id, "quantity": 1}])
    wo = order_service.create_write_off(db, o, cocktail.id, 1, "spilled")
    assert wo.reason == "spilled"
    assert Decimal(rum.stock) == Decimal("0.95")
    assert Decimal(lime.stock) == Decimal("2")
    assert Decimal(o.total_amount) == Decimal("100")


def test_replace_with_no_items_cancels_order(db, shift):
    beer = _product(db, "Beer", price=100, stock=10)
    o = order_service.create_order(db, guest_name=None, guest_id=None,
                                   items=[{"product_id": beer.id, "quantity": 2}])
    ledger.replace_items(db, o, [])

    assert o.status == OrderStatus.CANCELLED
    assert o.order_items == []
    assert Decimal(o.total_amount) == 0
    assert ledger.EMPTY_ORDER_COMMENT in o.comment
    assert Decimal(beer.stock) == Decimal("10")


def test_create_order_needs_items(db, shift):
    with pytest.raises(BarPosError):
        order_service.create_order(db, guest_name="Anna", guest_id=None, items=[])


def _locking_statements(db):
    """Collect ORM statements issued with FOR UPDATE, rendered as PostgreSQL, with their bound values."""
    seen = []

    def capture(state):
        compiled = state.statement.compile(dialect=postgresql.dialect())
        if "FOR UPDATE" not in str(compiled):
            return
        values = []
        for v in list(compiled.params.values()) + list((state.parameters or {}).values()):
            values.extend(v if isinstance(v, (list, tuple)) else [v])
        seen.append((str(compiled), {str(v) for v in values}))

    event.listen(db, "do_orm_execute", capture)
    return seen, lambda: event.remove(db, "do_orm_execute", capture)


def test_composite_sale_locks_ingredient_rows_in_id_order(db, shift, mojito):
    cocktail, rum, lime = mojito
    beer = _product(db, "Beer", price=100, stock=10)
    o = order_service.create_order(db, guest_name=None, guest_id=None,
                                   items=[{"product_id": beer.id, "quantity": 1}])

    seen, stop = _locking_statements(db)
    try:
        locked = order_service.get_order(db, o.id, lock=True)
        ledger.add_item_to_order(db, locked, cocktail.id, 1)
    finally:
        stop()

    order_locks = [(sql, ids) for sql, ids in seen if 'FROM "order"' in sql]
    product_locks = [(sql, ids) for sql, ids in seen if "FROM product" in sql]
    assert len(order_locks) == 1
    assert o.id in order_locks[0][1]

    assert len(product_locks) == 1
    sql, ids = product_locks[0]
    assert "ORDER BY product.id" in sql
    assert {rum.id, lime.id} <= ids
    assert cocktail.id not in ids
    assert Decimal(rum.stock) == Decimal("0.95")
