"""Order stock ledger.

Keeps product stock consistent with the line items of orders while the order
is active. Simple products carry their own ``stock`` and are deducted by
``quantity * unit_size``; composite products have no authoritative stock and
propagate every change to their ingredient products through the per-portion
ingredient quantity.

Nothing here commits. Callers run each operation inside the request
transaction; every product row whose stock is written is first read with
``SELECT ... FOR UPDATE`` in ascending id order, so concurrent sales of the same
product serialise instead of losing updates.
"""
import logging
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from barpos.errors import BarPosError, InsufficientStock, InvalidIndex, InvalidState, NotFound
from barpos.models.core import Guest, Order, OrderStatus, PaymentMethod, Product, ProductIngredient
from barpos.util.money import floor_div, json_number, q2, q3, to_dec

log = logging.getLogger(__name__)

EMPTY_ORDER_COMMENT = "Cancelled automatically: the last item was removed"

TERMINAL_STATUSES = (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


# ---------- quantity maps ----------

def item_quantities(items) -> dict[str, Decimal]:
    qty: dict[str, Decimal] = defaultdict(Decimal)
    for it in items or []:
        qty[str(it["product_id"])] += to_dec(it["quantity"])
    return dict(qty)


def items_delta(old_items, new_items) -> dict[str, Decimal]:
    """Net quantity change per product (new - old); zero deltas are dropped."""
    old = item_quantities(old_items)
    new = item_quantities(new_items)
    deltas = {}
    for pid in sorted(set(old) | set(new)):
        d = new.get(pid, Decimal(0)) - old.get(pid, Decimal(0))
        if d != 0:
            deltas[pid] = d
    return deltas


def order_gross(items) -> Decimal:
    return sum((to_dec(it["price"]) * to_dec(it["quantity"]) for it in items or []), Decimal(0))


# ---------- product / ingredient reads ----------

def ingredient_links(db: Session, composite_ids) -> dict[str, list[ProductIngredient]]:
    ids = list(composite_ids)
    if not ids:
        return {}
    rows = (
        db.query(ProductIngredient)
          .filter(ProductIngredient.composite_product_id.in_(ids))
          .order_by(ProductIngredient.created_at, ProductIngredient.id)
          .all()
    )
    out: dict[str, list[ProductIngredient]] = defaultdict(list)
    for link in rows:
        out[link.composite_product_id].append(link)
    return dict(out)


def lock_products(db: Session, ids) -> dict[str, Product]:
    """Read product rows FOR UPDATE, always in ascending id order."""
    ids = sorted(set(ids))
    if not ids:
        return {}
    rows = (
        db.query(Product)
          .filter(Product.id.in_(ids))
          .order_by(Product.id)
          .with_for_update()
          .populate_existing()
          .all()
    )
    return {p.id: p for p in rows}


def _changes_for(product: Product, delta: Decimal, links: list[ProductIngredient], into: dict):
    if product.is_composite:
        for link in links:
            into[link.ingredient_product_id] += delta * to_dec(link.quantity)
    else:
        into[product.id] += delta * to_dec(product.unit_size)


def stock_changes(db: Session, deltas: dict[str, Decimal]) -> dict[str, Decimal]:
    """Translate per-product deltas into signed deductions per stock row.

    A positive value is taken out of stock, a negative one is put back.
    Unknown products are an error when stock would be taken; when stock would
    be returned for a product that no longer exists the change is skipped.
    """
    products = {p.id: p for p in db.query(Product).filter(Product.id.in_(list(deltas))).all()}
    links = ingredient_links(db, [pid for pid, p in products.items() if p.is_composite])
    changes: dict[str, Decimal] = defaultdict(Decimal)
    for pid, delta in deltas.items():
        product = products.get(pid)
        if product is None:
            if delta > 0:
                raise NotFound(f"product {pid} not found")
            log.warning("product %s no longer exists, %s unit(s) not returned to stock", pid, -delta)
            continue
        _changes_for(product, delta, links.get(pid, []), changes)
    return {pid: c for pid, c in changes.items() if c != 0}


def ensure_covered(locked: dict[str, Product], changes: dict[str, Decimal]):
    for pid in sorted(changes):
        need = changes[pid]
        row = locked.get(pid)
        if need <= 0 or row is None:
            continue
        have = to_dec(row.stock)
        if have < need:
            log.info("rejected: %s needs %s %s, %s on hand", row.name, need, row.unit, have)
            raise InsufficientStock(row.name, row.id, available=have, requested=need, unit=row.unit)


def _write_changes(locked: dict[str, Product], changes: dict[str, Decimal]):
    for pid in sorted(changes):
        row = locked.get(pid)
        if row is None:
            log.warning("stock row %s missing, change %s skipped", pid, changes[pid])
            continue
        before = to_dec(row.stock)
        row.stock = q3(before - changes[pid])
        log.debug("stock %s (%s): %s -> %s", row.name, pid, before, row.stock)


def apply_items_delta(db: Session, old_items, new_items, *, check: bool = False) -> dict[str, Decimal]:
    """Move stock from one item list to another.

    ``old_items`` empty means creation, ``new_items`` empty means the items are
    given back. With ``check`` every stock row must cover its total positive
    deduction before anything is written. Returns the applied changes.
    """
    deltas = items_delta(old_items, new_items)
    if not deltas:
        return {}
    changes = stock_changes(db, deltas)
    locked = lock_products(db, changes)
    if check:
        ensure_covered(locked, changes)
    _write_changes(locked, changes)
    db.flush()
    return changes


# ---------- availability ----------

def portions_from(links: list[ProductIngredient], stock_rows: dict[str, Product]) -> int:
    portions = []
    for link in links:
        per_portion = to_dec(link.quantity)
        row = stock_rows.get(link.ingredient_product_id)
        # links with no positive quantity cannot limit anything
        if row is None or per_portion <= 0:
            continue
        portions.append(floor_div(row.stock, per_portion))
    return min(portions) if portions else 0


def available_portions(db: Session, product: Product) -> int:
    """How many portions of a composite product the current stock can make."""
    links = ingredient_links(db, [product.id]).get(product.id, [])
    ids = [l.ingredient_product_id for l in links]
    rows = {p.id: p for p in db.query(Product).filter(Product.id.in_(ids)).all()} if ids else {}
    return portions_from(links, rows)


def available_portions_map(db: Session, products) -> dict[str, int]:
    composites = [p.id for p in products if p.is_composite]
    links = ingredient_links(db, composites)
    ids = {l.ingredient_product_id for group in links.values() for l in group}
    rows = {p.id: p for p in db.query(Product).filter(Product.id.in_(list(ids))).all()} if ids else {}
    return {pid: portions_from(links.get(pid, []), rows) for pid in composites}


def ensure_available(product: Product, quantity: Decimal, links, locked: dict[str, Product]):
    if product.is_composite:
        available = portions_from(links, locked)
        if available < quantity:
            log.info("rejected: %s x%s, %s portion(s) available", product.name, quantity, available)
            raise InsufficientStock(product.name, product.id, available=available, requested=quantity, unit="portions")
    else:
        row = locked.get(product.id, product)
        need = quantity * to_dec(product.unit_size)
        have = to_dec(row.stock)
        if have < need:
            log.info("rejected: %s x%s needs %s %s, %s on hand", product.name, quantity, need, product.unit, have)
            raise InsufficientStock(product.name, product.id, available=have, requested=need, unit=product.unit)


# ---------- totals ----------

def recalc_totals(db: Session, order: Order) -> Order:
    # closed orders keep the totals they were closed with
    if order.status != OrderStatus.ACTIVE:
        return order
    gross = q2(order_gross(order.order_items))
    percent = to_dec(order.discount_percent or 0)
    if percent <= 0 and order.guest_id:
        guest = db.get(Guest, order.guest_id)
        percent = to_dec(guest.discount_percent or 0) if guest else Decimal(0)
    percent = min(max(percent, Decimal(0)), Decimal(100))
    discount = q2(gross * percent / 100)
    order.total_amount = gross
    order.discount_amount = discount
    order.net_amount = q2(gross - discount)
    return order


# ---------- line items ----------

def snapshot_items(db: Session, items, previous=None) -> list[dict]:
    """Build stored line items, snapshotting name and price.

    Products already on the order keep the name/price captured when they were
    first added; new products take the current catalog values.
    """
    known = {}
    for it in previous or []:
        known.setdefault(str(it["product_id"]), it)
    ids = [str(it["product_id"]) for it in items if str(it["product_id"]) not in known]
    products = {p.id: p for p in db.query(Product).filter(Product.id.in_(ids)).all()} if ids else {}

    lines = []
    for it in items:
        pid = str(it["product_id"])
        qty = to_dec(it["quantity"])
        if qty <= 0:
            raise BarPosError(f"quantity for product {pid} must be positive")
        if pid in known:
            name, price = known[pid]["product_name"], known[pid]["price"]
        else:
            p = products.get(pid)
            if p is None:
                raise NotFound(f"product {pid} not found")
            name, price = p.name, json_number(q2(p.price))
        lines.append({"product_id": pid, "product_name": name, "quantity": json_number(qty), "price": price})
    return lines


def _require_active(order: Order, action: str):
    if order.status != OrderStatus.ACTIVE:
        log.info("rejected: cannot %s order %s in status %s", action, order.id, order.status.value)
        raise InvalidState(f"cannot {action} an order that is {order.status.value}")


def add_item_to_order(db: Session, order: Order, product_id: str, quantity=1) -> Order:
    _require_active(order, "add items to")
    qty = to_dec(quantity)
    if qty <= 0:
        raise BarPosError("quantity must be positive")
    product = db.get(Product, product_id)
    if product is None:
        raise NotFound(f"product {product_id} not found")

    links = ingredient_links(db, [product.id]).get(product.id, []) if product.is_composite else []
    changes: dict[str, Decimal] = defaultdict(Decimal)
    _changes_for(product, qty, links, changes)
    lock_ids = set(changes) | {l.ingredient_product_id for l in links}
    if not product.is_composite:
        lock_ids.add(product.id)
    locked = lock_products(db, lock_ids)
    ensure_available(product, qty, links, locked)

    items = [dict(it) for it in order.order_items or []]
    for it in items:
        if str(it["product_id"]) == product.id:
            it["quantity"] = json_number(to_dec(it["quantity"]) + qty)
            break
    else:
        items.append({
            "product_id": product.id,
            "product_name": product.name,
            "quantity": json_number(qty),
            "price": json_number(q2(product.price)),
        })

    _write_changes(locked, changes)
    order.order_items = items
    recalc_totals(db, order)
    db.flush()
    log.info("order %s: +%s x %s", order.id, qty, product.name)
    return order


def _cancel_emptied(order: Order):
    # an order without items cannot stay active
    order.status = OrderStatus.CANCELLED
    order.comment = f"{order.comment}\n{EMPTY_ORDER_COMMENT}" if order.comment else EMPTY_ORDER_COMMENT
    order.closed_at = datetime.now(timezone.utc)
    order.total_amount = Decimal(0)
    order.discount_amount = Decimal(0)
    order.net_amount = Decimal(0)
    log.info("order %s: no items left, order cancelled", order.id)


def remove_item_from_order(db: Session, order: Order, item_index: int) -> dict:
    _require_active(order, "remove items from")
    items = [dict(it) for it in order.order_items or []]
    if item_index < 0 or item_index >= len(items):
        raise InvalidIndex(f"item index {item_index} is out of range (order has {len(items)} items)")

    removed = items.pop(item_index)
    apply_items_delta(db, [removed], [])
    order.order_items = items
    if not items:
        _cancel_emptied(order)
    else:
        recalc_totals(db, order)
    db.flush()
    return removed


def replace_items(db: Session, order: Order, new_items) -> Order:
    _require_active(order, "edit items of")
    lines = snapshot_items(db, new_items, previous=order.order_items)
    apply_items_delta(db, order.order_items or [], lines, check=True)
    order.order_items = lines
    if not lines:
        _cancel_emptied(order)
    else:
        recalc_totals(db, order)
    db.flush()
    return order


def close_order(db: Session, order: Order, outcome: OrderStatus, payment_method: PaymentMethod | None = None,
                staff_id: str | None = None) -> Order:
    """Move an active order to a terminal status. Stock is not touched."""
    _require_active(order, "close")
    if outcome not in TERMINAL_STATUSES:
        raise InvalidState(f"cannot close an order as {outcome.value}")

    recalc_totals(db, order)
    order.status = outcome
    order.closed_at = datetime.now(timezone.utc)
    order.closed_by_staff_id = staff_id
    if outcome == OrderStatus.COMPLETED:
        order.payment_method = payment_method
        if order.guest_id:
            guest = db.get(Guest, order.guest_id, with_for_update=True)
            if guest is not None:
                guest.visit_count = (guest.visit_count or 0) + 1
                guest.total_orders_amount = q2(to_dec(guest.total_orders_amount) + to_dec(order.total_amount))
                guest.average_check = q2(to_dec(guest.total_orders_amount) / guest.visit_count)
    db.flush()
    log.info("order %s %s (total %s)", order.id, outcome.value, order.total_amount)
    return order
