import logging
from datetime import datetime, time, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

from sqlalchemy import func
from sqlalchemy.orm import Session

from barpos.config import settings
from barpos.errors import InvalidState, NoActiveShift, NotFound, BarPosError
from barpos.models.core import Guest, Order, OrderStatus, PaymentMethod, Product, WriteOff
from barpos.services import ledger
from barpos.services.shifts import active_shift
from barpos.util.audit import log_audit
from barpos.util.money import to_dec

log = logging.getLogger(__name__)


def get_order(db: Session, order_id: str, *, lock: bool = False) -> Order:
    o = db.get(Order, order_id, with_for_update=True if lock else None)
    if not o:
        raise NotFound("order not found")
    return o


# ---------- guests ----------

def _is_placeholder(name: str) -> bool:
    low = name.lower()
    return any(word in low for word in settings.GUEST_PLACEHOLDER_NAMES)


def _day_start_utc() -> datetime:
    tz = ZoneInfo(settings.BUSINESS_TZ)
    local_midnight = datetime.combine(datetime.now(tz).date(), time.min, tzinfo=tz)
    return local_midnight.astimezone(timezone.utc)


def resolve_guest(db: Session, guest_name: str | None, guest_id: str | None) -> tuple[Guest | None, str | None]:
    """Pick the guest an order belongs to and the name shown on the order.

    Without GUEST_AUTO_ASSIGN an empty name leaves the order anonymous. With it,
    empty and location-like names ("стол", "бар", ...) go to the shared default
    guest and get a per-day sequence number.
    """
    name = (guest_name or "").strip()

    if guest_id:
        guest = db.get(Guest, guest_id)
        if not guest:
            raise NotFound("guest not found")
        return guest, name or guest.name

    if settings.GUEST_AUTO_ASSIGN and (not name or _is_placeholder(name)):
        guest = db.query(Guest).filter(Guest.name == settings.DEFAULT_GUEST_NAME).first()
        if not guest:
            guest = Guest(name=settings.DEFAULT_GUEST_NAME, guest_type="guest")
            db.add(guest)
            db.flush()
        placeholders = {w.lower() for w in settings.GUEST_PLACEHOLDER_NAMES}
        if not name or name.lower() in placeholders:
            today = (
                db.query(func.count(Order.id))
                  .filter(Order.guest_id == guest.id, Order.created_at >= _day_start_utc())
                  .scalar() or 0
            )
            name = f"{settings.DEFAULT_GUEST_NAME} {today + 1}"
        return guest, name

    if not name:
        return None, None

    guest = db.query(Guest).filter(Guest.name == name).first()
    if not guest:
        guest = Guest(name=name, guest_type="guest")
        db.add(guest)
        db.flush()
        log.info("created guest %s (%s)", guest.name, guest.id)
    return guest, name


# ---------- orders ----------

def create_order(db: Session, *, guest_name: str | None, guest_id: str | None, items: list[dict],
                 comment: str | None = None, guests_count: int = 1) -> Order:
    shift = active_shift(db)
    if shift is None and settings.REQUIRE_OPEN_SHIFT:
        raise NoActiveShift("no open shift: open a shift before creating orders")

    if not items:
        raise BarPosError("an order needs at least one item")

    guest, display_name = resolve_guest(db, guest_name, guest_id)
    lines = ledger.snapshot_items(db, items)

    o = Order(
        guest_name=display_name,
        guest_id=guest.id if guest else None,
        order_items=[],
        status=OrderStatus.ACTIVE,
        comment=comment,
        guests_count=guests_count if guests_count and guests_count > 0 else 1,
        shift_id=shift.id if shift else None,
        total_amount=Decimal(0),
        discount_percent=Decimal(0),
        discount_amount=Decimal(0),
        net_amount=Decimal(0),
    )
    db.add(o)
    db.flush()

    ledger.apply_items_delta(db, [], lines, check=True)
    o.order_items = lines
    ledger.recalc_totals(db, o)
    db.flush()
    log.info("order %s opened for %s with %d item(s)", o.id, display_name or "-", len(lines))
    return o


def update_order(db: Session, order: Order, *, items: list[dict] | None = None, comment: str | None = None,
                 guests_count: int | None = None, status: OrderStatus | None = None,
                 payment_method: PaymentMethod | None = None, staff_id: str | None = None) -> Order:
    if order.status != OrderStatus.ACTIVE:
        raise InvalidState(f"cannot edit an order that is {order.status.value}")

    if items is not None:
        ledger.replace_items(db, order, items)
    if comment is not None:
        order.comment = comment
    if guests_count is not None and guests_count > 0:
        order.guests_count = guests_count

    if status is not None and status != OrderStatus.ACTIVE:
        close_order(db, order, status, payment_method, staff_id)
    return order


def set_discount(db: Session, order: Order, percent) -> Order:
    if order.status != OrderStatus.ACTIVE:
        raise InvalidState("discounts can only be applied to an active order")
    p = min(max(to_dec(percent), Decimal(0)), Decimal(100))
    order.discount_percent = p
    ledger.recalc_totals(db, order)
    db.flush()
    return order


def close_order(db: Session, order: Order, status: OrderStatus, payment_method: PaymentMethod | None = None,
                staff_id: str | None = None) -> Order:
    before = {"status": order.status.value, "total_amount": order.total_amount}
    ledger.close_order(db, order, status, payment_method, staff_id)
    log_audit(db, staff_id, "order", order.id, status.value.upper(),
              before=before,
              after={"status": order.status.value, "total_amount": order.total_amount,
                     "payment_method": payment_method.value if payment_method else None})
    return order


def remove_item(db: Session, order: Order, item_index: int, staff_id: str | None = None) -> Order:
    removed = ledger.remove_item_from_order(db, order, item_index)
    log_audit(db, staff_id, "order", order.id, "REMOVE_ITEM", before=removed,
              after={"status": order.status.value, "items": len(order.order_items)})
    return order


# ---------- write-offs ----------

def create_write_off(db: Session, order: Order, product_id: str, quantity, reason: str | None = None,
                     staff_id: str | None = None) -> WriteOff:
    if order.status != OrderStatus.ACTIVE:
        raise InvalidState("write-offs are only allowed on active orders")
    qty = to_dec(quantity)
    if qty <= 0:
        raise BarPosError("write-off quantity must be positive")
    product = db.get(Product, product_id)
    if not product:
        raise NotFound("product not found")

    ledger.apply_items_delta(db, [], [{"product_id": product.id, "quantity": qty}])
    wo = WriteOff(order_id=order.id, product_id=product.id, quantity=qty, reason=reason)
    db.add(wo)
    db.flush()
    log_audit(db, staff_id, "write_off", wo.id, "CREATE",
              after={"order_id": order.id, "product_id": product.id, "quantity": qty, "reason": reason})
    log.info("write-off on order %s: %s x %s (%s)", order.id, qty, product.name, reason or "-")
    return wo
