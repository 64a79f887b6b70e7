import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from barpos.errors import Conflict, InvalidState, NotFound
from barpos.models.core import Order, OrderStatus, PaymentMethod, Shift, ShiftBartender, ShiftStatus, Staff
from barpos.util.audit import log_audit
from barpos.util.money import to_dec

log = logging.getLogger(__name__)


def active_shift(db: Session) -> Shift | None:
    return (
        db.query(Shift)
          .filter(Shift.status == ShiftStatus.OPEN)
          .order_by(Shift.opened_at.desc())
          .first()
    )


def get_shift(db: Session, shift_id: str, *, lock: bool = False) -> Shift:
    s = db.get(Shift, shift_id, with_for_update=True if lock else None)
    if not s:
        raise NotFound("shift not found")
    return s


def shift_bartenders(db: Session, shift_id: str) -> list[Staff]:
    return (
        db.query(Staff)
          .join(ShiftBartender, ShiftBartender.staff_id == Staff.id)
          .filter(ShiftBartender.shift_id == shift_id)
          .order_by(Staff.name)
          .all()
    )


def open_shift(db: Session, *, opened_by: str | None, bartenders: list[str] | None = None,
               opening_note: str | None = None, opening_cash_amount=None) -> Shift:
    if active_shift(db) is not None:
        raise Conflict("a shift is already open")

    s = Shift(
        status=ShiftStatus.OPEN,
        opened_at=datetime.now(timezone.utc),
        opened_by_staff_id=opened_by,
        opening_note=opening_note,
        opening_cash_amount=to_dec(opening_cash_amount) if opening_cash_amount is not None else None,
    )
    db.add(s)
    db.flush()
    for staff_id in dict.fromkeys(bartenders or []):
        if not db.get(Staff, staff_id):
            raise NotFound(f"staff {staff_id} not found")
        db.add(ShiftBartender(shift_id=s.id, staff_id=staff_id))
    log_audit(db, opened_by, "shift", s.id, "OPEN", after={"opening_cash_amount": opening_cash_amount})
    db.flush()
    log.info("shift %s opened", s.id)
    return s


def compute_summary(orders: list[Order]) -> dict:
    completed = [o for o in orders if o.status == OrderStatus.COMPLETED]
    cancelled = [o for o in orders if o.status == OrderStatus.CANCELLED]

    def net(o: Order) -> Decimal:
        return to_dec(o.net_amount if o.net_amount is not None else o.total_amount)

    gross = sum((to_dec(o.total_amount) for o in orders), Decimal(0))
    discount = sum((to_dec(o.discount_amount) for o in orders), Decimal(0))
    net_total = sum((net(o) for o in orders), Decimal(0))
    completed_net = sum((net(o) for o in completed), Decimal(0))

    payments = {m.value: Decimal(0) for m in PaymentMethod}
    for o in completed:
        if o.payment_method is not None:
            payments[o.payment_method.value] += net(o)

    return {
        "orders": {"total": len(orders), "completed": len(completed), "cancelled": len(cancelled)},
        "revenue": {"gross": float(gross), "discount": float(discount), "net": float(net_total)},
        "avg_check_net": float(completed_net / len(completed)) if completed else 0.0,
        "guests": sum(o.guests_count or 0 for o in completed),
        "payments": {k: float(v) for k, v in payments.items()},
    }


def shift_orders(db: Session, shift_id: str) -> list[Order]:
    return db.query(Order).filter(Order.shift_id == shift_id).order_by(Order.created_at).all()


def close_shift(db: Session, shift: Shift, *, closed_by: str | None, closing_note: str | None = None,
                closing_cash_amount=None) -> Shift:
    if shift.status != ShiftStatus.OPEN:
        raise InvalidState("shift is already closed")
    shift.summary = compute_summary(shift_orders(db, shift.id))
    shift.status = ShiftStatus.CLOSED
    shift.closed_at = datetime.now(timezone.utc)
    shift.closing_note = closing_note
    shift.closing_cash_amount = to_dec(closing_cash_amount) if closing_cash_amount is not None else None
    log_audit(db, closed_by, "shift", shift.id, "CLOSE",
              after={"closing_cash_amount": closing_cash_amount, "summary": shift.summary})
    db.flush()
    log.info("shift %s closed: %s", shift.id, shift.summary["orders"])
    return shift
