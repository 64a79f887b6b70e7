from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from barpos.db import get_db
from barpos.deps import require_auth
from barpos.models.core import Order, OrderStatus, PaymentMethod, Product, WriteOff
from barpos.schemas.orders import (
    AddItemIn,
    CloseOrderIn,
    DiscountIn,
    OrderIn,
    OrderOut,
    OrderUpdate,
    RemoveItemIn,
    WriteOffIn,
    WriteOffOut,
)
from barpos.services import ledger
from barpos.services import orders as order_service
from barpos.util.money import as_float

router = APIRouter(prefix="/orders", tags=["orders"])


def order_out(o: Order) -> OrderOut:
    return OrderOut(
        id=o.id,
        guest_name=o.guest_name,
        guest_id=o.guest_id,
        order_items=o.order_items or [],
        total_amount=as_float(o.total_amount) or 0.0,
        discount_percent=as_float(o.discount_percent) or 0.0,
        discount_amount=as_float(o.discount_amount) or 0.0,
        net_amount=as_float(o.net_amount) or 0.0,
        status=o.status.value,
        payment_method=o.payment_method.value if o.payment_method else None,
        comment=o.comment,
        guests_count=o.guests_count or 1,
        shift_id=o.shift_id,
        closed_by_staff_id=o.closed_by_staff_id,
        created_at=o.created_at,
        closed_at=o.closed_at,
    )


def _payment(value: str | None) -> PaymentMethod | None:
    return PaymentMethod(value) if value else None


@router.get("/")
def list_orders(
    status: str | None = None,
    page: int = 1,
    size: int = 50,
    db: Session = Depends(get_db),
    sub: str = Depends(require_auth),
):
    """
    List orders (paged), newest first.

    Query params:
      - status: "active", "completed" or "cancelled" (optional)
      - page:   1-based page index
      - size:   page size
    """
    q = db.query(Order)
    if status:
        try:
            wanted = OrderStatus(status)
        except ValueError:
            raise HTTPException(status_code=400, detail="invalid status")
        q = q.filter(Order.status == wanted)

    if page < 1:
        page = 1
    if size < 1:
        size = 50

    total = q.count()
    rows = q.order_by(Order.created_at.desc(), Order.id.desc()).offset((page - 1) * size).limit(size).all()
    return {"items": [order_out(o) for o in rows], "total": total}


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(body: OrderIn, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    o = order_service.create_order(
        db,
        guest_name=body.guest_name,
        guest_id=body.guest_id,
        items=[it.model_dump() for it in body.order_items],
        comment=body.comment,
        guests_count=body.guests_count,
    )
    db.commit()
    return order_out(o)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    return order_out(order_service.get_order(db, order_id))


@router.put("/{order_id}", response_model=OrderOut)
def update_order(order_id: str, body: OrderUpdate, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    o = order_service.get_order(db, order_id, lock=True)
    order_service.update_order(
        db, o,
        items=[it.model_dump() for it in body.order_items] if body.order_items is not None else None,
        comment=body.comment,
        guests_count=body.guests_count,
        status=OrderStatus(body.status) if body.status else None,
        payment_method=_payment(body.payment_method),
        staff_id=sub,
    )
    db.commit()
    return order_out(o)


@router.put("/{order_id}/add-item", response_model=OrderOut)
def add_item(order_id: str, body: AddItemIn, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    o = order_service.get_order(db, order_id, lock=True)
    ledger.add_item_to_order(db, o, body.product_id, body.quantity)
    db.commit()
    return order_out(o)


@router.put("/{order_id}/remove-item", response_model=OrderOut)
def remove_item(order_id: str, body: RemoveItemIn, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    o = order_service.get_order(db, order_id, lock=True)
    order_service.remove_item(db, o, body.item_index, staff_id=sub)
    db.commit()
    return order_out(o)


@router.put("/{order_id}/discount", response_model=OrderOut)
def set_discount(order_id: str, body: DiscountIn, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    o = order_service.get_order(db, order_id, lock=True)
    order_service.set_discount(db, o, body.discount_percent)
    db.commit()
    return order_out(o)


@router.post("/{order_id}/close", response_model=OrderOut)
def close_order(order_id: str, body: CloseOrderIn, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    o = order_service.get_order(db, order_id, lock=True)
    order_service.close_order(db, o, OrderStatus(body.status), _payment(body.payment_method), staff_id=sub)
    db.commit()
    return order_out(o)


# ---------- write-offs ----------

def _write_off_out(wo: WriteOff, product: Product | None) -> WriteOffOut:
    return WriteOffOut(
        id=wo.id,
        order_id=wo.order_id,
        product_id=wo.product_id,
        product_name=product.name if product else None,
        unit=product.unit if product else None,
        quantity=float(wo.quantity),
        reason=wo.reason,
        created_at=wo.created_at,
    )


@router.get("/{order_id}/write-offs", response_model=list[WriteOffOut])
def list_write_offs(order_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    order_service.get_order(db, order_id)
    rows = (
        db.query(WriteOff, Product)
          .outerjoin(Product, Product.id == WriteOff.product_id)
          .filter(WriteOff.order_id == order_id)
          .order_by(WriteOff.created_at.desc())
          .all()
    )
    return [_write_off_out(wo, p) for wo, p in rows]


@router.post("/{order_id}/write-offs", response_model=WriteOffOut, status_code=201)
def create_write_off(order_id: str, body: WriteOffIn, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    o = order_service.get_order(db, order_id, lock=True)
    wo = order_service.create_write_off(db, o, body.product_id, body.quantity, body.reason, staff_id=sub)
    db.commit()
    return _write_off_out(wo, db.get(Product, wo.product_id))
