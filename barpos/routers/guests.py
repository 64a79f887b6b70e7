from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from barpos.db import get_db
from barpos.deps import require_auth
from barpos.errors import NotFound
from barpos.models.core import Guest, Order
from barpos.schemas.people import GuestIn, GuestOut, GuestUpdate
from barpos.util.money import as_float, to_dec

router = APIRouter(prefix="/guests", tags=["guests"])


def guest_out(g: Guest) -> GuestOut:
    return GuestOut(
        id=g.id,
        name=g.name,
        phone=g.phone,
        guest_type=g.guest_type,
        discount_percent=as_float(g.discount_percent) or 0.0,
        visit_count=g.visit_count or 0,
        total_orders_amount=as_float(g.total_orders_amount) or 0.0,
        average_check=as_float(g.average_check) or 0.0,
    )


def _get(db: Session, guest_id: str) -> Guest:
    g = db.get(Guest, guest_id)
    if not g:
        raise NotFound("guest not found")
    return g


@router.post("/", response_model=GuestOut, status_code=201)
def create_guest(body: GuestIn, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    g = Guest(
        name=body.name.strip(),
        phone=body.phone,
        guest_type=body.guest_type,
        discount_percent=to_dec(body.discount_percent),
        visit_count=0,
        total_orders_amount=0,
        average_check=0,
    )
    db.add(g)
    db.commit()
    db.refresh(g)
    return guest_out(g)


@router.get("/", response_model=list[GuestOut])
def list_guests(guest_type: str | None = None, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    q = db.query(Guest)
    if guest_type:
        q = q.filter(Guest.guest_type == guest_type)
    return [guest_out(g) for g in q.order_by(Guest.name).all()]


@router.get("/{guest_id}")
def get_guest(guest_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    g = _get(db, guest_id)
    orders = db.query(Order).filter(Order.guest_id == g.id).order_by(Order.created_at.desc()).limit(100).all()
    return {
        **guest_out(g).model_dump(),
        "orders": [
            {
                "id": o.id,
                "status": o.status.value,
                "total_amount": as_float(o.total_amount),
                "net_amount": as_float(o.net_amount),
                "created_at": o.created_at,
                "closed_at": o.closed_at,
            }
            for o in orders
        ],
    }


@router.put("/{guest_id}", response_model=GuestOut)
def update_guest(guest_id: str, body: GuestUpdate, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    g = _get(db, guest_id)
    data = body.model_dump(exclude_unset=True)
    if "discount_percent" in data and data["discount_percent"] is not None:
        data["discount_percent"] = to_dec(data["discount_percent"])
    for k, v in data.items():
        if v is not None:
            setattr(g, k, v)
    db.commit()
    db.refresh(g)
    return guest_out(g)


@router.delete("/{guest_id}", status_code=204)
def delete_guest(guest_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    g = _get(db, guest_id)
    # orders keep their guest_name snapshot
    db.query(Order).filter(Order.guest_id == g.id).update({Order.guest_id: None}, synchronize_session=False)
    db.delete(g)
    db.commit()
