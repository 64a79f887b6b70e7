from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from barpos.db import get_db
from barpos.deps import require_auth
from barpos.models.core import Shift
from barpos.routers.orders import order_out
from barpos.schemas.shifts import BartenderOut, ShiftCloseIn, ShiftOpenIn, ShiftOut
from barpos.services import shifts as shift_service
from barpos.util.money import as_float

router = APIRouter(prefix="/shifts", tags=["shifts"])


def shift_out(db: Session, s: Shift, summary: dict | None = None) -> ShiftOut:
    return ShiftOut(
        id=s.id,
        status=s.status.value,
        opened_at=s.opened_at,
        closed_at=s.closed_at,
        opened_by_staff_id=s.opened_by_staff_id,
        opening_note=s.opening_note,
        closing_note=s.closing_note,
        opening_cash_amount=as_float(s.opening_cash_amount),
        closing_cash_amount=as_float(s.closing_cash_amount),
        summary=summary if summary is not None else s.summary,
        bartenders=[BartenderOut(id=b.id, name=b.name) for b in shift_service.shift_bartenders(db, s.id)],
    )


@router.post("/open", response_model=ShiftOut, status_code=201)
def open_shift(body: ShiftOpenIn, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    s = shift_service.open_shift(
        db,
        opened_by=sub,
        bartenders=body.bartenders,
        opening_note=body.opening_note,
        opening_cash_amount=body.opening_cash_amount,
    )
    db.commit()
    return shift_out(db, s)


@router.get("/active", response_model=ShiftOut, responses={204: {"description": "No open shift"}})
def get_active_shift(db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    s = shift_service.active_shift(db)
    if s is None:
        return Response(status_code=204)
    return shift_out(db, s)


@router.get("/", response_model=list[ShiftOut])
def list_shifts(db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    rows = db.query(Shift).order_by(Shift.opened_at.desc()).all()
    return [shift_out(db, s) for s in rows]


@router.get("/{shift_id}", response_model=ShiftOut)
def get_shift(shift_id: str, recompute: bool = False, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    s = shift_service.get_shift(db, shift_id)
    summary = None
    if recompute or not s.summary:
        summary = shift_service.compute_summary(shift_service.shift_orders(db, s.id))
    return shift_out(db, s, summary)


@router.get("/{shift_id}/orders")
def get_shift_orders(shift_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    shift_service.get_shift(db, shift_id)
    return [order_out(o) for o in shift_service.shift_orders(db, shift_id)]


@router.post("/{shift_id}/close", response_model=ShiftOut)
def close_shift(shift_id: str, body: ShiftCloseIn, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    s = shift_service.get_shift(db, shift_id, lock=True)
    shift_service.close_shift(
        db, s,
        closed_by=sub,
        closing_note=body.closing_note,
        closing_cash_amount=body.closing_cash_amount,
    )
    db.commit()
    return shift_out(db, s)
