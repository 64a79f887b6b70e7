from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from barpos.db import get_db
from barpos.deps import require_admin, require_auth
from barpos.errors import Conflict, NotFound
from barpos.models.core import Staff
from barpos.schemas.people import StaffIn, StaffOut
from barpos.util.security import hash_pw

router = APIRouter(prefix="/staff", tags=["staff"])


def _out(s: Staff) -> StaffOut:
    return StaffOut(id=s.id, name=s.name, login=s.login, is_admin=bool(s.is_admin), active=bool(s.active))


@router.post("/", response_model=StaffOut, status_code=201)
def create_staff(body: StaffIn, db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    if db.query(Staff).filter(Staff.login == body.login).first():
        raise Conflict("login already exists")
    s = Staff(name=body.name, login=body.login, pass_hash=hash_pw(body.password), is_admin=body.is_admin, active=True)
    db.add(s)
    db.commit()
    db.refresh(s)
    return _out(s)


@router.get("/", response_model=list[StaffOut])
def list_staff(db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    return [_out(s) for s in db.query(Staff).filter(Staff.active.is_(True)).order_by(Staff.name).all()]


@router.delete("/{staff_id}", status_code=204)
def deactivate_staff(staff_id: str, db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    s = db.get(Staff, staff_id)
    if not s:
        raise NotFound("staff not found")
    # shifts and closed orders keep pointing at the account, so it is only deactivated
    s.active = False
    db.commit()
