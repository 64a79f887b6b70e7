import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from barpos.schemas.common import Token
from barpos.util.security import create_token, hash_pw, needs_rehash, verify_pw
from barpos.models.core import Staff
from barpos.db import get_db

log = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

@router.post("/login", response_model=Token)
def staff_login(login: str, password: str, db: Session = Depends(get_db)):
    staff = db.query(Staff).filter(Staff.login == login).first()
    if not staff or not staff.active or not verify_pw(staff.pass_hash, password):
        log.info("failed login for %r", login)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if needs_rehash(staff.pass_hash):
        staff.pass_hash = hash_pw(password)
        db.commit()
    return Token(access_token=create_token(staff.id))
