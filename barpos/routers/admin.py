from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from barpos.db import get_db
from barpos.config import settings
from barpos.util.security import hash_pw
from barpos.models.core import Staff

router = APIRouter(prefix="/admin", tags=["admin"])

@router.post("/dev-bootstrap")
def dev_bootstrap(db: Session = Depends(get_db)):
    if settings.APP_ENV != "dev":
        raise HTTPException(403, detail="Not allowed")

    # Admin account used by the dev UI and the test-suite
    admin = db.query(Staff).filter(Staff.login == "admin").first()
    if not admin:
        admin = Staff(name="Admin", login="admin", pass_hash=hash_pw("admin"), is_admin=True, active=True)
        db.add(admin); db.flush()

    db.commit()
    return {
        "admin_id": admin.id,
        "admin_login": admin.login,
        "admin_password": "admin",
    }
