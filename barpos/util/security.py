import jwt
from datetime import datetime, timedelta, timezone
from argon2 import PasswordHasher
from argon2.exceptions import VerificationError, InvalidHashError
from barpos.config import settings

ph = PasswordHasher()

def hash_pw(p: str) -> str:
    return ph.hash(p)

def verify_pw(hashv: str, p: str) -> bool:
    try:
        return ph.verify(hashv, p)
    except (VerificationError, InvalidHashError):
        return False

def needs_rehash(hashv: str) -> bool:
    # hasher parameters were raised since the hash was stored
    return ph.check_needs_rehash(hashv)

def create_token(staff_id: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": staff_id,
        "iss": settings.JWT_ISS,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.JWT_EXP_MIN)).timestamp()),
    }
    return jwt.encode(payload, settings.APP_SECRET, algorithm="HS256")

def decode_token(token: str) -> str:
    """Return the staff id of a valid token; raises ``jwt.PyJWTError`` otherwise."""
    data = jwt.decode(token, settings.APP_SECRET, algorithms=["HS256"], issuer=settings.JWT_ISS)
    return data["sub"]
