from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from barpos.config import settings


class Base(DeclarativeBase):
    pass


_connect_args = {"check_same_thread": False} if settings.DB_URL.startswith("sqlite") else {}

engine = create_engine(settings.DB_URL, echo=settings.DB_ECHO, pool_pre_ping=True, connect_args=_connect_args)
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


def get_db():
    # an uncommitted session is rolled back on close, so a failed request leaves no partial writes
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
