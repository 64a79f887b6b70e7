# conftest.py
import os
import tempfile

import pytest

# settings are read at import time, so the test database is chosen before barpos is imported
_TMP = tempfile.mkdtemp(prefix="barpos-test-")
os.environ.setdefault("APP_SECRET", "test-secret")
os.environ.setdefault("APP_ENV", "dev")
os.environ["DB_URL"] = f"sqlite:///{os.path.join(_TMP, 'barpos.db')}"

from fastapi.testclient import TestClient  # noqa: E402

from barpos.db import Base, SessionLocal, engine  # noqa: E402
from barpos.main import app  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(scope="session")
def base_url():
    return ""


@pytest.fixture(scope="session")
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.rollback()
        s.close()


@pytest.fixture
def auth_headers(client, base_url):
    # seed dev data
    r = client.post(f"{base_url}/admin/dev-bootstrap")
    assert r.status_code == 200, f"/admin/dev-bootstrap failed: {r.text}"

    r = client.post(f"{base_url}/auth/login", params={"login": "admin", "password": "admin"})
    assert r.status_code == 200, f"/auth/login failed: {r.text}"
    tok = r.json()["access_token"]
    return {"Authorization": f"Bearer {tok}"}


@pytest.fixture(scope="session")
def rng_suffix():
    import random, string
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
