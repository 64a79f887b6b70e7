# barpos/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from barpos.middleware import RequestIdMiddleware
from barpos.db import Base, engine
from barpos.config import settings
from barpos.errors import BarPosError
import barpos.models  # noqa: F401  (registers tables on Base.metadata)

from barpos.routers import auth, admin, staff, guests, categories, products, orders, shifts

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("barpos")

app = FastAPI(title="Bar POS API", version="0.1.0")

@app.on_event("startup")
def init_db():
    Base.metadata.create_all(bind=engine)
    log.info("database ready (%s)", engine.url.get_backend_name())

@app.exception_handler(BarPosError)
def barpos_error_handler(request: Request, exc: BarPosError):
    log.warning("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, **exc.extra})

# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(admin.router)
app.include_router(staff.router)
app.include_router(guests.router)
app.include_router(categories.router)
app.include_router(products.router)
app.include_router(orders.router)
app.include_router(shifts.router)

@app.get("/healthz")
def healthz():
    return {"ok": True}

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("barpos.main:app", host="0.0.0.0", port=8000)
