from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from barpos.db import get_db
from barpos.deps import require_auth
from barpos.errors import Conflict, NotFound
from barpos.models.core import Category, Product
from barpos.schemas.catalog import CategoryIn, CategoryOut, CategoryUpdate

router = APIRouter(prefix="/categories", tags=["categories"])


def _out(c: Category) -> CategoryOut:
    return CategoryOut(id=c.id, name=c.name, description=c.description, color=c.color, is_active=bool(c.is_active))


def _get(db: Session, category_id: str) -> Category:
    c = db.get(Category, category_id)
    if not c:
        raise NotFound("category not found")
    return c


@router.post("/", response_model=CategoryOut, status_code=201)
def create_category(body: CategoryIn, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    c = Category(**body.model_dump())
    db.add(c)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("category name already exists")
    db.refresh(c)
    return _out(c)


@router.get("/")
def list_categories(db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    out = []
    for c in db.query(Category).order_by(Category.name).all():
        products = db.query(Product.id, Product.name).filter(Product.category_id == c.id).order_by(Product.sort_order, Product.name).all()
        out.append({**_out(c).model_dump(), "products": [{"id": pid, "name": name} for pid, name in products]})
    return out


@router.get("/{category_id}", response_model=CategoryOut)
def get_category(category_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    return _out(_get(db, category_id))


@router.put("/{category_id}", response_model=CategoryOut)
def update_category(category_id: str, body: CategoryUpdate, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    c = _get(db, category_id)
    for k, v in body.model_dump(exclude_unset=True).items():
        if v is not None:
            setattr(c, k, v)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("category name already exists")
    db.refresh(c)
    return _out(c)


@router.delete("/{category_id}", status_code=204)
def delete_category(category_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    c = _get(db, category_id)
    db.query(Product).filter(Product.category_id == c.id).update({Product.category_id: None}, synchronize_session=False)
    db.delete(c)
    db.commit()
