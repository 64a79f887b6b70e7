from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from barpos.db import get_db
from barpos.deps import require_auth
from barpos.errors import Conflict, InvalidState, NotFound
from barpos.models.core import Category, Product, ProductIngredient
from barpos.schemas.catalog import (
    IngredientLinkIn,
    IngredientLinkOut,
    IngredientLinkUpdate,
    IngredientProductOut,
    ProductIn,
    ProductOut,
    ProductUpdate,
)
from barpos.services import ledger
from barpos.util.money import as_float, to_dec

router = APIRouter(prefix="/products", tags=["products"])

_DECIMAL_FIELDS = ("price", "cost_price", "stock", "low_stock_threshold", "unit_size")


# ---------- helpers ----------

def _get(db: Session, product_id: str) -> Product:
    p = db.get(Product, product_id)
    if not p:
        raise NotFound("product not found")
    return p


def _link_out(link: ProductIngredient, ing: Product | None) -> IngredientLinkOut:
    return IngredientLinkOut(
        id=link.id,
        composite_product_id=link.composite_product_id,
        ingredient_product_id=link.ingredient_product_id,
        quantity=float(link.quantity),
        ingredient_product=IngredientProductOut(id=ing.id, name=ing.name, stock=float(ing.stock or 0), unit=ing.unit) if ing else None,
    )


def _products_out(db: Session, products: list[Product]) -> list[ProductOut]:
    links = ledger.ingredient_links(db, [p.id for p in products if p.is_composite])
    ing_ids = {l.ingredient_product_id for group in links.values() for l in group}
    ings = {p.id: p for p in db.query(Product).filter(Product.id.in_(list(ing_ids))).all()} if ing_ids else {}

    out = []
    for p in products:
        plinks = links.get(p.id, [])
        out.append(ProductOut(
            id=p.id,
            name=p.name,
            description=p.description,
            price=as_float(p.price) or 0.0,
            cost_price=as_float(p.cost_price) or 0.0,
            sort_order=p.sort_order or 0,
            category_id=p.category_id,
            stock=as_float(p.stock) or 0.0,
            low_stock_threshold=as_float(p.low_stock_threshold) or 0.0,
            unit_size=as_float(p.unit_size) or 1.0,
            unit=p.unit,
            color=p.color,
            is_active=bool(p.is_active),
            is_composite=bool(p.is_composite),
            ingredients=[_link_out(l, ings.get(l.ingredient_product_id)) for l in plinks],
            available_portions=ledger.portions_from(plinks, ings) if p.is_composite else None,
        ))
    return out


def _coerce(data: dict) -> dict:
    for k in _DECIMAL_FIELDS:
        if data.get(k) is not None:
            data[k] = to_dec(data[k])
    return data


def _used_in(db: Session, p: Product) -> list[str]:
    """Names of the composite products that use ``p`` as an ingredient."""
    rows = (
        db.query(Product.name)
          .join(ProductIngredient, ProductIngredient.composite_product_id == Product.id)
          .filter(ProductIngredient.ingredient_product_id == p.id)
          .order_by(Product.name)
          .all()
    )
    return [n for (n,) in rows]


def _check_category(db: Session, category_id: str | None):
    if category_id and not db.get(Category, category_id):
        raise NotFound("category not found")


# ---------- products ----------

@router.post("/", response_model=ProductOut, status_code=201)
def create_product(body: ProductIn, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    _check_category(db, body.category_id)
    p = Product(**_coerce(body.model_dump()))
    db.add(p)
    db.commit()
    db.refresh(p)
    return _products_out(db, [p])[0]


@router.get("/", response_model=list[ProductOut])
def list_products(
    category_id: str | None = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
    sub: str = Depends(require_auth),
):
    q = db.query(Product)
    if category_id:
        q = q.filter(Product.category_id == category_id)
    if active_only:
        q = q.filter(Product.is_active.is_(True))
    rows = q.order_by(Product.sort_order.asc(), Product.name.asc()).all()
    return _products_out(db, rows)


@router.get("/low_stock")
def low_stock(db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    rows = (
        db.query(Product)
          .filter(Product.is_composite.is_(False), Product.low_stock_threshold > 0, Product.stock <= Product.low_stock_threshold)
          .order_by(Product.name)
          .all()
    )
    return [
        {"product_id": p.id, "name": p.name, "stock": float(p.stock or 0), "unit": p.unit,
         "low_stock_threshold": float(p.low_stock_threshold or 0)}
        for p in rows
    ]


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    return _products_out(db, [_get(db, product_id)])[0]


@router.get("/{product_id}/available_portions")
def get_available_portions(product_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    p = _get(db, product_id)
    if not p.is_composite:
        raise InvalidState("product is not composite")
    return {"product_id": p.id, "available_portions": ledger.available_portions(db, p)}


@router.put("/{product_id}", response_model=ProductOut)
def update_product(product_id: str, body: ProductUpdate, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    p = _get(db, product_id)
    data = _coerce(body.model_dump(exclude_unset=True))
    if "category_id" in data:
        _check_category(db, data["category_id"])
    composite = data.get("is_composite")
    if composite is not None and composite != bool(p.is_composite):
        # ingredients stay simple and composites keep their links
        used_in = _used_in(db, p) if composite else []
        if used_in:
            raise Conflict(f"product is an ingredient of: {', '.join(used_in)}")
        if not composite and db.query(ProductIngredient).filter(ProductIngredient.composite_product_id == p.id).count():
            raise Conflict("remove the ingredients before making the product simple")
    for k, v in data.items():
        if v is not None or k == "category_id":
            setattr(p, k, v)
    db.commit()
    db.refresh(p)
    return _products_out(db, [p])[0]


@router.delete("/{product_id}", status_code=204)
def delete_product(product_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    p = _get(db, product_id)
    used_in = _used_in(db, p)
    if used_in:
        raise Conflict(f"product is an ingredient of: {', '.join(used_in)}")
    db.query(ProductIngredient).filter(ProductIngredient.composite_product_id == p.id).delete(synchronize_session=False)
    db.delete(p)
    db.commit()


# ---------- ingredient links ----------

@router.post("/{product_id}/ingredients", response_model=IngredientLinkOut, status_code=201)
def add_ingredient(product_id: str, body: IngredientLinkIn, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    composite = _get(db, product_id)
    if not composite.is_composite:
        raise InvalidState("product is not composite")
    ing = db.get(Product, body.ingredient_product_id)
    if not ing:
        raise NotFound("ingredient product not found")
    if ing.is_composite or ing.id == composite.id:
        raise InvalidState("an ingredient must be a simple product")

    link = ProductIngredient(composite_product_id=composite.id, ingredient_product_id=ing.id, quantity=to_dec(body.quantity))
    db.add(link)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("this ingredient is already part of the product")
    db.refresh(link)
    return _link_out(link, ing)


@router.get("/{product_id}/ingredients", response_model=list[IngredientLinkOut])
def list_ingredients(product_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    _get(db, product_id)
    links = ledger.ingredient_links(db, [product_id]).get(product_id, [])
    ids = [l.ingredient_product_id for l in links]
    ings = {p.id: p for p in db.query(Product).filter(Product.id.in_(ids)).all()} if ids else {}
    return [_link_out(l, ings.get(l.ingredient_product_id)) for l in links]


def _get_link(db: Session, product_id: str, link_id: str) -> ProductIngredient:
    link = (
        db.query(ProductIngredient)
          .filter(ProductIngredient.id == link_id, ProductIngredient.composite_product_id == product_id)
          .first()
    )
    if not link:
        raise NotFound("ingredient not found")
    return link


@router.put("/{product_id}/ingredients/{link_id}", response_model=IngredientLinkOut)
def update_ingredient(product_id: str, link_id: str, body: IngredientLinkUpdate, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    link = _get_link(db, product_id, link_id)
    link.quantity = to_dec(body.quantity)
    db.commit()
    db.refresh(link)
    return _link_out(link, db.get(Product, link.ingredient_product_id))


@router.delete("/{product_id}/ingredients/{link_id}", status_code=204)
def delete_ingredient(product_id: str, link_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    db.delete(_get_link(db, product_id, link_id))
    db.commit()
