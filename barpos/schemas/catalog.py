from pydantic import BaseModel, Field
from typing import Optional, List

class CategoryIn(BaseModel):
    name: str
    description: Optional[str] = None
    color: str = "#646cff"
    is_active: bool = True

class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    is_active: Optional[bool] = None

class CategoryOut(CategoryIn):
    id: str

class ProductIn(BaseModel):
    name: str
    description: Optional[str] = None
    price: float = Field(ge=0)
    cost_price: float = Field(default=0.0, ge=0)
    sort_order: int = 0
    category_id: Optional[str] = None
    stock: float = 0.0
    low_stock_threshold: float = 0.0
    unit_size: float = Field(default=1.0, gt=0)
    unit: str = "шт"
    color: str = "#646cff"
    is_active: bool = True
    is_composite: bool = False

class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    cost_price: Optional[float] = Field(default=None, ge=0)
    sort_order: Optional[int] = None
    category_id: Optional[str] = None
    stock: Optional[float] = None
    low_stock_threshold: Optional[float] = None
    unit_size: Optional[float] = Field(default=None, gt=0)
    unit: Optional[str] = None
    color: Optional[str] = None
    is_active: Optional[bool] = None
    is_composite: Optional[bool] = None

class IngredientProductOut(BaseModel):
    id: str
    name: str
    stock: float
    unit: str

class IngredientLinkIn(BaseModel):
    ingredient_product_id: str
    quantity: float = Field(gt=0)

class IngredientLinkUpdate(BaseModel):
    quantity: float = Field(gt=0)

class IngredientLinkOut(BaseModel):
    id: str
    composite_product_id: str
    ingredient_product_id: str
    quantity: float
    ingredient_product: Optional[IngredientProductOut] = None

class ProductOut(ProductIn):
    id: str
    ingredients: List[IngredientLinkOut] = []
    available_portions: Optional[int] = None
