from pydantic import BaseModel, Field
from typing import Optional, Literal, List
from datetime import datetime

OrderStatusLiteral = Literal["active", "completed", "cancelled"]
CloseStatusLiteral = Literal["completed", "cancelled"]
PaymentMethodLiteral = Literal["cash", "card", "transfer"]

class OrderItemIn(BaseModel):
    product_id: str
    quantity: float = Field(gt=0)

class OrderItemOut(BaseModel):
    product_id: str
    product_name: str
    quantity: float
    price: float

class OrderIn(BaseModel):
    guest_name: Optional[str] = None
    guest_id: Optional[str] = None
    order_items: List[OrderItemIn] = []
    comment: Optional[str] = None
    guests_count: int = 1

class OrderUpdate(BaseModel):
    order_items: Optional[List[OrderItemIn]] = None
    comment: Optional[str] = None
    guests_count: Optional[int] = None
    status: Optional[OrderStatusLiteral] = None
    payment_method: Optional[PaymentMethodLiteral] = None

class AddItemIn(BaseModel):
    product_id: str
    quantity: float = Field(default=1, gt=0)

class RemoveItemIn(BaseModel):
    item_index: int

class DiscountIn(BaseModel):
    discount_percent: float

class CloseOrderIn(BaseModel):
    status: CloseStatusLiteral
    payment_method: Optional[PaymentMethodLiteral] = None

class OrderOut(BaseModel):
    id: str
    guest_name: Optional[str] = None
    guest_id: Optional[str] = None
    order_items: List[OrderItemOut]
    total_amount: float
    discount_percent: float
    discount_amount: float
    net_amount: float
    status: OrderStatusLiteral
    payment_method: Optional[PaymentMethodLiteral] = None
    comment: Optional[str] = None
    guests_count: int
    shift_id: Optional[str] = None
    closed_by_staff_id: Optional[str] = None
    created_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

class WriteOffIn(BaseModel):
    product_id: str
    quantity: float = Field(gt=0)
    reason: Optional[str] = None

class WriteOffOut(BaseModel):
    id: str
    order_id: str
    product_id: str
    product_name: Optional[str] = None
    unit: Optional[str] = None
    quantity: float
    reason: Optional[str] = None
    created_at: Optional[datetime] = None
