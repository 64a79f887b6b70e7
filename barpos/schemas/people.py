from pydantic import BaseModel, Field
from typing import Optional

class StaffIn(BaseModel):
    name: str
    login: str
    password: str
    is_admin: bool = False

class StaffOut(BaseModel):
    id: str
    name: str
    login: str
    is_admin: bool
    active: bool

class GuestIn(BaseModel):
    name: str
    phone: Optional[str] = None
    guest_type: str = "guest"
    discount_percent: float = Field(default=0.0, ge=0, le=100)

class GuestUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    guest_type: Optional[str] = None
    discount_percent: Optional[float] = Field(default=None, ge=0, le=100)

class GuestOut(GuestIn):
    id: str
    visit_count: int
    total_orders_amount: float
    average_check: float
