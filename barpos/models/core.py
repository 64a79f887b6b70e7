from sqlalchemy import (
    String, ForeignKey, Boolean, Numeric, Enum, Text, DateTime, Integer, JSON, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column
from enum import Enum as PyEnum
from datetime import datetime
from decimal import Decimal
from barpos.db import Base
from barpos.models.common import IdMixin, TSMMixin

# ── Enums ───────────────────────────────────────────────────────────────────
class OrderStatus(PyEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class PaymentMethod(PyEnum):
    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"

class ShiftStatus(PyEnum):
    OPEN = "open"
    CLOSED = "closed"

def _values(enum_cls):
    return [m.value for m in enum_cls]

# ── Staff (bartenders / admins who log in) ──────────────────────────────────
class Staff(Base, IdMixin, TSMMixin):
    __tablename__ = "staff"
    name: Mapped[str] = mapped_column(String(160))
    login: Mapped[str] = mapped_column(String(80), unique=True)
    pass_hash: Mapped[str] = mapped_column(String(200))
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

# ── Guests ──────────────────────────────────────────────────────────────────
class Guest(Base, IdMixin, TSMMixin):
    __tablename__ = "guest"
    name: Mapped[str] = mapped_column(String(160), index=True)
    phone: Mapped[str | None] = mapped_column(String(40))
    guest_type: Mapped[str] = mapped_column(String(32), default="guest")
    discount_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=0)
    visit_count: Mapped[int] = mapped_column(Integer, default=0)
    total_orders_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    average_check: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)

# ── Catalog ─────────────────────────────────────────────────────────────────
class Category(Base, IdMixin, TSMMixin):
    __tablename__ = "category"
    name: Mapped[str] = mapped_column(String(120), unique=True)
    description: Mapped[str | None] = mapped_column(Text)
    color: Mapped[str] = mapped_column(String(20), default="#646cff")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

class Product(Base, IdMixin, TSMMixin):
    __tablename__ = "product"
    name: Mapped[str] = mapped_column(String(160))
    description: Mapped[str | None] = mapped_column(Text)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    cost_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    category_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("category.id", ondelete="SET NULL"))
    # quantity on hand; not authoritative for composite products
    stock: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0)
    low_stock_threshold: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0)
    # stock deducted per one sold unit
    unit_size: Mapped[Decimal] = mapped_column(Numeric(10, 3), default=1)
    unit: Mapped[str] = mapped_column(String(20), default="шт")
    color: Mapped[str] = mapped_column(String(20), default="#646cff")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_composite: Mapped[bool] = mapped_column(Boolean, default=False)

class ProductIngredient(Base, IdMixin, TSMMixin):
    __tablename__ = "product_ingredient"
    composite_product_id: Mapped[str] = mapped_column(String(36), ForeignKey("product.id"), index=True)
    ingredient_product_id: Mapped[str] = mapped_column(String(36), ForeignKey("product.id"), index=True)
    # ingredient quantity per one portion of the composite
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 3))
    __table_args__ = (
        UniqueConstraint("composite_product_id", "ingredient_product_id", name="uq_product_ingredient_pair"),
    )

# ── Shifts ──────────────────────────────────────────────────────────────────
class Shift(Base, IdMixin, TSMMixin):
    __tablename__ = "shift"
    status: Mapped[ShiftStatus] = mapped_column(Enum(ShiftStatus, values_callable=_values), default=ShiftStatus.OPEN)
    opened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    opened_by_staff_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("staff.id"))
    opening_note: Mapped[str | None] = mapped_column(Text)
    closing_note: Mapped[str | None] = mapped_column(Text)
    opening_cash_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    closing_cash_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    summary: Mapped[dict | None] = mapped_column(JSON)

class ShiftBartender(Base, TSMMixin):
    __tablename__ = "shift_bartender"
    shift_id: Mapped[str] = mapped_column(String(36), ForeignKey("shift.id"), primary_key=True)
    staff_id: Mapped[str] = mapped_column(String(36), ForeignKey("staff.id"), primary_key=True)

# ── Orders / write-offs ─────────────────────────────────────────────────────
class Order(Base, IdMixin, TSMMixin):
    __tablename__ = "order"
    guest_name: Mapped[str | None] = mapped_column(String(160))
    guest_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("guest.id", ondelete="SET NULL"), index=True)
    # ordered line items: [{product_id, product_name, quantity, price}]
    order_items: Mapped[list] = mapped_column(JSON, default=list)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    discount_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=0)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    net_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    status: Mapped[OrderStatus] = mapped_column(Enum(OrderStatus, values_callable=_values), default=OrderStatus.ACTIVE, index=True)
    payment_method: Mapped[PaymentMethod | None] = mapped_column(Enum(PaymentMethod, values_callable=_values))
    comment: Mapped[str | None] = mapped_column(Text)
    guests_count: Mapped[int] = mapped_column(Integer, default=1)
    shift_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("shift.id"), index=True)
    closed_by_staff_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("staff.id"))
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

class WriteOff(Base, IdMixin, TSMMixin):
    __tablename__ = "write_off"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("order.id"), index=True)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("product.id"))
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 3))
    reason: Mapped[str | None] = mapped_column(String(200))

# ── Audit ───────────────────────────────────────────────────────────────────
class AuditLog(Base, IdMixin, TSMMixin):
    __tablename__ = "audit_log"
    actor_staff_id: Mapped[str | None] = mapped_column(String(36))
    entity: Mapped[str] = mapped_column(String(60))
    entity_id: Mapped[str] = mapped_column(String(36))
    action: Mapped[str] = mapped_column(String(60))
    reason: Mapped[str | None] = mapped_column(Text)
    before: Mapped[str | None] = mapped_column(Text)
    after: Mapped[str | None] = mapped_column(Text)
