# Importing the module registers tables with Base for create_all()
from .core import (  # noqa: F401
    # Enums
    OrderStatus, PaymentMethod, ShiftStatus,

    # People
    Staff, Guest,

    # Catalog
    Category, Product, ProductIngredient,

    # Shifts
    Shift, ShiftBartender,

    # Orders / write-offs
    Order, WriteOff,

    # Audit
    AuditLog,
)

__all__ = [
    "OrderStatus", "PaymentMethod", "ShiftStatus",
    "Staff", "Guest",
    "Category", "Product", "ProductIngredient",
    "Shift", "ShiftBartender",
    "Order", "WriteOff",
    "AuditLog",
]

all_models = True
