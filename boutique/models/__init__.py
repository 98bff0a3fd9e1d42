# Façade "M" (Models): tables SQLAlchemy et helpers d'identifiants.
from .tables import (
    Base,
    Product,
    Discount,
    Cart,
    CartItem,
    Order,
    OrderItem,
    Payment,
    new_id,
    new_order_number,
    utcnow,
)

__all__ = [
    "Base",
    "Product",
    "Discount",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "Payment",
    "new_id",
    "new_order_number",
    "utcnow",
]
