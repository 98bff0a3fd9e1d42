from typing import Dict, Iterable, List, Optional, Tuple
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from boutique.models import Cart, CartItem, Product

logger = logging.getLogger(__name__)

# module boutique.carts.repository
def get_cart_by_user(db: Session, user_id: str) -> Optional[Cart]:
    return db.scalar(select(Cart).where(Cart.user_id == user_id).limit(1))

def get_or_create_cart(db: Session, user_id: str) -> Cart:
    """Panier créé paresseusement (un seul par compte, contrainte unique sur user_id)."""
    cart = get_cart_by_user(db, user_id)
    if cart is None:
        cart = Cart(user_id=user_id)
        db.add(cart)
        db.flush()
    return cart

def get_cart_item(db: Session, cart_id: str, product_id: str) -> Optional[CartItem]:
    return db.scalar(
        select(CartItem)
        .where(CartItem.cart_id == cart_id, CartItem.product_id == product_id)
        .limit(1)
    )

def list_cart_items(db: Session, cart_id: str) -> List[CartItem]:
    return list(db.scalars(select(CartItem).where(CartItem.cart_id == cart_id).order_by(CartItem.created_at)))

def list_cart_lines_with_products(db: Session, cart_id: str) -> List[Tuple[CartItem, Optional[Product]]]:
    """Lignes du panier jointes (LEFT JOIN) à l'état *courant* des produits."""
    rows = db.execute(
        select(CartItem, Product)
        .outerjoin(Product, Product.id == CartItem.product_id)
        .where(CartItem.cart_id == cart_id)
        .order_by(CartItem.created_at, CartItem.id)
    ).all()
    return [(row[0], row[1]) for row in rows]

def get_products_by_ids(db: Session, ids: Iterable[str], active_only: bool = False) -> Dict[str, Product]:
    ids = list(ids)
    if not ids:
        return {}
    stmt = select(Product).where(Product.id.in_(ids))
    if active_only:
        stmt = stmt.where(Product.status == "active")
    return {p.id: p for p in db.scalars(stmt)}

def get_product(db: Session, product_id: str) -> Optional[Product]:
    return db.get(Product, product_id)

def cart_subtotal_row(db: Session, user_id: str) -> Optional[Tuple[str, int, int]]:
    """(cart_id, subtotal, item_count) calculés en SQL sur les prix capturés, None sans panier."""
    row = db.execute(
        select(
            Cart.id,
            func.coalesce(func.sum(CartItem.quantity * CartItem.price_at_add), 0),
            func.count(CartItem.id),
        )
        .outerjoin(CartItem, CartItem.cart_id == Cart.id)
        .where(Cart.user_id == user_id)
        .group_by(Cart.id)
    ).first()
    if row is None:
        return None
    return row[0], int(row[1] or 0), int(row[2] or 0)

def delete_cart(db: Session, cart_id: str) -> int:
    """Supprime les lignes puis le panier (sans dépendre du ON DELETE CASCADE du SGBD)."""
    db.execute(delete(CartItem).where(CartItem.cart_id == cart_id))
    res = db.execute(delete(Cart).where(Cart.id == cart_id))
    return res.rowcount or 0
