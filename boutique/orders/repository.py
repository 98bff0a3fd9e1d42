from typing import Dict, List, Optional
import logging

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from boutique.models import Discount, Order, OrderItem, Product
from boutique.utils.cursor import Cursor

logger = logging.getLogger(__name__)

# module boutique.orders.repository
def fetch_user_orders(db: Session, user_id: str, after: Optional[Cursor], limit: int) -> List[Order]:
    """
    Commandes de l'utilisateur triées (created_at desc, id desc), strictement après le curseur.
    Le curseur vise la dernière ligne de la page précédente.
    """
    stmt = select(Order).where(Order.user_id == user_id)
    if after is not None:
        stmt = stmt.where(
            or_(
                Order.created_at < after.created_at,
                and_(Order.created_at == after.created_at, Order.id < after.id),
            )
        )
    stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit)
    return list(db.scalars(stmt))

def fetch_items_for_orders(db: Session, order_ids: List[str]) -> Dict[str, List[tuple]]:
    """Lignes de commande (avec le produit courant si encore présent) groupées par commande."""
    grouped: Dict[str, List[tuple]] = {oid: [] for oid in order_ids}
    if not order_ids:
        return grouped
    rows = db.execute(
        select(OrderItem, Product)
        .outerjoin(Product, Product.id == OrderItem.product_id)
        .where(OrderItem.order_id.in_(order_ids))
        .order_by(OrderItem.order_id, OrderItem.id)
    ).all()
    for item, product in rows:
        grouped.setdefault(item.order_id, []).append((item, product))
    return grouped

def fetch_discounts(db: Session, ids: List[str]) -> Dict[str, Discount]:
    ids = [i for i in ids if i]
    if not ids:
        return {}
    return {d.id: d for d in db.scalars(select(Discount).where(Discount.id.in_(ids)))}
