"""Historique des commandes du client (pagination par curseur signé)."""
from typing import Any, Dict, Optional
import logging

from sqlalchemy.orm import Session

from boutique.orders import repository
from boutique.utils.cursor import Cursor, decode_cursor, encode_cursor

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
MAX_LIMIT = 100

def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None

def _order_to_dict(order, items, discount) -> Dict[str, Any]:
    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "status": order.status,
        "subtotal": order.subtotal,
        "discountAmount": order.discount_amount,
        "shippingFee": order.shipping_fee,
        "taxAmount": order.tax_amount,
        "total": order.total,
        "discountCode": order.discount_code,
        "discount": (
            {"id": discount.id, "code": discount.code, "type": discount.type, "value": discount.value}
            if discount is not None else None
        ),
        "shippingAddress": order.shipping_address or {},
        "paymentReference": order.payment_reference,
        "createdAt": _iso(order.created_at),
        "shippedAt": _iso(order.shipped_at),
        "deliveredAt": _iso(order.delivered_at),
        "items": [
            {
                "id": item.id,
                "productId": item.product_id,
                "productName": item.product_name,
                "quantity": item.quantity,
                "pricePerItem": item.price_per_item,
                "totalPrice": item.total_price,
                "product": (
                    {"id": product.id, "name": product.name, "status": product.status}
                    if product is not None else None
                ),
            }
            for item, product in items
        ],
    }

# module boutique.orders.service
def list_user_orders(
    db: Session,
    user_id: str,
    cursor_token: Optional[str] = None,
    limit: int = DEFAULT_LIMIT,
) -> Dict[str, Any]:
    """
    Page de l'historique: {orders, nextCursor, hasMore}.
    - Uniquement les commandes de user_id, (created_at desc, id desc)
    - limit + 1 lignes lues pour calculer hasMore
    - Curseur illisible ou falsifié: ignoré (première page)
    """
    limit = max(1, min(int(limit or DEFAULT_LIMIT), MAX_LIMIT))
    after = decode_cursor(cursor_token) if cursor_token else None
    if cursor_token and after is None:
        logger.info("orders.list curseur invalide ignoré user=%s", user_id)

    rows = repository.fetch_user_orders(db, user_id, after, limit + 1)
    has_more = len(rows) > limit
    page = rows[:limit]

    items_by_order = repository.fetch_items_for_orders(db, [o.id for o in page])
    discounts = repository.fetch_discounts(db, [o.discount_id for o in page])
    orders = [
        _order_to_dict(o, items_by_order.get(o.id, []), discounts.get(o.discount_id))
        for o in page
    ]

    next_cursor = None
    if has_more and page:
        last = page[-1]
        next_cursor = encode_cursor(Cursor(id=last.id, created_at=last.created_at))
    return {"orders": orders, "nextCursor": next_cursor, "hasMore": has_more}
