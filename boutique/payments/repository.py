from typing import Any, Dict, Optional
import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from boutique.models import Order, OrderItem, Payment, Product, new_order_number, utcnow

logger = logging.getLogger(__name__)

# ordre des statuts de paiement (un statut plus faible ne remplace pas un plus fort)
STATUS_RANK = {"pending": 0, "failed": 1, "success": 2}

# module boutique.payments.repository
def get_payment_by_reference(db: Session, reference: str) -> Optional[Payment]:
    return db.scalar(select(Payment).where(Payment.reference == reference).limit(1))

def get_order_by_payment_reference(db: Session, reference: str) -> Optional[Order]:
    return db.scalar(select(Order).where(Order.payment_reference == reference).limit(1))

def get_product_for_update(db: Session, product_id: str) -> Optional[Product]:
    """Relit le produit (verrou de ligne sur les SGBD qui le supportent, ignoré par SQLite)."""
    return db.scalar(
        select(Product)
        .where(Product.id == product_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )

def decrement_stock(db: Session, product_id: str, quantity: int) -> bool:
    """
    Décrément conditionnel et atomique: stock = stock - q WHERE stock >= q.
    Retourne False si aucune ligne n'a été modifiée (stock insuffisant entre-temps).
    """
    res = db.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return bool(res.rowcount)

def insert_order(db: Session, **values: Any) -> Order:
    """
    Insère la commande et force l'INSERT (flush): la contrainte unique sur payment_reference s'applique ici.
    Un numéro de commande en collision lève aussi IntegrityError (rejoué par la réconciliation).
    """
    values.setdefault("order_number", new_order_number())
    order = Order(**values)
    db.add(order)
    db.flush()
    return order

def insert_order_item(db: Session, order_id: str, **values: Any) -> OrderItem:
    item = OrderItem(order_id=order_id, **values)
    db.add(item)
    return item

def upsert_payment(
    db: Session,
    reference: str,
    *,
    status: str,
    amount: Optional[int] = None,
    currency: Optional[str] = None,
    order_id: Optional[str] = None,
    raw_response: Optional[Dict[str, Any]] = None,
) -> Payment:
    """
    Crée ou met à jour le paiement identifié par sa référence.
    Jamais de retour en arrière: pending -> failed -> success, un "success" reste "success".
    """
    payment = get_payment_by_reference(db, reference)
    if payment is None:
        payment = Payment(reference=reference, status=status, amount=amount or 0)
        db.add(payment)
    elif STATUS_RANK.get(status, 0) < STATUS_RANK.get(payment.status, 0):
        logger.info("payments.upsert_payment keep %s reference=%s requested=%s", payment.status, reference, status)
        return payment
    else:
        payment.status = status
    if amount is not None:
        payment.amount = amount
    if currency:
        payment.currency = currency
    if order_id:
        payment.order_id = order_id
    if raw_response is not None:
        payment.raw_response = raw_response
    db.flush()
    return payment
