from typing import Optional
import logging

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from boutique.models import Discount

logger = logging.getLogger(__name__)

# module boutique.discounts.repository
def get_discount_by_code(db: Session, code: str) -> Optional[Discount]:
    return db.scalar(select(Discount).where(Discount.code == code).limit(1))

def get_discount_by_id(db: Session, discount_id: str) -> Optional[Discount]:
    return db.get(Discount, discount_id)

def increment_usage(db: Session, discount_id: str) -> Optional[Discount]:
    """
    Incrémente usage_count de façon atomique et conditionnelle:
    UPDATE ... SET usage_count = usage_count + 1 WHERE usage_limit IS NULL OR usage_count < usage_limit.
    Le compteur ne dépasse donc jamais la limite, même si deux checkouts ont validé la dernière utilisation.
    Désactive le code lorsque la limite est atteinte.
    Retourne la remise rechargée, ou None si elle n'existe plus.
    """
    res = db.execute(
        update(Discount)
        .where(
            Discount.id == discount_id,
            or_(Discount.usage_limit.is_(None), Discount.usage_count < Discount.usage_limit),
        )
        .values(usage_count=Discount.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    discount = db.get(Discount, discount_id, populate_existing=True)
    if discount is None:
        return None
    if not res.rowcount:
        # paiement déjà encaissé: la commande est créée, seul le compteur reste à la limite
        logger.warning(
            "discounts.increment_usage limite déjà atteinte code=%s usage=%s limit=%s",
            discount.code, discount.usage_count, discount.usage_limit,
        )
    if discount.usage_limit is not None and discount.usage_count >= discount.usage_limit and discount.is_active:
        discount.is_active = False
        db.flush()
        logger.info("discounts.increment_usage deactivated code=%s usage=%s", discount.code, discount.usage_count)
    return discount
