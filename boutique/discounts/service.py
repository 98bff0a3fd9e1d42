"""Couche service des codes promo.
Rôles:
- Calcul pur du montant de remise (pourcentage ou montant fixe, plafonds).
- Validation d'un code contre un sous-total: chaque échec renvoie un motif distinct,
  sans lever d'exception pour les cas métier attendus.
- Comptabilisation de l'usage après un paiement confirmé (appelée par la réconciliation).
Granularité temporelle: jour calendaire UTC pour le début et la fin de validité.
"""
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional
import logging

from sqlalchemy.orm import Session

from boutique.discounts import repository
from boutique.models import Discount

logger = logging.getLogger(__name__)

PERCENTAGE = "percentage"
FIXED_TYPES = {"fixed_amount", "fixed"}

@dataclass(frozen=True)
class DiscountResult:
    ok: bool
    discount_amount: int = 0
    error: Optional[str] = None
    discount: Optional[Discount] = None

    @classmethod
    def success(cls, amount: int, discount: Optional[Discount] = None) -> "DiscountResult":
        return cls(ok=True, discount_amount=amount, discount=discount)

    @classmethod
    def failure(cls, error: str) -> "DiscountResult":
        return cls(ok=False, error=error)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()

def _utc_day(value: datetime) -> date:
    # SQLite rend des datetimes naïfs: on les considère en UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).date()

def calculate_discount_amount(discount: Discount, subtotal: int) -> int:
    """
    percentage: floor(subtotal * value / 100), sinon montant fixe.
    Plafonné par maximum_discount_amount puis borné à [0, subtotal].
    """
    if discount.type == PERCENTAGE:
        amount = (subtotal * discount.value) // 100
    else:
        amount = discount.value

    if discount.maximum_discount_amount:
        amount = min(amount, discount.maximum_discount_amount)

    return max(0, min(amount, subtotal))

def evaluate_discount(discount: Optional[Discount], subtotal: int, today: Optional[date] = None) -> DiscountResult:
    today = today or utc_today()
    if discount is None:
        return DiscountResult.failure("Code promo introuvable")
    if not discount.is_active:
        return DiscountResult.failure("Code promo inactif")
    if discount.type != PERCENTAGE and discount.type not in FIXED_TYPES:
        return DiscountResult.failure("Type de remise inconnu")
    if discount.starts_at and today < _utc_day(discount.starts_at):
        return DiscountResult.failure("Code promo pas encore actif")
    if discount.expires_at and today > _utc_day(discount.expires_at):
        return DiscountResult.failure("Code promo expiré")
    if discount.usage_limit is not None and (discount.usage_count or 0) >= discount.usage_limit:
        return DiscountResult.failure("Code promo épuisé (limite d'utilisation atteinte)")
    if discount.minimum_order_amount and subtotal < discount.minimum_order_amount:
        return DiscountResult.failure("Montant minimum de commande non atteint pour ce code promo")
    return DiscountResult.success(calculate_discount_amount(discount, subtotal), discount)

def validate_discount(
    db: Session,
    subtotal: int,
    code: Optional[str] = None,
    discount_id: Optional[str] = None,
    today: Optional[date] = None,
) -> DiscountResult:
    """Charge la remise par code (prioritaire) ou par id, puis applique evaluate_discount."""
    code = (code or "").strip()
    if code:
        discount = repository.get_discount_by_code(db, code)
    elif discount_id:
        discount = repository.get_discount_by_id(db, discount_id)
    else:
        return DiscountResult.failure("Aucun code promo fourni")
    return evaluate_discount(discount, subtotal, today)

def record_discount_usage(db: Session, discount_id: Optional[str]) -> None:
    if not discount_id:
        return
    discount = repository.increment_usage(db, discount_id)
    if discount is None:
        logger.warning("discounts.record_usage discount introuvable id=%s", discount_id)
