"""
Réconciliation paiement -> commande (idempotente).

Appelée par le webhook Stripe et par le retour navigateur, éventuellement en
parallèle pour la même référence. Quel que soit le nombre d'appels, une seule
commande est créée et le stock n'est décrémenté qu'une fois:
- garde applicative: paiement déjà "success" ou commande déjà liée à la référence
- garde stockage: contrainte unique orders.payment_reference; le second INSERT
  concurrent échoue (IntegrityError) et est traité comme "déjà traité"

Tout le travail (commande, lignes, stock, paiement, remise, panier) se fait dans
une seule transaction: un échec annule toutes les écritures de la tentative.
"""
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from boutique import config
from boutique.carts import repository as carts_repo
from boutique.discounts import service as discounts_service
from boutique.infra.database import transaction
from boutique.payments import repository as payments_repo
from boutique.payments import stripe_client
from boutique.payments.metadata import CheckoutMetadata, MetadataError, decode_metadata
from boutique.utils.errors import AuthorizationError, IntegrityFailure, PaymentVerificationError

logger = logging.getLogger(__name__)

WEBHOOK = "webhook"
REDIRECT = "redirect"
PAYMENT_PENDING = "payment_pending"
# statuts Stripe définitifs (la session ne sera plus payée)
FAILED_STATUSES = frozenset({"expired", "failed", "canceled"})
MAX_ATTEMPTS = 2

@dataclass(frozen=True)
class ReconciliationResult:
    order_id: Optional[str]
    reference: str
    created: bool
    source: str

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {"orderId": data["order_id"], "reference": data["reference"], "created": data["created"], "source": data["source"]}


# module boutique.payments.reconciliation
def _alert(message: str, reference: str, source: str) -> IntegrityFailure:
    # Alerte opérationnelle: paiement encaissé mais commande non matérialisée (pas de remboursement auto)
    logger.error("payments.reconcile ALERT %s reference=%s source=%s", message, reference, source)
    return IntegrityFailure(message)

def _materialize(db: Session, reference: str, meta: CheckoutMetadata, source: str, raw: Dict[str, Any]) -> ReconciliationResult:
    payment = payments_repo.get_payment_by_reference(db, reference)
    if payment is not None and payment.status == "success":
        existing = payments_repo.get_order_by_payment_reference(db, reference)
        logger.info("payments.reconcile %s: paiement %s déjà traité", source, reference)
        return ReconciliationResult(existing.id if existing else payment.order_id, reference, False, source)

    existing = payments_repo.get_order_by_payment_reference(db, reference)
    if existing is not None:
        logger.info("payments.reconcile %s: commande déjà existante pour %s", source, reference)
        return ReconciliationResult(existing.id, reference, False, source)

    order = payments_repo.insert_order(
        db,
        user_id=meta.user_id,
        subtotal=meta.subtotal,
        discount_amount=meta.discount_amount,
        shipping_fee=meta.shipping_fee,
        tax_amount=meta.tax_amount,
        total=meta.total,
        discount_id=meta.discount_id or None,
        discount_code=meta.discount_code if meta.discount_id else None,
        status="processing",
        shipping_address=meta.address.to_shipping_snapshot(),
        payment_reference=reference,
    )

    for item in meta.items:
        product = payments_repo.get_product_for_update(db, item.product_id)
        if product is None:
            raise _alert(f"Produit {item.product_id} introuvable à la finalisation", reference, source)
        if product.stock < item.quantity:
            raise _alert(f"Stock insuffisant pour {product.name}", reference, source)

        payments_repo.insert_order_item(
            db,
            order.id,
            product_id=item.product_id,
            quantity=item.quantity,
            product_name=item.name or product.name,
            price_per_item=item.unit_price,
            total_price=item.total_price,
        )
        if not payments_repo.decrement_stock(db, item.product_id, item.quantity):
            raise _alert(f"Stock insuffisant pour {product.name}", reference, source)

    payments_repo.upsert_payment(
        db,
        reference,
        status="success",
        amount=meta.total,
        currency=config.CURRENCY,
        order_id=order.id,
        raw_response=raw,
    )
    discounts_service.record_discount_usage(db, meta.discount_id)
    if meta.cart_id:
        carts_repo.delete_cart(db, meta.cart_id)

    return ReconciliationResult(order.id, reference, True, source)

def _record_unsuccessful(db: Session, verification, status: str, source: str) -> None:
    """Enregistre le paiement "pending"/"failed"; une insertion concurrente du même paiement est sans effet."""
    reference = verification.reference
    try:
        with transaction(db):
            payments_repo.upsert_payment(
                db,
                reference,
                status=status,
                amount=verification.amount_total,
                currency=verification.currency,
                raw_response=verification.raw,
            )
    except IntegrityError:
        # l'autre livraison a inséré la ligne entre notre lecture et notre INSERT: on rejoue la mise à jour
        with transaction(db):
            payments_repo.upsert_payment(db, reference, status=status, raw_response=verification.raw)
        logger.info("payments.reconcile %s: paiement %s déjà enregistré (contrainte unique)", source, reference)

def reconcile_payment(
    db: Session,
    session_id: str,
    source: str = WEBHOOK,
    user_id: Optional[str] = None,
    payment_failed: bool = False,
) -> ReconciliationResult:
    """
    Transforme un paiement vérifié en commande, exactement une fois par référence.
    1) Vérifie le paiement auprès de Stripe; non payé => Payment "pending" (ou "failed" si
       l'échec est définitif: événement async_payment_failed, session expirée) + PaymentVerificationError
    2) Relit les métadonnées de checkout (source faisant foi)
    3) Retour navigateur: l'utilisateur de session doit être le propriétaire du paiement
    4) Transaction unique (gardes, commande, lignes, stock, paiement, remise, panier)
    Une violation d'unicité concurrente est traitée comme un succès sans effet.
    """
    verification = stripe_client.verify(session_id)
    reference = verification.reference
    if not reference:
        raise PaymentVerificationError("Référence de paiement absente")

    if not verification.succeeded:
        final = payment_failed or verification.status in FAILED_STATUSES
        status = "failed" if final else "pending"
        _record_unsuccessful(db, verification, status, source)
        logger.info("payments.reconcile %s: paiement %s non confirmé status=%s -> %s", source, reference, verification.status, status)
        if final:
            raise PaymentVerificationError("Paiement non confirmé")
        raise PaymentVerificationError("Paiement en attente de confirmation", code=PAYMENT_PENDING)

    try:
        meta = decode_metadata(verification.metadata)
    except MetadataError as e:
        raise _alert(f"Métadonnées de checkout illisibles: {e}", reference, source) from e

    if source == REDIRECT and meta.user_id != user_id:
        logger.warning("payments.reconcile redirect: utilisateur %s != propriétaire %s reference=%s", user_id, meta.user_id, reference)
        raise AuthorizationError("Ce paiement n'appartient pas à cet utilisateur")

    if verification.amount_total is not None and verification.amount_total != meta.total:
        raise _alert(
            f"Montant payé {verification.amount_total} différent du total attendu {meta.total}",
            reference,
            source,
        )

    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            with transaction(db):
                result = _materialize(db, reference, meta, source, verification.raw)
            break
        except IntegrityError:
            existing = payments_repo.get_order_by_payment_reference(db, reference)
            if existing is not None:
                logger.info("payments.reconcile %s: paiement %s déjà traité (contrainte unique)", source, reference)
                return ReconciliationResult(existing.id, reference, False, source)
            # conflit sans commande pour cette référence (ligne payments concurrente, numéro de commande):
            # la tentative suivante repart des gardes avec un nouveau numéro
            if attempt == MAX_ATTEMPTS:
                raise
            logger.info("payments.reconcile %s: conflit d'unicité pour %s, nouvelle tentative", source, reference)

    if result.created:
        logger.info("payments.reconcile %s: commande %s créée pour %s", source, result.order_id, reference)
    return result
