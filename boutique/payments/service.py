"""Couche service du checkout.
Rôles:
- Revalider côté serveur le panier de l'utilisateur avant tout mouvement d'argent:
  prix capturé == prix courant, stock suffisant, produit actif, code promo valide.
- Calculer le total (sous-total - remise + livraison + taxe, jamais négatif).
- Créer la session Stripe avec une référence unique et le bundle de métadonnées.
Aucun Payment ni Order n'est écrit ici: uniquement à la confirmation du paiement.
"""
from typing import Any, Dict, List
from uuid import uuid4
import logging

from sqlalchemy.orm import Session

from boutique import config
from boutique.carts import repository as carts_repo
from boutique.discounts import service as discounts_service
from boutique.payments import stripe_client
from boutique.payments.metadata import CheckoutMetadata, LineItemSnapshot, MetadataError, encode_metadata
from boutique.payments.models import CheckoutRequest
from boutique.utils.errors import BusinessRuleError

logger = logging.getLogger(__name__)

def new_reference() -> str:
    return f"checkout-{uuid4().hex}"

def callback_url() -> str:
    return f"{config.BASE_URL}{config.CHECKOUT_CALLBACK_PATH}"

def cancel_url() -> str:
    return f"{config.BASE_URL}{config.CHECKOUT_CANCEL_PATH}"

# module boutique.payments.service
def build_line_items(db: Session, cart_id: str) -> List[LineItemSnapshot]:
    """
    Fige les lignes du panier après contrôle contre l'état courant des produits.
    Lève BusinessRuleError au premier écart (pas de re-tarification silencieuse).
    """
    rows = carts_repo.list_cart_lines_with_products(db, cart_id)
    if not rows:
        raise BusinessRuleError("Panier vide")

    snapshots: List[LineItemSnapshot] = []
    for item, product in rows:
        if product is None:
            raise BusinessRuleError(f"Produit {item.product_id} introuvable")
        if product.status != "active":
            raise BusinessRuleError(f"Produit indisponible: {product.name}")
        if item.price_at_add != product.price:
            raise BusinessRuleError(f"Le prix a changé pour {product.name}")
        if product.stock < item.quantity:
            raise BusinessRuleError(f"Stock insuffisant pour {product.name}")
        snapshots.append(LineItemSnapshot(
            product_id=item.product_id,
            name=product.name,
            quantity=item.quantity,
            unit_price=item.price_at_add,
            total_price=item.quantity * item.price_at_add,
        ))
    return snapshots

def start_checkout(db: Session, user: Dict[str, Any], data: CheckoutRequest) -> Dict[str, str]:
    """
    Valide le panier et crée la session de paiement.
    Retour: {"url": <page Stripe>, "reference": <clé d'idempotence>}.
    """
    user_id = user.get("id") or ""
    cart = carts_repo.get_cart_by_user(db, user_id)
    if cart is None:
        raise BusinessRuleError("Panier introuvable")

    items = build_line_items(db, cart.id)
    subtotal = sum(it.total_price for it in items)

    discount_amount = 0
    discount_id = None
    if data.discount_code:
        result = discounts_service.validate_discount(db, subtotal, code=data.discount_code)
        if not result.ok:
            raise BusinessRuleError(result.error or "Code promo invalide")
        discount_amount = result.discount_amount
        discount_id = result.discount.id if result.discount is not None else None

    shipping_fee = config.SHIPPING_FEE
    tax_amount = config.TAX_AMOUNT
    total = max(0, subtotal - discount_amount + shipping_fee + tax_amount)

    reference = new_reference()
    meta = CheckoutMetadata(
        user_id=user_id,
        cart_id=cart.id,
        items=items,
        subtotal=subtotal,
        discount_amount=discount_amount,
        discount_code=data.discount_code if discount_id else None,
        discount_id=discount_id,
        shipping_fee=shipping_fee,
        tax_amount=tax_amount,
        total=total,
        address=data.address(),
    )
    try:
        stripe_metadata = encode_metadata(meta, reference=reference)
    except MetadataError as e:
        raise BusinessRuleError(str(e)) from e

    url = stripe_client.initialize(
        email=user.get("email") or None,
        amount_minor=total,
        currency=config.CURRENCY,
        reference=reference,
        callback_url=callback_url(),
        cancel_url=cancel_url(),
        metadata=stripe_metadata,
    )
    logger.info(
        "payments.checkout user=%s reference=%s subtotal=%s discount=%s total=%s items=%s",
        user_id, reference, subtotal, discount_amount, total, len(items),
    )
    return {"url": url, "reference": reference}
