"""
Adaptateur Stripe: centralise les appels et la configuration Stripe.

Contrat processeur utilisé par le reste du service:
- initialize(...) -> URL de la page de paiement hébergée (Stripe Checkout)
- verify(session_id) -> Verification(reference, status, metadata)
- parse_event(payload, signature) -> événement webhook authentifié

La référence interne (clé d'idempotence) voyage dans client_reference_id;
le handle Stripe de la session (cs_...) sert uniquement à la relire.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import json
import logging

import stripe

from boutique import config
from boutique.utils.errors import ProcessorError, SignatureError, ValidationError

logger = logging.getLogger(__name__)

SUCCESS = "success"

@dataclass
class Verification:
    session_id: str
    reference: Optional[str]
    status: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCESS


# module boutique.payments.stripe_client
def require_stripe():
    """
    Prépare et retourne le module stripe prêt à l'emploi.
    Sans STRIPE_SECRET_KEY les appels échouent côté SDK (No API key provided).
    """
    if config.STRIPE_SECRET_KEY:
        stripe.api_key = config.STRIPE_SECRET_KEY
    return stripe

def to_plain(obj: Any) -> Dict[str, Any]:
    """StripeObject -> dict récursif (l'objet SDK n'est plus un dict dans les versions récentes)."""
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    for attr in ("to_dict_recursive", "to_dict"):
        fn = getattr(obj, attr, None)
        if callable(fn):
            return fn()
    return dict(obj)

def initialize(
    *,
    email: Optional[str],
    amount_minor: int,
    currency: str,
    reference: str,
    callback_url: str,
    cancel_url: str,
    metadata: Dict[str, str],
    description: Optional[str] = None,
) -> str:
    """
    Crée une session Stripe Checkout pour le montant total (une seule ligne).
    - client_reference_id = reference (relu à la vérification)
    - success_url = callback_url?reference=...&session_id={CHECKOUT_SESSION_ID}
    Retour: URL hébergée. Lève ProcessorError si Stripe échoue ou ne renvoie pas d'URL.
    """
    require_stripe()
    sep = "&" if "?" in callback_url else "?"
    success_url = f"{callback_url}{sep}reference={reference}&session_id={{CHECKOUT_SESSION_ID}}"
    params: Dict[str, Any] = {
        "mode": "payment",
        "client_reference_id": reference,
        "line_items": [
            {
                "quantity": 1,
                "price_data": {
                    "currency": currency,
                    "unit_amount": amount_minor,
                    "product_data": {"name": description or f"Commande {reference}"},
                },
            }
        ],
        "success_url": success_url,
        "cancel_url": cancel_url,
        "metadata": metadata,
        "payment_intent_data": {"metadata": {"reference": reference}},
    }
    if email:
        params["customer_email"] = email
    try:
        session = stripe.checkout.Session.create(**params)
    except stripe.StripeError as e:
        logger.exception("stripe.initialize failed reference=%s", reference)
        raise ProcessorError(f"Erreur du processeur de paiement: {getattr(e, 'user_message', None) or e}") from e

    url = to_plain(session).get("url")
    if not url:
        raise ProcessorError("Le processeur de paiement n'a pas renvoyé d'URL")
    return url

def verify(session_id: str) -> Verification:
    """
    Relit la session Stripe et normalise le statut.
    status == "success" ssi payment_status == "paid"; "expired" pour une session expirée;
    sinon le statut Stripe brut (unpaid, no_payment_required...).
    """
    require_stripe()
    try:
        session = to_plain(stripe.checkout.Session.retrieve(session_id))
    except stripe.StripeError as e:
        logger.exception("stripe.verify failed session_id=%s", session_id)
        raise ProcessorError(f"Vérification du paiement impossible: {getattr(e, 'user_message', None) or e}") from e

    metadata = session.get("metadata") or {}
    reference = session.get("client_reference_id") or metadata.get("reference")
    payment_status = session.get("payment_status") or ""
    if payment_status == "paid":
        status = SUCCESS
    elif session.get("status") == "expired":
        status = "expired"
    else:
        status = payment_status or session.get("status") or "unknown"
    return Verification(
        session_id=session.get("id") or session_id,
        reference=reference,
        status=status,
        metadata=dict(metadata),
        amount_total=session.get("amount_total"),
        currency=session.get("currency"),
        raw=session,
    )

def parse_event(payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
    """
    Valide la signature Stripe-Signature (HMAC-SHA256 de "t.body" avec STRIPE_WEBHOOK_SECRET)
    avant toute lecture du contenu, puis décode l'événement JSON.
    Lève SignatureError si l'en-tête manque, si le secret n'est pas configuré ou si la signature diffère.
    """
    secret = config.STRIPE_WEBHOOK_SECRET
    if not secret:
        logger.error("stripe.parse_event STRIPE_WEBHOOK_SECRET non configuré")
        raise SignatureError("Signature invalide")
    if not sig_header:
        raise SignatureError("Signature manquante")
    try:
        stripe.WebhookSignature.verify_header(payload, sig_header, secret, tolerance=300)
    except stripe.SignatureVerificationError as e:
        raise SignatureError("Signature invalide") from e
    try:
        event = json.loads(payload)
    except ValueError as e:
        raise ValidationError("Payload webhook illisible") from e
    if not isinstance(event, dict):
        raise ValidationError("Payload webhook illisible")
    return event
