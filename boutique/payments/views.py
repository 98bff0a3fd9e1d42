import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from boutique.infra.database import get_db
from boutique.payments import stripe_client
from boutique.payments import reconciliation
from boutique.payments import service as payments_service
from boutique.payments.models import CheckoutRequest, ConfirmRequest
from boutique.utils.errors import PaymentVerificationError, SignatureError
from boutique.utils.rate_limit import optional_rate_limit
from boutique.utils.security import require_user
from boutique.utils.validators import parse_or_raise

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])

HANDLED_EVENTS = {
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
    "checkout.session.async_payment_failed",
    "checkout.session.expired",
}

# module boutique.payments.views
@router.post("/checkout", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_checkout(
    payload: Any = Body(default=None),
    user: Dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
):
    """
    Crée une session Checkout Stripe pour le panier de l'utilisateur authentifié.
    - Entrée JSON: adresse (firstName, lastName, street, city, state, postalCode, country) + discountCode
    - Sécurité: require_user + rate limit (10 req / 60s)
    - Réponse: {"url": "...", "reference": "checkout-..."}
    - Erreurs: 422 payload invalide, 400 panier/prix/stock/code promo, 502 Stripe
    """
    data = parse_or_raise(CheckoutRequest, payload)
    return payments_service.start_checkout(db, user, data)

@router.get("/webhook", include_in_schema=False)
async def webhook_probe():
    return {"status": "ok"}

@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(request: Request, db: Session = Depends(get_db)):
    """
    Webhook Stripe (Checkout): la signature est vérifiée avant toute autre étape.
    - 401 si signature absente/invalide (aucun traitement)
    - événements checkout.session.* connus: réconciliation idempotente
    - autres événements: {"status": "ignored"} (200, sans effet)
    - 500 en cas d'échec interne, pour que Stripe réessaie
    """
    payload = await request.body()
    try:
        event = stripe_client.parse_event(payload, request.headers.get("stripe-signature"))
    except SignatureError:
        logger.warning("payments.webhook signature rejetée")
        raise

    event_type = event.get("type")
    if event_type not in HANDLED_EVENTS:
        logger.info("payments.webhook ignored type=%s", event_type)
        return JSONResponse({"status": "ignored"})

    session_obj = ((event.get("data") or {}).get("object") or {})
    session_id = session_obj.get("id")
    if not session_id:
        logger.info("payments.webhook ignored type=%s (pas de session)", event_type)
        return JSONResponse({"status": "ignored"})

    try:
        result = await run_in_threadpool(
            reconciliation.reconcile_payment,
            db,
            session_id,
            reconciliation.WEBHOOK,
            payment_failed=(event_type == "checkout.session.async_payment_failed"),
        )
    except PaymentVerificationError as e:
        # Paiement non abouti: enregistré (pending/failed), rien à réessayer
        pending = e.code == reconciliation.PAYMENT_PENDING
        return JSONResponse({"status": "pending" if pending else "failed"})
    except Exception:
        logger.exception("Erreur webhook_stripe type=%s session_id=%s", event_type, session_id)
        raise HTTPException(status_code=500, detail="Webhook processing failed")

    return JSONResponse({"status": "ok", **result.to_dict()})

@router.get("/confirm")
def confirm_checkout_get(
    session_id: str,
    reference: Optional[str] = None,
    user: Dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
):
    """
    Retour navigateur depuis la page Stripe (alternative/doublon du webhook).
    - Vérifie le paiement et la propriété (utilisateur de session == propriétaire)
    - Réponse: {"status": "ok", "orderId", "reference", "created", "source": "redirect"}
    - Erreurs: 402 paiement non confirmé, 403 paiement d'un autre utilisateur
    """
    result = reconciliation.reconcile_payment(db, session_id, reconciliation.REDIRECT, user_id=user.get("id"))
    if reference and reference != result.reference:
        logger.warning("payments.confirm reference %s != %s", reference, result.reference)
    return {"status": "ok", **result.to_dict()}

@router.post("/confirm")
def confirm_checkout_post(
    request: Request,
    payload: Optional[Any] = Body(default=None),
    user: Dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Variante POST: session_id en query ou JSON {"session_id": "..."}."""
    raw = dict(request.query_params)
    if isinstance(payload, dict):
        raw.update(payload)
    if not raw.get("session_id"):
        raise HTTPException(status_code=400, detail="session_id manquant")
    data = parse_or_raise(ConfirmRequest, raw)
    return confirm_checkout_get(session_id=data.session_id, reference=data.reference, user=user, db=db)
