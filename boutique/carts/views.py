import json
import logging
import urllib.parse
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from boutique import config
from boutique.carts import service as carts_service
from boutique.carts.models import AddToCartRequest, GuestCart, GuestCartLine, RemoveFromCartRequest
from boutique.infra.database import get_db
from boutique.utils.errors import NotFoundError
from boutique.utils.rate_limit import optional_rate_limit
from boutique.utils.security import require_user
from boutique.utils.validators import parse_or_raise, safe_parse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/carts", tags=["Carts API"])

# module boutique.carts.views
def _guest_lines_from_cookie(request: Request) -> List[GuestCartLine]:
    """Cookie invité: JSON [{productId, quantity}] (éventuellement URL-encodé). Illisible => panier vide."""
    raw = request.cookies.get(config.GUEST_CART_COOKIE)
    if not raw:
        return []
    try:
        payload = json.loads(urllib.parse.unquote(raw))
    except ValueError:
        return []
    parsed = safe_parse(GuestCart, payload)
    return parsed.data.root if parsed.ok else []

@router.get("")
def read_cart(user: Dict[str, Any] = Depends(require_user), db: Session = Depends(get_db)):
    return {"items": carts_service.get_cart(db, user["id"])}

@router.get("/guest")
def read_guest_cart(request: Request, db: Session = Depends(get_db)):
    """Vue du panier invité (cookie), sans authentification ni écriture."""
    return {"items": carts_service.get_guest_cart(db, _guest_lines_from_cookie(request))}

@router.get("/subtotal")
def read_cart_subtotal(user: Dict[str, Any] = Depends(require_user), db: Session = Depends(get_db)):
    subtotal = carts_service.get_cart_subtotal(db, user["id"])
    if subtotal is None:
        raise NotFoundError("Panier introuvable")
    return subtotal

@router.post("/items", dependencies=[Depends(optional_rate_limit(times=30, seconds=60))])
def add_item(
    payload: Any = Body(default=None),
    user: Dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
):
    """
    Ajoute un produit au panier du compte.
    - Entrée JSON: {"productId": "...", "quantity": 2}
    - Quantité plafonnée au stock courant; prix capturé = prix courant.
    """
    data = parse_or_raise(AddToCartRequest, payload)
    return carts_service.add_to_cart(db, user["id"], data.product_id, data.quantity)

@router.delete("/items/{product_id}")
def remove_item(
    product_id: str,
    quantity: int = 1,
    remove_all: bool = False,
    user: Dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
):
    data = parse_or_raise(RemoveFromCartRequest, {"quantity": quantity, "removeAll": remove_all})
    return carts_service.remove_from_cart(db, user["id"], product_id, data.quantity, data.remove_all)

@router.post("/merge")
def merge_cart(
    request: Request,
    payload: Optional[Any] = Body(default=None),
    user: Dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
):
    """
    Fusionne le panier invité dans le panier du compte (à la connexion).
    - Entrée JSON: [{"productId": "...", "quantity": 1}, ...], sinon lu depuis le cookie invité
    - Réponse: {cartId, mergedItemsCount, updatedItemsCount}; le cookie invité est supprimé
    """
    if payload is None:
        lines = _guest_lines_from_cookie(request)
    else:
        lines = parse_or_raise(GuestCart, payload, message="Panier invité invalide").root
    result = carts_service.merge_guest_cart(db, user["id"], lines)
    response = JSONResponse({"success": True, **result})
    response.delete_cookie(config.GUEST_CART_COOKIE, path="/")
    return response
