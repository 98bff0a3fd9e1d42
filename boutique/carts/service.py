"""Couche service du panier.
Rôles:
- Sous-total du panier d'un compte (prix capturés à l'ajout, pas les prix courants).
- Fusion du panier invité (cookie) dans le panier du compte à la connexion.
- Opérations courantes: ajout plafonné au stock, retrait, lecture avec l'état courant des produits.
Les montants sont en centimes.
"""
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from boutique.carts import repository
from boutique.carts.models import GuestCartLine
from boutique.infra.database import transaction
from boutique.models import CartItem, utcnow
from boutique.utils.errors import BusinessRuleError, NotFoundError

logger = logging.getLogger(__name__)

def _is_available(product) -> bool:
    return product is not None and product.status == "active" and product.stock > 0

def _line_to_dict(item: CartItem, product, quantity: int) -> Dict[str, Any]:
    return {
        "id": item.id,
        "cartId": item.cart_id,
        "productId": item.product_id,
        "quantity": quantity,
        "priceAtAdd": item.price_at_add,
        "product": {
            "id": product.id,
            "name": product.name,
            "price": product.price,
            "stock": product.stock,
            "status": product.status,
        },
    }

def get_cart_subtotal(db: Session, user_id: str) -> Optional[Dict[str, Any]]:
    """
    Sous-total (Σ quantité × prix capturé) et nombre de lignes du panier de l'utilisateur.
    Retourne None si l'utilisateur n'a pas de panier.
    """
    row = repository.cart_subtotal_row(db, user_id)
    if row is None:
        return None
    cart_id, subtotal, item_count = row
    return {"cartId": cart_id, "subtotal": subtotal, "itemCount": item_count}

def aggregate_guest_lines(lines: List[GuestCartLine]) -> Dict[str, int]:
    """Agrège les lignes invitées {productId, quantity} en {product_id: quantité totale}."""
    quantities: Dict[str, int] = {}
    for line in lines or []:
        quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity
    return quantities

def merge_guest_cart(db: Session, user_id: str, lines: List[GuestCartLine]) -> Dict[str, Any]:
    """
    Fusionne le panier invité dans le panier du compte, en une transaction:
    - ligne existante: quantité = min(existante + entrante, stock courant)
    - nouvelle ligne: min(entrante, stock), ignorée si 0
    - produits introuvables ou inactifs: ignorés silencieusement
    Retourne {cartId, mergedItemsCount, updatedItemsCount}.
    """
    quantities = aggregate_guest_lines(lines)
    if not quantities:
        return {"cartId": None, "mergedItemsCount": 0, "updatedItemsCount": 0}

    merged = 0
    updated = 0
    with transaction(db):
        cart = repository.get_or_create_cart(db, user_id)
        products = repository.get_products_by_ids(db, quantities.keys(), active_only=True)

        for product_id, incoming in quantities.items():
            product = products.get(product_id)
            if product is None:
                continue
            existing = repository.get_cart_item(db, cart.id, product_id)
            if existing is not None:
                new_quantity = min(existing.quantity + incoming, product.stock)
                if new_quantity != existing.quantity:
                    existing.quantity = new_quantity
                    updated += 1
            else:
                to_add = min(incoming, product.stock)
                if to_add > 0:
                    db.add(CartItem(
                        cart_id=cart.id,
                        product_id=product_id,
                        quantity=to_add,
                        price_at_add=product.price,
                    ))
                    merged += 1

        cart.updated_at = utcnow()
        cart_id = cart.id

    logger.info("carts.merge user=%s cart=%s merged=%s updated=%s", user_id, cart_id, merged, updated)
    return {"cartId": cart_id, "mergedItemsCount": merged, "updatedItemsCount": updated}

def add_to_cart(db: Session, user_id: str, product_id: str, quantity: int) -> Dict[str, Any]:
    """Ajoute un produit actif; la quantité totale est plafonnée au stock et le prix capturé rafraîchi."""
    with transaction(db):
        product = repository.get_product(db, product_id)
        if product is None or product.status != "active":
            raise NotFoundError("Produit introuvable")
        if product.stock <= 0:
            raise BusinessRuleError("Produit en rupture de stock")

        cart = repository.get_or_create_cart(db, user_id)
        item = repository.get_cart_item(db, cart.id, product_id)
        if item is None:
            item = CartItem(
                cart_id=cart.id,
                product_id=product_id,
                quantity=min(quantity, product.stock),
                price_at_add=product.price,
            )
            db.add(item)
        else:
            item.quantity = min(item.quantity + quantity, product.stock)
            item.price_at_add = product.price
        cart.updated_at = utcnow()
        result = {"cartId": cart.id, "productId": product_id, "quantity": item.quantity}
    return result

def remove_from_cart(
    db: Session,
    user_id: str,
    product_id: str,
    quantity: int = 1,
    remove_all: bool = False,
) -> Dict[str, Any]:
    with transaction(db):
        cart = repository.get_cart_by_user(db, user_id)
        if cart is None:
            raise NotFoundError("Panier introuvable")
        item = repository.get_cart_item(db, cart.id, product_id)
        if item is None:
            raise NotFoundError("Article absent du panier")

        if remove_all or item.quantity <= quantity:
            db.delete(item)
            result = {"cartId": cart.id, "productId": product_id, "removed": True}
        else:
            item.quantity = item.quantity - quantity
            result = {"cartId": cart.id, "productId": product_id, "quantity": item.quantity}
        cart.updated_at = utcnow()
    return result

def get_cart(db: Session, user_id: str) -> List[Dict[str, Any]]:
    """
    Vue courante du panier: masque les produits introuvables, inactifs ou en rupture,
    et plafonne la quantité affichée au stock disponible.
    """
    cart = repository.get_cart_by_user(db, user_id)
    if cart is None:
        return []
    lines: List[Dict[str, Any]] = []
    for item, product in repository.list_cart_lines_with_products(db, cart.id):
        if not _is_available(product):
            continue
        lines.append(_line_to_dict(item, product, min(item.quantity, product.stock)))
    return lines

def get_guest_cart(db: Session, lines: List[GuestCartLine]) -> List[Dict[str, Any]]:
    """Même vue pour un panier invité lu depuis le cookie (aucune écriture)."""
    quantities = aggregate_guest_lines(lines)
    products = repository.get_products_by_ids(db, quantities.keys())
    view: List[Dict[str, Any]] = []
    for product_id, qty in quantities.items():
        product = products.get(product_id)
        if not _is_available(product):
            continue
        view.append({
            "productId": product_id,
            "quantity": min(qty, product.stock),
            "product": {
                "id": product.id,
                "name": product.name,
                "price": product.price,
                "stock": product.stock,
                "status": product.status,
            },
        })
    return view
