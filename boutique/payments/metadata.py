"""
Métadonnées de checkout transportées par Stripe (écrites une fois, relues à la confirmation).

Le bundle (utilisateur, panier, lignes figées, montants, adresse) est la source
faisant foi pour créer la commande: on ne relit jamais le panier courant.
Stripe limite les métadonnées à 50 clés et 500 caractères par valeur: le JSON est
donc découpé en morceaux checkout_0..checkout_N, avec checkout_parts = N + 1.
"""
import json
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# module boutique.payments.metadata
CHUNK_SIZE = 500
CHUNK_PREFIX = "checkout_"
PARTS_KEY = "checkout_parts"
# 50 clés Stripe moins reference, user_id, cart_id et checkout_parts
MAX_PARTS = 46


class MetadataError(ValueError):
    """Métadonnées absentes, tronquées ou invalides."""


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LineItemSnapshot(_CamelModel):
    product_id: str
    name: Optional[str] = None
    quantity: int = Field(ge=1)
    unit_price: int = Field(ge=0)
    total_price: int = Field(ge=0)


class Address(_CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None

    def to_shipping_snapshot(self) -> Dict[str, str]:
        """Forme stockée sur la commande."""
        return {
            "firstName": self.first_name or "",
            "lastName": self.last_name or "",
            "street": self.street or "",
            "city": self.city or "",
            "state": self.state or "",
            "country": self.country or "",
            "zip": self.postal_code or "",
        }


class CheckoutMetadata(_CamelModel):
    user_id: str
    cart_id: str
    items: List[LineItemSnapshot]
    subtotal: int
    discount_amount: int = 0
    discount_code: Optional[str] = None
    discount_id: Optional[str] = None
    shipping_fee: int = 0
    tax_amount: int = 0
    total: int
    address: Address = Field(default_factory=Address)


def encode_metadata(meta: CheckoutMetadata, reference: Optional[str] = None) -> Dict[str, str]:
    """
    Sérialise le bundle en métadonnées Stripe (toutes les valeurs sont des chaînes).
    Lève MetadataError si le panier est trop volumineux pour Stripe.
    """
    raw = meta.model_dump_json(by_alias=True)
    chunks = [raw[i:i + CHUNK_SIZE] for i in range(0, len(raw), CHUNK_SIZE)] or [""]
    if len(chunks) > MAX_PARTS:
        raise MetadataError(f"Panier trop volumineux pour le paiement ({len(raw)} caractères)")
    out: Dict[str, str] = {f"{CHUNK_PREFIX}{i}": chunk for i, chunk in enumerate(chunks)}
    out[PARTS_KEY] = str(len(chunks))
    out["user_id"] = meta.user_id
    out["cart_id"] = meta.cart_id
    if reference:
        out["reference"] = reference
    return out

def decode_metadata(metadata: Optional[Mapping[str, Any]]) -> CheckoutMetadata:
    """Réassemble les morceaux et valide le bundle. Lève MetadataError si incomplet ou invalide."""
    metadata = metadata or {}
    try:
        parts = int(metadata.get(PARTS_KEY) or 0)
    except (TypeError, ValueError):
        raise MetadataError("checkout_parts invalide")
    if parts <= 0:
        raise MetadataError("Métadonnées de checkout absentes")

    pieces: List[str] = []
    for i in range(parts):
        piece = metadata.get(f"{CHUNK_PREFIX}{i}")
        if piece is None:
            raise MetadataError(f"Morceau de métadonnées manquant: {CHUNK_PREFIX}{i}")
        pieces.append(str(piece))

    try:
        return CheckoutMetadata.model_validate(json.loads("".join(pieces)))
    except ValueError as e:
        # json.JSONDecodeError et pydantic.ValidationError sont des ValueError
        raise MetadataError(f"Métadonnées de checkout invalides: {e}") from e
