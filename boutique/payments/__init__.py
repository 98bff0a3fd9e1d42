"""
Module 'payments' (feature-first): point d'entrée public.
Réunit metadata Stripe, client Stripe, repository BD, checkout et réconciliation.
"""

from .metadata import CheckoutMetadata, LineItemSnapshot, Address, MetadataError, encode_metadata, decode_metadata
from .stripe_client import Verification, require_stripe, initialize, verify, parse_event
from .service import start_checkout, build_line_items
from .reconciliation import ReconciliationResult, reconcile_payment

__all__ = [
    # metadata
    "CheckoutMetadata",
    "LineItemSnapshot",
    "Address",
    "MetadataError",
    "encode_metadata",
    "decode_metadata",
    # stripe
    "Verification",
    "require_stripe",
    "initialize",
    "verify",
    "parse_event",
    # services
    "start_checkout",
    "build_line_items",
    "ReconciliationResult",
    "reconcile_payment",
]
