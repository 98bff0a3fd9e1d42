"""
Taxonomie d'erreurs métier du service.
Chaque erreur porte un status HTTP et un code stable; les handlers FastAPI
(app_setup.exceptions) les transforment en JSON {"detail", "code"}.
"""
from typing import Any, Dict, List, Optional


class BoutiqueError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code}


class ValidationError(BoutiqueError):
    """Entrée mal formée (erreurs par champ issues de la couche schéma)."""
    status_code = 422
    code = "invalid_input"

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code, "errors": self.errors}


class BusinessRuleError(BoutiqueError):
    """Prix obsolète, stock insuffisant, remise invalide, panier vide. Jamais rejoué."""
    status_code = 400
    code = "business_rule"


class NotFoundError(BoutiqueError):
    status_code = 404
    code = "not_found"


class AuthorizationError(BoutiqueError):
    """Tentative de confirmation d'un paiement appartenant à un autre compte."""
    status_code = 403
    code = "forbidden"


class PaymentVerificationError(BoutiqueError):
    status_code = 402
    code = "payment_not_confirmed"


class IntegrityFailure(BoutiqueError):
    """
    Paiement capturé mais marchandise non réservable (stock épuisé entre le checkout et la confirmation).
    Alerte opérationnelle: aucun remboursement automatique dans ce service.
    """
    status_code = 409
    code = "integrity_failure"


class SignatureError(BoutiqueError):
    status_code = 401
    code = "invalid_signature"


class ProcessorError(BoutiqueError):
    """Échec d'appel au prestataire de paiement (initialisation/vérification)."""
    status_code = 502
    code = "processor_error"
