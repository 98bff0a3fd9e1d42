"""
Couche schéma pour les payloads non typés (JSON/form).
safe_parse ne lève pas pour une entrée attendue invalide: il renvoie un résultat
étiqueté (ok/data ou ok=False/errors) avec le chemin de chaque champ fautif.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from boutique.utils.errors import ValidationError

M = TypeVar("M", bound=BaseModel)


@dataclass
class ParseResult(Generic[M]):
    ok: bool
    data: Optional[M] = None
    errors: List[Dict[str, Any]] = field(default_factory=list)


def _field_path(loc) -> str:
    return ".".join(str(p) for p in loc) if loc else ""

def safe_parse(model: Type[M], payload: Any) -> ParseResult[M]:
    """
    Valide payload contre un modèle pydantic.
    - Succès: ParseResult(ok=True, data=<instance>)
    - Échec: ParseResult(ok=False, errors=[{"path": "items.0.quantity", "message": "..."}])
    """
    try:
        return ParseResult(ok=True, data=model.model_validate(payload))
    except PydanticValidationError as e:
        errors = [
            {"path": _field_path(err.get("loc")), "message": err.get("msg", "invalide")}
            for err in e.errors()
        ]
        return ParseResult(ok=False, errors=errors)

def parse_or_raise(model: Type[M], payload: Any, message: str = "Données invalides") -> M:
    """Variante pour les vues: lève ValidationError (422) avec les erreurs par champ."""
    result = safe_parse(model, payload)
    if not result.ok:
        raise ValidationError(message, errors=result.errors)
    return result.data
