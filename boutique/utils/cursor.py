"""
Curseurs de pagination opaques et signés (keyset pagination).

Format: base64url(JSON {"payload": "<json {createdAt,id}>", "signature": "<hmac-sha256 hex>"}).
Le client ne peut ni forger un curseur ni sauter des lignes: decode_cursor
renvoie None dès que le jeton est illisible ou que la signature ne correspond pas.

Ordre attendu côté requête: (created_at desc, id desc); "après le curseur":
created_at < c.created_at OR (created_at = c.created_at AND id < c.id).
"""
from datetime import datetime
from typing import Optional
import base64
import binascii
import hashlib
import hmac
import json

from pydantic import BaseModel, ConfigDict, ValidationError

from boutique import config


class Cursor(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    created_at: datetime


def _sign(payload: str, key: str) -> str:
    return hmac.new(key.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()

def encode_cursor(cursor: Cursor, key: Optional[str] = None) -> str:
    """Sérialise (createdAt, id), signe le payload et encode le tout en base64url."""
    key = key or config.CURSOR_SIGNING_KEY
    payload = json.dumps(
        {"createdAt": cursor.created_at.isoformat(), "id": cursor.id},
        separators=(",", ":"),
        sort_keys=True,
    )
    envelope = json.dumps({"payload": payload, "signature": _sign(payload, key)}, separators=(",", ":"))
    return base64.urlsafe_b64encode(envelope.encode("utf-8")).decode("ascii")

def decode_cursor(token: str, key: Optional[str] = None) -> Optional[Cursor]:
    """
    Inverse de encode_cursor. Ne lève jamais:
    - base64/JSON illisible, champ manquant, signature invalide => None
    - forme non canonique du jeton (bits de bourrage modifiés) => None
    """
    key = key or config.CURSOR_SIGNING_KEY
    if not token or not isinstance(token, str):
        return None
    try:
        raw = base64.urlsafe_b64decode(token.encode("ascii"))
        if base64.urlsafe_b64encode(raw).decode("ascii") != token:
            return None
        envelope = json.loads(raw.decode("utf-8"))
        payload = envelope["payload"]
        signature = envelope["signature"]
        if not isinstance(payload, str) or not isinstance(signature, str):
            return None
        if not hmac.compare_digest(signature, _sign(payload, key)):
            return None
        data = json.loads(payload)
        return Cursor(id=data["id"], created_at=data["createdAt"])
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError, ValidationError):
        return None
