from fastapi import Request, HTTPException, Depends
from typing import Any, Dict, Optional
import logging

import jwt

from boutique import config

logger = logging.getLogger(__name__)

COOKIE_NAME = "session_token"

"""
Frontière d'authentification.
L'émission des sessions appartient au service d'auth externe: ici on ne fait que
vérifier le JWT reçu (Bearer prioritaire, cookie en fallback) et exposer l'utilisateur.
"""

def get_user_from_token(token: str) -> Dict[str, Any]:
    """
    Décode le JWT de session (signature + expiration) et normalise l'utilisateur.
    Lève jwt.InvalidTokenError si le jeton est invalide.
    """
    if not config.AUTH_JWT_SECRET:
        raise jwt.InvalidTokenError("AUTH_JWT_SECRET manquant")
    claims = jwt.decode(
        token,
        config.AUTH_JWT_SECRET,
        algorithms=config.AUTH_JWT_ALGORITHMS,
        options={"verify_aud": False},
    )
    return {
        "id": str(claims.get("sub") or claims.get("user_id") or ""),
        "email": claims.get("email") or "",
        "role": claims.get("role") or "user",
    }

def session_token(request: Request) -> Optional[str]:
    # Bearer prioritaire, cookie en fallback
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(COOKIE_NAME) or None

def get_current_user(request: Request) -> Dict[str, Any]:
    token = session_token(request)

    if not token:
        raise HTTPException(status_code=401, detail="Non authentifié")

    try:
        user = get_user_from_token(token)
    except jwt.InvalidTokenError:
        logger.info("security.get_current_user rejected token path=%s", request.url.path)
        raise HTTPException(status_code=401, detail="Session expirée, veuillez vous connecter")
    if not user.get("id"):
        raise HTTPException(status_code=401, detail="Session expirée, veuillez vous connecter")
    return user

def require_user(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return user
