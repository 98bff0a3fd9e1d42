# module boutique.utils.csrf
"""
Protection CSRF "double-submit" pour les clients navigateur.

Seules les requêtes mutatives authentifiées par le cookie de session sont contrôlées:
l'en-tête X-CSRF-Token doit égaler le cookie csrf_token. Les appels Bearer
(front SPA, autres services) et le webhook Stripe, authentifié par signature,
passent sans contrôle.
"""
from typing import Optional
import logging
import secrets

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from boutique import config
from boutique.utils.security import COOKIE_NAME

logger = logging.getLogger(__name__)

CSRF_COOKIE_NAME = "csrf_token"
CSRF_HEADER_NAME = "X-CSRF-Token"
CSRF_COOKIE_MAX_AGE = 60 * 60
UNSAFE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
CSRF_EXEMPT_PATHS = frozenset({"/api/v1/payments/webhook"})

def _normalize(path: str) -> str:
    return path.rstrip("/") or "/"

def is_csrf_exempt(path: str) -> bool:
    return _normalize(path) in {_normalize(p) for p in CSRF_EXEMPT_PATHS}

def needs_csrf_check(request: Request) -> bool:
    """Requête mutative portée par le cookie de session, hors chemins exemptés."""
    return (
        request.method.upper() in UNSAFE_METHODS
        and bool(request.cookies.get(COOKIE_NAME))
        and not is_csrf_exempt(request.url.path)
    )

def csrf_token_matches(request: Request) -> bool:
    cookie_token = request.cookies.get(CSRF_COOKIE_NAME) or ""
    header_token = request.headers.get(CSRF_HEADER_NAME) or ""
    return bool(cookie_token and header_token) and secrets.compare_digest(cookie_token, header_token)

def issue_csrf_cookie(response: Response, token: Optional[str] = None) -> str:
    """Pose le cookie csrf_token (lisible par le front, qui le renvoie en en-tête)."""
    token = token or secrets.token_urlsafe(32)
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=token,
        httponly=False,
        secure=config.COOKIE_SECURE,
        samesite="Lax",
        max_age=CSRF_COOKIE_MAX_AGE,
        path="/",
    )
    return token

def register_csrf_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def csrf_protection(request: Request, call_next):
        if needs_csrf_check(request) and not csrf_token_matches(request):
            logger.warning("csrf refusé %s %s", request.method, request.url.path)
            return JSONResponse(
                status_code=403,
                content={"detail": "CSRF verification failed", "code": "csrf_failed"},
            )

        response = await call_next(request)
        if not request.cookies.get(CSRF_COOKIE_NAME):
            issue_csrf_cookie(response)
        return response
