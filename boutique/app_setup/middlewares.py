"""
Middlewares transverses de l'API.
- register_basic_middlewares: session, CORS, hôtes autorisés, en-têtes X-Forwarded-* du proxy.
- register_security_headers_middleware: en-têtes de sécurité; CSP stricte sauf sur la doc Swagger.
- register_no_cache_middleware: réponses personnelles (panier, commandes, paiements) jamais mises en cache.
La protection CSRF est dans boutique.utils.csrf.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from boutique import config

DOCS_PREFIXES = ("/docs", "/redoc", "/openapi.json")
NO_CACHE_PREFIXES = ("/api/v1/carts", "/api/v1/orders", "/api/v1/payments")

SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "no-referrer",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=(), payment=()",
}
API_CSP = "default-src 'none'; frame-ancestors 'none'"
# Swagger UI charge ses assets depuis jsdelivr
DOCS_CSP = (
    "default-src 'self'; img-src 'self' data: https://fastapi.tiangolo.com; "
    "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
    "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; frame-ancestors 'none'"
)

def _allowed_hosts() -> list:
    # CORS ouvert (dev) => pas de filtrage d'hôte non plus
    return ["*"] if "*" in config.CORS_ORIGINS else config.ALLOWED_HOSTS

def register_basic_middlewares(app: FastAPI) -> None:
    app.add_middleware(SessionMiddleware, secret_key=config.SESSION_SECRET_KEY, https_only=config.COOKIE_SECURE)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-CSRF-Token", "Stripe-Signature"],
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=_allowed_hosts())
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

def register_security_headers_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if config.COOKIE_SECURE:
            response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains")
        is_docs = request.url.path.startswith(DOCS_PREFIXES)
        response.headers["Content-Security-Policy"] = DOCS_CSP if is_docs else API_CSP
        return response

def register_no_cache_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def no_cache_for_personal_data(request: Request, call_next):
        response = await call_next(request)
        if request.url.path.startswith(NO_CACHE_PREFIXES):
            response.headers["Cache-Control"] = "no-store"
            response.headers["Pragma"] = "no-cache"
        return response
