"""
Construction de l'application (boutique.asgi, tests).
L'ordre d'enregistrement compte: Starlette exécute le dernier middleware ajouté en premier.
"""
from fastapi import FastAPI

from boutique.utils.csrf import register_csrf_middleware
from .exceptions import register_exception_handlers
from .lifespan import lifespan
from .middlewares import register_basic_middlewares, register_no_cache_middleware, register_security_headers_middleware
from .routers import register_routers

API_TITLE = "Boutique checkout & paiements"
API_VERSION = "1.0.0"

def create_app() -> FastAPI:
    app = FastAPI(title=API_TITLE, version=API_VERSION, lifespan=lifespan)
    app.state.rate_limit_enabled = False

    register_basic_middlewares(app)
    register_csrf_middleware(app)
    register_security_headers_middleware(app)
    register_no_cache_middleware(app)

    register_exception_handlers(app)
    register_routers(app)
    return app
