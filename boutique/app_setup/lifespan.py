"""
Lifespan FastAPI: prépare la base puis le rate limiting, et libère Redis à l'arrêt.

Toggles d'environnement (lus à chaque démarrage, pour les tests):
- DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS=1: rate limiting désactivé
- USE_FAKE_REDIS_FOR_TESTS=1: fakeredis à la place de Redis
- LOCAL_RATE_LIMIT_FALLBACK=1: fenêtre locale en mémoire si Redis est injoignable
"""
from contextlib import asynccontextmanager
import logging
import os

import redis.asyncio as aioredis
from fastapi import FastAPI
from fastapi_limiter import FastAPILimiter

from boutique import config
from boutique.infra.database import init_db

try:
    from fakeredis.aioredis import FakeRedis  # dépendance de test
except ImportError:
    FakeRedis = None

logger = logging.getLogger("uvicorn.error")

def _flag(name: str) -> bool:
    return os.getenv(name) == "1"

def _redis_client():
    if _flag("USE_FAKE_REDIS_FOR_TESTS"):
        if FakeRedis is None:
            raise RuntimeError("USE_FAKE_REDIS_FOR_TESTS=1 mais fakeredis n'est pas installé.")
        return FakeRedis(decode_responses=True)
    return aioredis.from_url(config.RATE_LIMIT_REDIS_URL, encoding="utf-8", decode_responses=True)

async def init_rate_limit(app: FastAPI) -> bool:
    """Initialise FastAPILimiter; renvoie l'état effectif, aussi posé sur app.state.rate_limit_enabled."""
    if _flag("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS"):
        app.state.rate_limit_enabled = False
        logger.info("Rate limiting disabled by DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS")
        return False
    try:
        await FastAPILimiter.init(_redis_client())
        app.state.rate_limit_enabled = True
        logger.info("Rate limiting enabled (redis)")
    except Exception as e:
        # Redis indisponible: le service démarre quand même
        app.state.rate_limit_enabled = _flag("LOCAL_RATE_LIMIT_FALLBACK")
        logger.warning(
            "Rate limiting %s: init error %s",
            "local in-memory fallback" if app.state.rate_limit_enabled else "disabled",
            e,
        )
    return app.state.rate_limit_enabled

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    await init_rate_limit(app)
    yield
    if getattr(FastAPILimiter, "redis", None) is not None:
        await FastAPILimiter.close()
