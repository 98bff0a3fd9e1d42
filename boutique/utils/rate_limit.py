# module boutique.utils.rate_limit
"""
Rate limiting des endpoints sensibles (checkout, ajout panier).
Clé = (session hashée ou IP) + chemin: un compteur par client et par endpoint.
"""
from collections import defaultdict, deque
from typing import Any, Deque, Dict
import hashlib
import logging
import os
import time

from fastapi import HTTPException, Request, Response
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter
from redis.exceptions import RedisError

from boutique.utils.security import session_token

logger = logging.getLogger(__name__)

def _client_key(req: Request) -> str:
    token = session_token(req)
    if token:
        return f"user:{hashlib.sha256(token.encode('utf-8')).hexdigest()[:16]}:{req.url.path}"
    ip = req.client.host if req.client else "local"
    return f"ip:{ip}:{req.url.path}"

async def _identifier(req: Request) -> str:
    return _client_key(req)

def _local_window(request: Request, times: int, seconds: int) -> None:
    """Fenêtre glissante en mémoire (un process), utilisée avec LOCAL_RATE_LIMIT_FALLBACK=1."""
    store: Dict[str, Deque[float]] = getattr(request.app.state, "rate_limit_hits", None)
    if store is None:
        store = defaultdict(deque)
        request.app.state.rate_limit_hits = store
    now = time.monotonic()
    hits = store[_client_key(request)]
    while hits and now - hits[0] >= seconds:
        hits.popleft()
    if len(hits) >= times:
        raise HTTPException(status_code=429, detail="Too Many Requests")
    hits.append(now)

def optional_rate_limit(times: int, seconds: int):
    """
    Dépendance FastAPI tolérante:
    - LOCAL_RATE_LIMIT_FALLBACK=1: fenêtre locale en mémoire
    - app.state.rate_limit_enabled False: aucune limite
    - sinon fastapi-limiter (Redis); une panne Redis laisse passer la requête
    """
    limiter = RateLimiter(times=times, seconds=seconds, identifier=_identifier)

    async def _dep(request: Request, response: Response):
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            _local_window(request, times, seconds)
            return
        if not getattr(request.app.state, "rate_limit_enabled", False):
            return
        try:
            await limiter(request, response)
        except RedisError as e:
            logger.warning("rate limit ignoré (redis): %s", e)
    return _dep

def rate_limit_health_info(request: Request) -> Dict[str, Any]:
    enabled = getattr(request.app.state, "rate_limit_enabled", None)
    ready = FastAPILimiter.redis is not None
    return {
        "enabled": bool(enabled) if enabled is not None else None,
        "ready": ready,
        "backend": "redis" if ready else None,
        "localFallback": os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1",
    }
