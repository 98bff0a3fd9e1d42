"""
Gestionnaires d'exceptions.
- BoutiqueError (taxonomie métier): JSON {"detail", "code"} avec le statut porté par l'exception.
- HTTPException: corps JSON FastAPI standard {"detail": ...}.
"""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from boutique.utils.errors import BoutiqueError

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(BoutiqueError)
    async def boutique_error_handler(request: Request, exc: BoutiqueError):
        if exc.status_code >= 500:
            logger.warning("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))
