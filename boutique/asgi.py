"""
ASGI entrypoint: expose `app` pour les process managers / déploiements.

Un process manager (uvicorn, gunicorn -k uvicorn.workers.UvicornWorker) importe `boutique.asgi:app`.
Toute la configuration FastAPI est centralisée dans boutique.app_setup.factory.
"""
import logging

from boutique.app_setup.factory import create_app

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = create_app()
