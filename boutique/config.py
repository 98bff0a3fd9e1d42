# boutique.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

"""
Configuration centrale du service boutique.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (base de données, Stripe, curseurs, JWT)
- Expose les montants forfaitaires (livraison, taxe) et la devise du checkout
- Fournit les chemins de redirection du flux de paiement
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _int_env(name: str, default: int = 0) -> int:
    raw = _clean_env(os.getenv(name) or "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default

# Base de données (SQLAlchemy). Postgres en prod, SQLite en local/tests.
DATABASE_URL = _clean_env(os.getenv("DATABASE_URL") or "sqlite:///./boutique.db")
DATABASE_ECHO = (os.getenv("DATABASE_ECHO", "false").lower() == "true")

# Stripe: clé secrète et secret de signature des webhooks
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")

# Montants en unités mineures (centimes). Livraison/taxe: forfaits, pas de calcul.
CURRENCY = _clean_env(os.getenv("CURRENCY") or "eur").lower()
SHIPPING_FEE = _int_env("SHIPPING_FEE", 0)
TAX_AMOUNT = _int_env("TAX_AMOUNT", 0)

# Retour navigateur après la page de paiement hébergée
BASE_URL = _clean_env(os.getenv("BASE_URL") or "http://localhost:8000").rstrip("/")
CHECKOUT_CALLBACK_PATH = os.getenv("CHECKOUT_CALLBACK_PATH", "/payment-callback")
CHECKOUT_CANCEL_PATH = os.getenv("CHECKOUT_CANCEL_PATH", "/checkout?payment=cancel")

# Signature HMAC des curseurs de pagination
CURSOR_SIGNING_KEY = _clean_env(os.getenv("CURSOR_SIGNING_KEY") or "dev-cursor-signing-key")

# JWT émis par le service d'authentification externe
AUTH_JWT_SECRET = _clean_env(os.getenv("AUTH_JWT_SECRET") or "")
AUTH_JWT_ALGORITHMS = [a.strip() for a in os.getenv("AUTH_JWT_ALGORITHMS", "HS256").split(",") if a.strip()]

# Cookies / sécurité
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "false").lower() == "true")
SESSION_SECRET_KEY = _clean_env(os.getenv("SESSION_SECRET_KEY") or "replace_me_with_a_long_random_secret")
GUEST_CART_COOKIE = os.getenv("GUEST_CART_COOKIE", "guest_cart")

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

# Rate limiting (fastapi-limiter + Redis)
RATE_LIMIT_REDIS_URL = _clean_env(os.getenv("RATE_LIMIT_REDIS_URL") or "redis://127.0.0.1:6379/0")

# Serveur (python -m boutique)
HOST = os.getenv("HOST", "0.0.0.0")
PORT = _int_env("PORT", 8000)
LOG_LEVEL = (os.getenv("LOG_LEVEL") or "info").lower()
