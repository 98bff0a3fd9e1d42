"""
Accès base de données (SQLAlchemy).
- Un engine par process, créé paresseusement depuis DATABASE_URL.
- SessionLocal: fabrique de sessions partagée par les repositories.
- get_db: dépendance FastAPI (une session par requête).
- transaction: unité de travail commit/rollback (tout ou rien).
"""
from contextlib import contextmanager
from typing import Iterator, Optional
import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from boutique.config import DATABASE_URL, DATABASE_ECHO

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)

# module boutique.infra.database
def _make_engine(url: str) -> Engine:
    kwargs = {"echo": DATABASE_ECHO}
    if url.startswith("sqlite"):
        # Sessions partagées entre threads (TestClient, gateways concurrents)
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
        if ":memory:" in url or url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
    return create_engine(url, **kwargs)

def configure_engine(url: str) -> Engine:
    """
    (Re)crée l'engine global et rebinde SessionLocal.
    Utilisé au démarrage et par les tests (SQLite mémoire / fichier temporaire).
    """
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = _make_engine(url)
    SessionLocal.configure(bind=_engine)
    return _engine

def get_engine() -> Engine:
    if _engine is None:
        configure_engine(DATABASE_URL)
    return _engine

def init_db() -> None:
    """Crée les tables manquantes (pas de migrations dans ce service)."""
    from boutique.models.tables import Base
    Base.metadata.create_all(bind=get_engine())
    logger.info("database tables ready url=%s", get_engine().url.render_as_string(hide_password=True))

def get_db() -> Iterator[Session]:
    """Dépendance FastAPI: ouvre une session et la ferme en fin de requête."""
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Unité de travail: commit si le bloc se termine, rollback sinon.
    Toute exception est propagée après rollback (rien n'est partiellement écrit).
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
