from typing import Any, Dict
import logging

from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from boutique.infra.database import SessionLocal, get_engine
from boutique.models import Order, Payment, Product

logger = logging.getLogger(__name__)

def _count(db, model) -> Dict[str, Any]:
    try:
        return {"ok": True, "rows": db.scalar(select(func.count()).select_from(model)) or 0}
    except SQLAlchemyError as e:
        return {"ok": False, "error": str(e)}

def health_db_info() -> Dict[str, Any]:
    """Ping SQL + comptage des tables principales (diagnostic, ne lève pas)."""
    engine = get_engine()
    info: Dict[str, Any] = {
        "url": engine.url.render_as_string(hide_password=True),
        "dialect": engine.dialect.name,
        "connect_ok": False,
        "error": None,
        "tables": {},
    }
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        info["connect_ok"] = True
        for name, model in (("products", Product), ("orders", Order), ("payments", Payment)):
            info["tables"][name] = _count(db, model)
    except SQLAlchemyError as e:
        logger.warning("health.db ping failed: %s", e)
        info["error"] = str(e)
    finally:
        db.close()
    return info
