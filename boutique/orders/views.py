import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from boutique.infra.database import get_db
from boutique.orders import service as orders_service
from boutique.utils.security import require_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/orders", tags=["Orders API"])

# module boutique.orders.views
@router.get("")
def list_my_orders(
    cursor: Optional[str] = None,
    limit: int = Query(default=orders_service.DEFAULT_LIMIT, ge=1, le=orders_service.MAX_LIMIT),
    user: Dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
):
    """
    Historique des commandes de l'utilisateur connecté.
    - cursor: jeton opaque renvoyé par la page précédente (nextCursor)
    - limit: 1..100 (défaut 10)
    """
    return orders_service.list_user_orders(db, user["id"], cursor, limit)
