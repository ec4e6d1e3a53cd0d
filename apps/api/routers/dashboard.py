"""
Dashboard API Router

Home-screen payload for the authenticated client.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError

from core.auth import get_current_user
from core.exceptions import PersistenceError
from models import Client
from schemas import DashboardResponse
from services.dashboard import get_client_dashboard
from services.time_window import local_today

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/dashboard", tags=["Dashboard"])


@router.get("", response_model=DashboardResponse)
def get_dashboard(
    tz: Optional[str] = Query(None, description="IANA timezone of the client"),
    current_user: Client = Depends(get_current_user),
):
    today = local_today(tz or current_user.timezone)
    try:
        return get_client_dashboard(current_user, today)
    except SQLAlchemyError as e:
        logger.error(
            f"Failed to load dashboard: {e}",
            exc_info=True,
            extra={"extra_fields": {"client_id": str(current_user.id)}},
        )
        raise PersistenceError("Failed to load dashboard")
