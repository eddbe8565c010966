"""
Dashboard API endpoint
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser, get_current_user
from backoffice.core.database import get_db
from backoffice.core.responses import success_response
from backoffice.services.dashboard_service import DashboardService

router = APIRouter(prefix="/api/v1/dashboard", tags=["Dashboard"])


@router.get("")
async def get_dashboard(
    user: TokenUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Task counts, my open tasks, unread notifications and (when permitted) billing totals"""
    return success_response(DashboardService(db).get_overview(user))
