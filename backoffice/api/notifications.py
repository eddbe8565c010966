"""
Notification API endpoints (the signed-in user's inbox)
"""
from typing import List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser, get_current_user
from backoffice.core.database import get_db
from backoffice.core.responses import success_response
from backoffice.services.notification_service import NotificationService

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


class MarkReadRequest(BaseModel):
    notification_ids: List[str] = Field(..., min_length=1, max_length=500)


@router.get("")
async def list_notifications(
    unread_only: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user: TokenUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = NotificationService(db).list_for_user(user.id, unread_only=unread_only, page=page, page_size=page_size)
    return success_response(
        result["notifications"],
        meta={"pagination": result["pagination"], "unread_count": result["unread_count"]},
    )


@router.get("/unread-count")
async def get_unread_count(
    user: TokenUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return success_response({"unread_count": NotificationService(db).unread_count(user.id)})


@router.post("/read")
async def mark_as_read(
    body: MarkReadRequest,
    user: TokenUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    updated = NotificationService(db).mark_as_read(user.id, body.notification_ids)
    return success_response({"updated": updated}, "Notifications marked as read")


@router.post("/read-all")
async def mark_all_as_read(
    user: TokenUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    updated = NotificationService(db).mark_all_as_read(user.id)
    return success_response({"updated": updated}, "All notifications marked as read")
