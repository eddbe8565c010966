"""
Service booking and payment link API endpoints (website store)
- Listing and search (scoped by staff assignment when enabled)
- Fulfilment and refund steps
- Member assignment
- Razorpay payment links
"""
import logging
from typing import Optional

import razorpay
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser, require_permission
from backoffice.core.database import get_db
from backoffice.core.responses import success_response
from backoffice.domain.website import (
    AssignMembersRequest,
    BookingIdsRequest,
    PaymentLinkCreate,
    RefundInitiateRequest,
    RefundRejectRequest,
    SearchRequest,
)
from backoffice.repositories.website_repository import WebsiteRepository, get_website_repository
from backoffice.services.booking_service import BookingService, PaymentLinkService
from backoffice.services.payment_service import get_razorpay_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Bookings"])


@router.get("/bookings")
async def list_bookings(
    cursor: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=50),
    status: Optional[str] = Query(None, description="master_status"),
    user: TokenUser = Depends(require_permission("bookings.access")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    return success_response(BookingService(repo).list_bookings(user, cursor=cursor, limit=limit, status=status))


@router.post("/bookings/search")
async def search_bookings(
    body: SearchRequest,
    user: TokenUser = Depends(require_permission("bookings.access")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    """Look up by booking id (SBID...), payment id (pay_...), order id (order_...) or invoice number"""
    return success_response(BookingService(repo).search_bookings(body.value, user))


@router.post("/bookings/mark-fulfilled")
async def mark_fulfilled(
    body: BookingIdsRequest,
    user: TokenUser = Depends(require_permission("bookings.mark_fulfilled")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    results = BookingService(repo).mark_fulfilled(body.service_booking_ids, user)
    succeeded = sum(1 for r in results if r["success"])
    return success_response(results, f"{succeeded} of {len(results)} booking(s) marked fulfilled")


@router.post("/bookings/unmark-fulfilled")
async def unmark_fulfilled(
    body: BookingIdsRequest,
    user: TokenUser = Depends(require_permission("bookings.unmark_fulfilled")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    results = BookingService(repo).unmark_fulfilled(body.service_booking_ids, user)
    succeeded = sum(1 for r in results if r["success"])
    return success_response(results, f"{succeeded} of {len(results)} booking(s) unmarked as fulfilled")


@router.get("/bookings/{booking_id}")
async def get_booking(
    booking_id: str,
    user: TokenUser = Depends(require_permission("bookings.access")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    return success_response(BookingService(repo).get_booking(booking_id, user))


@router.post("/bookings/{booking_id}/refund/reject")
async def reject_refund(
    booking_id: str,
    body: RefundRejectRequest,
    user: TokenUser = Depends(require_permission("bookings.reject_refund")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    return success_response(BookingService(repo).reject_refund(booking_id, body.note, user), "Refund rejected")


@router.post("/bookings/{booking_id}/refund/initiate")
async def initiate_refund(
    booking_id: str,
    body: RefundInitiateRequest,
    user: TokenUser = Depends(require_permission("bookings.initiate_refund")),
    repo: WebsiteRepository = Depends(get_website_repository),
    client: razorpay.Client = Depends(get_razorpay_client),
):
    booking = BookingService(repo, client).initiate_refund(booking_id, user, amount=body.amount, note=body.note)
    return success_response(booking, "Refund initiated")


@router.put("/bookings/{booking_id}/members")
async def assign_members(
    booking_id: str,
    body: AssignMembersRequest,
    user: TokenUser = Depends(require_permission("bookings.assign_member")),
    repo: WebsiteRepository = Depends(get_website_repository),
    db: Session = Depends(get_db),
):
    """Members must be active staff accounts; at most 10 per booking"""
    result = BookingService(repo).assign_members(db, booking_id, body.members, body.assign_to_all, user)
    return success_response(result, "Booking members updated")


# ----------------------------------------------------------------------
# Payment links
# ----------------------------------------------------------------------

@router.get("/payment-links")
async def list_payment_links(
    cursor: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=50),
    user: TokenUser = Depends(require_permission("payment_link.access")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    return success_response(PaymentLinkService(repo).list_payment_links(cursor=cursor, limit=limit))


@router.post("/payment-links", status_code=201)
async def create_payment_link(
    body: PaymentLinkCreate,
    user: TokenUser = Depends(require_permission("bookings.create_new_link")),
    repo: WebsiteRepository = Depends(get_website_repository),
    client: razorpay.Client = Depends(get_razorpay_client),
):
    result = PaymentLinkService(repo, client).create_payment_link(body, user)
    return success_response(result, "Payment link created")
