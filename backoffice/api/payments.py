"""
Payments API endpoints
Razorpay settlements, refunds, payments and downtime for the finance team
"""
from typing import Optional

import razorpay
from fastapi import APIRouter, Depends, Query

from backoffice.core.auth import TokenUser, require_permission
from backoffice.core.responses import success_response
from backoffice.services.payment_service import PaymentService, get_razorpay_client

router = APIRouter(prefix="/api/v1/payments", tags=["Payments"])


@router.get("/balance")
async def get_balance_summary(
    user: TokenUser = Depends(require_permission("payments.access")),
    client: razorpay.Client = Depends(get_razorpay_client),
):
    return success_response(PaymentService(client).get_balance_summary())


@router.get("/refunds")
async def get_refunds(
    count: int = Query(10, ge=1, le=100),
    skip: int = Query(0, ge=0),
    from_ts: Optional[int] = Query(None, alias="from", description="Unix timestamp"),
    to_ts: Optional[int] = Query(None, alias="to", description="Unix timestamp"),
    user: TokenUser = Depends(require_permission("payments.access")),
    client: razorpay.Client = Depends(get_razorpay_client),
):
    return success_response(PaymentService(client).get_refunds(count, skip, from_ts, to_ts))


@router.get("/refunds/search")
async def search_refunds(
    payment_id: Optional[str] = Query(None),
    order_id: Optional[str] = Query(None),
    count: int = Query(10, ge=1, le=100),
    skip: int = Query(0, ge=0),
    user: TokenUser = Depends(require_permission("payments.access")),
    client: razorpay.Client = Depends(get_razorpay_client),
):
    """Refunds for one payment or order; payment_id wins when both are given"""
    return success_response(
        PaymentService(client).search_refunds(payment_id=payment_id, order_id=order_id, count=count, skip=skip)
    )


@router.get("/transactions")
async def get_payments(
    count: int = Query(10, ge=1, le=100),
    skip: int = Query(0, ge=0),
    from_ts: Optional[int] = Query(None, alias="from", description="Unix timestamp"),
    to_ts: Optional[int] = Query(None, alias="to", description="Unix timestamp"),
    user: TokenUser = Depends(require_permission("payments.access")),
    client: razorpay.Client = Depends(get_razorpay_client),
):
    return success_response(PaymentService(client).get_payments(count, skip, from_ts, to_ts))


@router.get("/downtime")
async def get_downtime(
    user: TokenUser = Depends(require_permission("payments.access")),
    client: razorpay.Client = Depends(get_razorpay_client),
):
    return success_response(PaymentService(client).get_downtime())
