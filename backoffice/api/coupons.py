"""
Coupon API endpoints (website store)
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from backoffice.core.auth import TokenUser, require_permission
from backoffice.core.responses import success_response
from backoffice.domain.website import CouponCreate, CouponUpdate, CouponValidateRequest, SearchRequest
from backoffice.repositories.website_repository import WebsiteRepository, get_website_repository
from backoffice.services.coupon_service import CouponService

router = APIRouter(prefix="/api/v1/coupons", tags=["Coupons"])


@router.get("")
async def list_coupons(
    state: Optional[str] = Query(None, pattern="^(active|expired|inactive|usedUp)$"),
    cursor: Optional[str] = Query(None, description="next_cursor from the previous page"),
    limit: int = Query(20, ge=1, le=50),
    user: TokenUser = Depends(require_permission("coupons.access")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    return success_response(CouponService(repo).list_coupons(state=state, cursor=cursor, limit=limit))


@router.post("/search")
async def search_coupons(
    body: SearchRequest,
    user: TokenUser = Depends(require_permission("coupons.access")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    return success_response(CouponService(repo).search_coupons(body.value))


@router.post("/validate")
async def validate_coupon(
    body: CouponValidateRequest,
    user: TokenUser = Depends(require_permission("coupons.access")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    """
    Check a code against a service and customer.

    Failures answer with a specific error code (COUPON_EXPIRED,
    COUPON_LIMIT_REACHED, ...) so the caller can tell the customer why.
    """
    result = CouponService(repo).validate_coupon(body.code, body.serviceId, body.customerId)
    return success_response(result, "Coupon is valid")


@router.get("/{coupon_id}")
async def get_coupon(
    coupon_id: str,
    user: TokenUser = Depends(require_permission("coupons.access")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    return success_response(CouponService(repo).get_or_404(coupon_id))


@router.post("", status_code=201)
async def create_coupon(
    body: CouponCreate,
    user: TokenUser = Depends(require_permission("coupons.create")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    return success_response(CouponService(repo).create_coupon(body, user), "Coupon created")


@router.put("/{coupon_id}")
async def update_coupon(
    coupon_id: str,
    body: CouponUpdate,
    user: TokenUser = Depends(require_permission("coupons.update")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    return success_response(CouponService(repo).update_coupon(coupon_id, body, user), "Coupon updated")


@router.delete("/{coupon_id}")
async def delete_coupon(
    coupon_id: str,
    user: TokenUser = Depends(require_permission("coupons.delete")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    return success_response(CouponService(repo).delete_coupon(coupon_id, user), "Coupon deleted")
