"""
Influencer and commission API endpoints (website store)
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from backoffice.core.auth import TokenUser, require_permission
from backoffice.core.responses import success_response
from backoffice.domain.website import CommissionStatusUpdate, InfluencerCreate, InfluencerUpdate
from backoffice.repositories.website_repository import WebsiteRepository, get_website_repository
from backoffice.services.commission_service import CommissionService
from backoffice.services.influencer_service import InfluencerService

router = APIRouter(prefix="/api/v1", tags=["Influencers"])


@router.get("/influencers")
async def list_influencers(
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Search name, email or username"),
    cursor: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=50),
    user: TokenUser = Depends(require_permission("influencers.access")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    result = InfluencerService(repo).list_influencers(status=status, search=search, cursor=cursor, limit=limit)
    return success_response(result)


@router.get("/influencers/{influencer_id}")
async def get_influencer(
    influencer_id: str,
    user: TokenUser = Depends(require_permission("influencers.access")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    return success_response(InfluencerService(repo).get_or_404(influencer_id))


@router.post("/influencers", status_code=201)
async def create_influencer(
    body: InfluencerCreate,
    user: TokenUser = Depends(require_permission("influencers.create")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    return success_response(InfluencerService(repo).create_influencer(body, user), "Influencer created")


@router.put("/influencers/{influencer_id}")
async def update_influencer(
    influencer_id: str,
    body: InfluencerUpdate,
    user: TokenUser = Depends(require_permission("influencers.update")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    result = InfluencerService(repo).update_influencer(influencer_id, body, user)
    return success_response(result, "Influencer updated")


@router.delete("/influencers/{influencer_id}")
async def delete_influencer(
    influencer_id: str,
    user: TokenUser = Depends(require_permission("influencers.delete")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    """Refused while any coupon or commission still points at the influencer"""
    return success_response(InfluencerService(repo).delete_influencer(influencer_id, user), "Influencer deleted")


# ----------------------------------------------------------------------
# Commissions
# ----------------------------------------------------------------------

@router.get("/commissions")
async def list_commissions(
    status: Optional[str] = Query(None, pattern="^(paid|unpaid)$"),
    influencer_id: Optional[str] = Query(None),
    cursor: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=50),
    user: TokenUser = Depends(require_permission("commissions.access")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    result = CommissionService(repo).list_commissions(
        status=status, influencer_id=influencer_id, cursor=cursor, limit=limit
    )
    return success_response(result)


@router.patch("/commissions/paid-status")
async def update_commission_paid_status(
    body: CommissionStatusUpdate,
    user: TokenUser = Depends(require_permission("commissions.update_paid_status")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    result = CommissionService(repo).update_paid_status(body.ids, body.actionType, user)
    return success_response(result, f"{result['updatedCount']} commission(s) updated")
