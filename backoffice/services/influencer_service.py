"""
Influencer Service
Partner programme members whose coupons earn commission

Author: Back Office Team
Date: 2025-11-11
"""
import logging
from typing import Dict, Optional

from backoffice.core.auth import TokenUser
from backoffice.core.errors import ConflictError, NotFoundError, ValidationError
from backoffice.domain.website import InfluencerCreate, InfluencerUpdate
from backoffice.repositories.website_repository import (
    COMMISSIONS,
    COUPONS,
    INFLUENCERS,
    WebsiteRepository,
    now_iso,
)

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ["name", "email", "username", "referralCode"]


class InfluencerService:

    def __init__(self, repo: WebsiteRepository):
        self.repo = repo

    def get_or_404(self, influencer_id: str) -> Dict:
        influencer = self.repo.get(INFLUENCERS, influencer_id)
        if not influencer:
            raise NotFoundError("Influencer not found", code="INFLUENCER_NOT_FOUND")
        return influencer

    def _assert_unique(self, email: Optional[str], username: Optional[str], exclude_id: Optional[str] = None) -> None:
        for field, value in (("email", email), ("username", username)):
            if not value:
                continue
            existing = self.repo.find_one(INFLUENCERS, {field: value})
            if existing and existing["id"] != exclude_id:
                raise ConflictError(f"Influencer with this {field} already exists")

    def create_influencer(self, payload: InfluencerCreate, actor: TokenUser) -> Dict:
        self._assert_unique(payload.email, payload.username)

        doc = payload.model_dump(mode="json", exclude_none=True)
        doc.update({
            "totalCommissionEarned": 0,
            "totalCommissionPaid": 0,
            "verificationStatus": "pending",
            "createdBy": actor.id,
            "updatedAt": now_iso(),
        })
        influencer = self.repo.insert(INFLUENCERS, doc)
        logger.info(f"Influencer {influencer['id']} ({payload.username}) created by {actor.id}")
        return influencer

    def update_influencer(self, influencer_id: str, payload: InfluencerUpdate, actor: TokenUser) -> Dict:
        self.get_or_404(influencer_id)
        changes = payload.model_dump(mode="json", exclude_unset=True)
        if not changes:
            raise ValidationError("No fields to update")
        self._assert_unique(changes.get("email"), changes.get("username"), exclude_id=influencer_id)

        changes["updatedAt"] = now_iso()
        changes["updatedBy"] = actor.id
        return self.repo.update(INFLUENCERS, influencer_id, changes)

    def delete_influencer(self, influencer_id: str, actor: TokenUser) -> Dict:
        """Blocked while coupons or commission records still point at the influencer"""
        self.get_or_404(influencer_id)

        coupons = self.repo.find(COUPONS, {"influencerId": influencer_id}, limit=1)
        if coupons:
            raise ConflictError("Cannot delete influencer with linked coupons")
        commissions = self.repo.find(COMMISSIONS, {"influencerId": influencer_id}, limit=1)
        if commissions:
            raise ConflictError("Cannot delete influencer with commission records")

        self.repo.delete(INFLUENCERS, influencer_id)
        logger.info(f"Influencer {influencer_id} deleted by {actor.id}")
        return {"id": influencer_id}

    def list_influencers(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        cursor: Optional[str] = None,
        limit: int = 20,
    ) -> Dict:
        if search and search.strip():
            influencers = self.repo.search(INFLUENCERS, SEARCH_FIELDS, search.strip(), limit=limit)
            if status:
                influencers = [i for i in influencers if i.get("status") == status]
            return {"influencers": influencers, "next_cursor": None, "has_more": False}

        filters = {"status": status} if status else None
        influencers, next_cursor = self.repo.list_page(INFLUENCERS, filters, cursor=cursor, limit=limit)
        return {"influencers": influencers, "next_cursor": next_cursor, "has_more": next_cursor is not None}
