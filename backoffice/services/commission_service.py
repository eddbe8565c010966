"""
Commission Service
Influencer commissions and their payout status

Author: Back Office Team
Date: 2025-11-11
"""
import logging
from typing import Dict, List, Optional

from backoffice.core.auth import TokenUser
from backoffice.repositories.website_repository import COMMISSIONS, WebsiteRepository, now_iso

logger = logging.getLogger(__name__)

PAID = "paid"
UNPAID = "unpaid"


class CommissionService:

    def __init__(self, repo: WebsiteRepository):
        self.repo = repo

    def list_commissions(
        self,
        status: Optional[str] = None,
        influencer_id: Optional[str] = None,
        cursor: Optional[str] = None,
        limit: int = 20,
    ) -> Dict:
        filters = {}
        if status:
            filters["status"] = status
        if influencer_id:
            filters["influencerId"] = influencer_id
        commissions, next_cursor = self.repo.list_page(COMMISSIONS, filters, cursor=cursor, limit=limit)
        return {"commissions": commissions, "next_cursor": next_cursor, "has_more": next_cursor is not None}

    def update_paid_status(self, ids: List[str], action: str, actor: TokenUser) -> Dict:
        """
        Mark commissions paid or unpaid.

        Missing ids and commissions already in the target status are skipped.
        """
        is_paid = action == "markPaid"
        target = PAID if is_paid else UNPAID
        now = now_iso()

        updated: List[str] = []
        skipped: List[str] = []
        for commission_id in dict.fromkeys(ids):
            commission = self.repo.get(COMMISSIONS, commission_id)
            if not commission or commission.get("status") == target:
                skipped.append(commission_id)
                continue

            self.repo.update(COMMISSIONS, commission_id, {
                "status": target,
                "updatedAt": now,
                "paidAt": now if is_paid else None,
                "paidBy": actor.id if is_paid else None,
            })
            updated.append(commission_id)

        logger.info(f"Commissions {action}: {len(updated)} updated, {len(skipped)} skipped by {actor.id}")
        return {
            "actionType": action,
            "newStatus": target,
            "updated": updated,
            "skipped": skipped,
            "updatedCount": len(updated),
            "skippedCount": len(skipped),
        }
