"""
Tests for influencers and their commission payouts

Author: Back Office Team
Date: 2025-11-14
"""
import pytest

from backoffice.core.errors import ConflictError, NotFoundError, ValidationError
from backoffice.domain.website import InfluencerCreate, InfluencerUpdate
from backoffice.repositories.website_repository import COMMISSIONS, COUPONS
from backoffice.services.commission_service import CommissionService
from backoffice.services.influencer_service import InfluencerService


@pytest.fixture
def influencers(website_repo):
    return InfluencerService(website_repo)


@pytest.fixture
def riya(influencers, super_actor):
    return influencers.create_influencer(
        InfluencerCreate(name="Riya Kapoor", email="Riya@Example.com", username="riya_k"), super_actor
    )


class TestInfluencers:

    def test_create_initialises_counters(self, riya, super_actor):
        assert riya["email"] == "riya@example.com"
        assert riya["status"] == "active"
        assert riya["totalCommissionEarned"] == 0
        assert riya["verificationStatus"] == "pending"
        assert riya["createdBy"] == super_actor.id

    def test_email_and_username_unique(self, influencers, riya, super_actor):
        with pytest.raises(ConflictError, match="email"):
            influencers.create_influencer(
                InfluencerCreate(name="Other", email="riya@example.com", username="other"), super_actor
            )
        with pytest.raises(ConflictError, match="username"):
            influencers.create_influencer(
                InfluencerCreate(name="Other", email="other@example.com", username="riya_k"), super_actor
            )

    def test_update_own_username_is_not_a_conflict(self, influencers, riya, super_actor):
        updated = influencers.update_influencer(
            riya["id"], InfluencerUpdate(username="riya_k", bio="Finance creator"), super_actor
        )

        assert updated["bio"] == "Finance creator"

    def test_update_needs_fields(self, influencers, riya, super_actor):
        with pytest.raises(ValidationError):
            influencers.update_influencer(riya["id"], InfluencerUpdate(), super_actor)

    def test_delete_blocked_by_coupons(self, influencers, riya, website_repo, super_actor):
        website_repo.insert(COUPONS, {"code": "RIYA10", "influencerId": riya["id"]})

        with pytest.raises(ConflictError, match="linked coupons"):
            influencers.delete_influencer(riya["id"], super_actor)

    def test_delete_blocked_by_commissions(self, influencers, riya, website_repo, super_actor):
        website_repo.insert(COMMISSIONS, {"influencerId": riya["id"], "status": "unpaid"})

        with pytest.raises(ConflictError, match="commission records"):
            influencers.delete_influencer(riya["id"], super_actor)

    def test_delete(self, influencers, riya, super_actor):
        assert influencers.delete_influencer(riya["id"], super_actor) == {"id": riya["id"]}

        with pytest.raises(NotFoundError):
            influencers.get_or_404(riya["id"])

    def test_search_filters_by_status(self, influencers, riya, super_actor):
        influencers.create_influencer(
            InfluencerCreate(name="Riyaan Mehta", email="riyaan@example.com", username="riyaan", status="inactive"),
            super_actor,
        )

        everyone = influencers.list_influencers(search="riya")
        active = influencers.list_influencers(search="riya", status="active")

        assert len(everyone["influencers"]) == 2
        assert [i["id"] for i in active["influencers"]] == [riya["id"]]
        assert active["has_more"] is False


class TestCommissions:

    @pytest.fixture
    def commissions(self, website_repo):
        unpaid = website_repo.insert(COMMISSIONS, {"influencerId": "inf-1", "status": "unpaid", "amount": 120})
        paid = website_repo.insert(COMMISSIONS, {"influencerId": "inf-1", "status": "paid", "amount": 80})
        return unpaid, paid

    def test_mark_paid_skips_missing_and_already_paid(self, website_repo, commissions, super_actor):
        unpaid, paid = commissions

        result = CommissionService(website_repo).update_paid_status(
            [unpaid["id"], paid["id"], "missing", unpaid["id"]], "markPaid", super_actor
        )

        assert result["newStatus"] == "paid"
        assert result["updated"] == [unpaid["id"]]
        assert result["skipped"] == [paid["id"], "missing"]
        assert (result["updatedCount"], result["skippedCount"]) == (1, 2)

        stored = website_repo.get(COMMISSIONS, unpaid["id"])
        assert stored["status"] == "paid"
        assert stored["paidBy"] == super_actor.id
        assert stored["paidAt"] is not None

    def test_mark_unpaid_clears_payout(self, website_repo, commissions, super_actor):
        _, paid = commissions

        result = CommissionService(website_repo).update_paid_status([paid["id"]], "markUnpaid", super_actor)

        assert result["updatedCount"] == 1
        stored = website_repo.get(COMMISSIONS, paid["id"])
        assert stored["status"] == "unpaid"
        assert stored["paidAt"] is None
        assert stored["paidBy"] is None

    def test_list_filters(self, website_repo, commissions):
        result = CommissionService(website_repo).list_commissions(status="paid", influencer_id="inf-1")

        assert [c["amount"] for c in result["commissions"]] == [80]
