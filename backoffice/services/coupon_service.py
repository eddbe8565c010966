"""
Coupon Service
Website promo codes: CRUD, redemption checks and discount maths

Author: Back Office Team
Date: 2025-11-11
"""
import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional

from backoffice.core.auth import TokenUser
from backoffice.core.errors import ConflictError, NotFoundError, ValidationError
from backoffice.domain.website import CouponCreate, CouponUpdate
from backoffice.repositories.website_repository import COUPONS, INFLUENCERS, WebsiteRepository, now_iso

logger = logging.getLogger(__name__)


def parse_timestamp(value) -> Optional[datetime]:
    """Stored ISO string (or datetime) as an aware UTC datetime"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def compute_discount(coupon: Dict, amount) -> Dict:
    """
    Discount a coupon grants on `amount`.

    Flat discounts and capped percentages never exceed the amount itself.
    """
    amount = _money(amount)
    discount = coupon.get("discount") or {}
    kind = discount.get("kind")
    value = Decimal(str(discount.get("amount") or 0))

    if kind == "percent":
        off = amount * value / Decimal("100")
        if discount.get("maxDiscount"):
            off = min(off, Decimal(str(discount["maxDiscount"])))
    elif kind == "flat":
        off = value
    else:
        off = Decimal("0")

    off = _money(min(off, amount))
    return {"amount": float(amount), "discount": float(off), "final_amount": float(amount - off)}


def _coupon_error(message: str, code: str, status_code: int = 400) -> ValidationError:
    return ValidationError(message, status_code=status_code, code=code)


class CouponService:

    def __init__(self, repo: WebsiteRepository):
        self.repo = repo

    def get_or_404(self, coupon_id: str) -> Dict:
        coupon = self.repo.get(COUPONS, coupon_id)
        if not coupon:
            raise NotFoundError("Coupon not found", code="COUPON_NOT_FOUND")
        return coupon

    def _assert_influencer(self, influencer_id: Optional[str]) -> None:
        if influencer_id and not self.repo.get(INFLUENCERS, influencer_id):
            raise ValidationError("Influencer not found", details={"influencerId": influencer_id})

    def create_coupon(self, payload: CouponCreate, actor: TokenUser) -> Dict:
        if self.repo.find_one(COUPONS, {"code": payload.code}):
            raise ConflictError(f'Coupon code "{payload.code}" already exists.')
        self._assert_influencer(payload.influencerId)

        doc = payload.model_dump(mode="json", exclude_none=True)
        doc["usageStats"] = {"used": 0}
        doc["usedBy"] = []
        doc["createdBy"] = actor.id
        doc["updatedAt"] = now_iso()

        coupon = self.repo.insert(COUPONS, doc)
        logger.info(f"Coupon {payload.code} created by {actor.id}")
        return coupon

    def update_coupon(self, coupon_id: str, payload: CouponUpdate, actor: TokenUser) -> Dict:
        coupon = self.get_or_404(coupon_id)
        changes = payload.model_dump(mode="json", exclude_unset=True)
        if "influencerId" in changes:
            self._assert_influencer(changes["influencerId"])

        valid_from = parse_timestamp(changes.get("validFrom", coupon.get("validFrom")))
        expires_at = parse_timestamp(changes.get("expiresAt", coupon.get("expiresAt")))
        if valid_from and expires_at and expires_at <= valid_from:
            raise ValidationError("expiresAt must be after validFrom")

        changes["updatedAt"] = now_iso()
        changes["updatedBy"] = actor.id
        return self.repo.update(COUPONS, coupon_id, changes)

    def delete_coupon(self, coupon_id: str, actor: TokenUser) -> Dict:
        coupon = self.get_or_404(coupon_id)
        used = (coupon.get("usageStats") or {}).get("used") or 0
        if coupon.get("state") == "active" and used > 0:
            raise ConflictError("Cannot delete active coupon with existing usage. Consider deactivating instead.")

        self.repo.delete(COUPONS, coupon_id)
        logger.info(f"Coupon {coupon.get('code')} deleted by {actor.id}")
        return {"id": coupon_id, "code": coupon.get("code")}

    def list_coupons(self, state: Optional[str] = None, cursor: Optional[str] = None, limit: int = 20) -> Dict:
        filters = {"state": state} if state else None
        coupons, next_cursor = self.repo.list_page(COUPONS, filters, cursor=cursor, limit=limit)
        return {"coupons": coupons, "next_cursor": next_cursor, "has_more": next_cursor is not None}

    def search_coupons(self, term: str) -> Dict:
        coupons = self.repo.search(COUPONS, ["code", "title"], term.strip())
        return {"coupons": coupons, "resultsCount": len(coupons)}

    def validate_coupon(
        self,
        code: str,
        service_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        usage_by_user: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Dict:
        """
        Check whether a coupon can be redeemed.

        Checks run in a fixed order and the first failure raises with its own
        error code. usage_by_user defaults to the customer's redemptions
        recorded on the coupon.
        """
        coupon = self.repo.find_one(COUPONS, {"code": code.strip().upper()})
        if not coupon:
            raise _coupon_error("Coupon not found", "COUPON_NOT_FOUND", status_code=404)

        if coupon.get("state") != "active":
            raise _coupon_error("Coupon is not active", "COUPON_INACTIVE")

        now = now or datetime.now(timezone.utc)
        valid_from = parse_timestamp(coupon.get("validFrom"))
        if valid_from and now < valid_from:
            raise _coupon_error("Coupon is not yet valid", "COUPON_NOT_YET_VALID")
        expires_at = parse_timestamp(coupon.get("expiresAt"))
        if expires_at and now > expires_at:
            raise _coupon_error("Coupon has expired", "COUPON_EXPIRED")

        linked_services = coupon.get("linkedServices") or []
        if linked_services and service_id and service_id not in linked_services:
            raise _coupon_error("Coupon not valid for this service", "COUPON_SERVICE_MISMATCH")

        linked_customers = coupon.get("linkedCustomers") or []
        if linked_customers and customer_id not in linked_customers:
            raise _coupon_error("Coupon not valid for this customer", "COUPON_CUSTOMER_MISMATCH")

        limits = coupon.get("usageLimits") or {}
        if limits.get("perUser"):
            if usage_by_user is None:
                usage_by_user = sum(1 for uid in coupon.get("usedBy") or [] if uid == customer_id)
            if usage_by_user >= limits["perUser"]:
                raise _coupon_error("Usage limit reached for this customer", "COUPON_USER_LIMIT_REACHED")

        used = (coupon.get("usageStats") or {}).get("used") or 0
        if limits.get("total") and used >= limits["total"]:
            raise _coupon_error("Coupon usage limit reached", "COUPON_LIMIT_REACHED")

        result = {
            "code": coupon["code"],
            "coupon_id": coupon["id"],
            "discount": coupon.get("discount"),
        }
        if coupon.get("isInfluencerCoupon") and coupon.get("influencerId"):
            result["influencerId"] = coupon["influencerId"]
        return result
