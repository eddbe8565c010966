"""
Customer Service
Website users: lookup by phone/email/uid, paging, create and profile edits

Author: Back Office Team
Date: 2025-11-11
"""
import logging
import re
from typing import Dict, Optional, Tuple

from backoffice.core.auth import TokenUser
from backoffice.core.errors import ConflictError, NotFoundError, ValidationError
from backoffice.domain.website import CustomerCreate, CustomerUpdate
from backoffice.repositories.website_repository import CUSTOMERS, WebsiteRepository, now_iso

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r"^\+?\d{7,15}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
UID_RE = re.compile(r"^[A-Za-z0-9_-]{10,}$")


def detect_search_field(value: str) -> Tuple[str, str]:
    """
    Work out which customer field a free-text search value refers to.

    Returns (field, normalised value); raises ValidationError with code
    INVALID_SEARCH_FORMAT when nothing matches.
    """
    value = (value or "").strip()
    if PHONE_RE.match(value):
        return "phoneNumber", value
    if EMAIL_RE.match(value):
        return "email", value.lower()
    if UID_RE.match(value):
        return "uid", value
    raise ValidationError("Unsupported search format", code="INVALID_SEARCH_FORMAT")


class CustomerService:

    def __init__(self, repo: WebsiteRepository):
        self.repo = repo

    def get_customer(self, customer_id: str) -> Dict:
        customer = self.repo.get(CUSTOMERS, customer_id)
        if not customer:
            raise NotFoundError("Customer not found", code="CUSTOMER_NOT_FOUND")
        return customer

    def search_customers(self, value: str) -> Dict:
        field, query_value = detect_search_field(value)
        if field == "uid":
            customer = self.repo.get(CUSTOMERS, query_value)
            customers = [customer] if customer else []
        else:
            customers = self.repo.find(CUSTOMERS, {field: query_value})

        if not customers:
            raise NotFoundError(
                "No customers found for the given search value",
                code="CUSTOMER_NOT_FOUND",
                details={"matchedField": field, "queryValue": query_value},
            )
        return {
            "matchedField": field,
            "queryValue": query_value,
            "resultsCount": len(customers),
            "customers": customers,
        }

    def list_customers(self, cursor: Optional[str] = None, limit: int = 20) -> Dict:
        customers, next_cursor = self.repo.list_page(CUSTOMERS, cursor=cursor, limit=limit)
        return {"customers": customers, "next_cursor": next_cursor, "has_more": next_cursor is not None}

    def _assert_unique(self, email: Optional[str], phone: Optional[str], alternate: Optional[str]) -> None:
        duplicates = []
        if email and self.repo.find_one(CUSTOMERS, {"email": email}):
            duplicates.append("email")
        if phone and self.repo.find_one(CUSTOMERS, {"phoneNumber": phone}):
            duplicates.append("phoneNumber")
        if alternate and (
            self.repo.find_one(CUSTOMERS, {"phoneNumber": alternate})
            or self.repo.find_one(CUSTOMERS, {"alternatePhone": alternate})
        ):
            duplicates.append("alternatePhone")
        if duplicates:
            raise ConflictError("Customer already exists", details={"duplicates": duplicates})

    def create_customer(self, payload: CustomerCreate, actor: TokenUser) -> Dict:
        self._assert_unique(payload.email, payload.phoneNumber, payload.alternatePhone)

        doc = payload.model_dump(mode="json", exclude_none=True)
        doc["createdBy"] = actor.id
        doc["createdByAdmin"] = True
        doc["updatedAt"] = now_iso()
        customer = self.repo.insert(CUSTOMERS, doc)

        logger.info(f"Customer {customer['id']} created by {actor.id}")
        return customer

    def update_customer(self, customer_id: str, payload: CustomerUpdate, actor: TokenUser) -> Dict:
        customer = self.get_customer(customer_id)
        changes = payload.model_dump(mode="json", exclude_unset=True)
        if not changes:
            raise ValidationError("No fields to update")

        alternate = changes.get("alternatePhone")
        if alternate and alternate != customer.get("alternatePhone"):
            if alternate == customer.get("phoneNumber"):
                raise ValidationError("Alternate phone cannot match the primary phone")
            self._assert_unique(None, None, alternate)

        changes["updatedAt"] = now_iso()
        changes["updatedBy"] = actor.id
        return self.repo.update(CUSTOMERS, customer_id, changes)
