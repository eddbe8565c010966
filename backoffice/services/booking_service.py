"""
Booking Service
Website service bookings: progress steps, refunds, staff assignment and
Razorpay payment links

A booking tracks its progress as

    progress_steps = {
        "steps": [{step_id, step_name, step_desc, isCompleted, completed_at}, ...],
        "current_step": <name of the last step>,
        "current_step_index": <index of the last step>,
        "isFulfilled": bool,
    }

Steps are only ever appended, except for unmark_fulfilled which removes the
trailing SERVICE_FULFILLED step.

Author: Back Office Team
Date: 2025-11-12
"""
import logging
import re
from typing import Dict, List, Optional

import razorpay
from sqlalchemy.orm import Session

from backoffice.core.auth import TokenUser
from backoffice.core.config import settings
from backoffice.core.errors import ForbiddenError, GatewayError, NotFoundError, ValidationError
from backoffice.domain.website import MAX_BOOKING_MEMBERS, PaymentLinkCreate
from backoffice.repositories.website_repository import (
    PAYMENT_LINKS,
    SERVICE_BOOKINGS,
    WebsiteRepository,
    now_iso,
)
from backoffice.services.assignment_service import load_assignable_users
from backoffice.services.payment_service import RAZORPAY_ERRORS, gateway_call

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50

REFUND_STEPS = ("REFUND_REQUESTED", "REFUND_INITIATED", "REFUND_COMPLETED")

SEARCH_PATTERNS = (
    (re.compile(r"^SBID[0-9a-z]+$", re.IGNORECASE), "service_booking_id"),
    (re.compile(r"^pay_[0-9a-z]+$", re.IGNORECASE), "pay_id"),
    (re.compile(r"^order_[0-9a-z]+$", re.IGNORECASE), "razorpay_order_id"),
    (re.compile(r"^AFIN/INV/\d{4}/\d{2}/\d{4,}$", re.IGNORECASE), "invoiceNumber"),
)


def detect_booking_field(value: str) -> str:
    for pattern, field in SEARCH_PATTERNS:
        if pattern.match(value):
            return field
    raise ValidationError("Unsupported search format", code="INVALID_SEARCH_FORMAT")


def make_step(step_id: str, name: str, desc: str) -> Dict:
    return {
        "step_id": step_id,
        "step_name": name,
        "step_desc": desc,
        "isCompleted": True,
        "completed_at": now_iso(),
    }


def booking_steps(booking: Dict) -> List[Dict]:
    return [dict(step) for step in (booking.get("progress_steps") or {}).get("steps") or []]


def last_step(steps: List[Dict]) -> Optional[Dict]:
    return steps[-1] if steps else None


def progress_with(steps: List[Dict], is_fulfilled: bool, current_index: Optional[int] = None) -> Dict:
    if current_index is None:
        current_index = len(steps) - 1 if steps else None
    current = steps[current_index] if current_index is not None else None
    return {
        "steps": steps,
        "current_step": current["step_name"] if current else None,
        "current_step_index": current_index,
        "isFulfilled": is_fulfilled,
    }


def visibility_keys(user: TokenUser) -> List[str]:
    keys = ["all", f"email:{user.email}"]
    if user.user_code:
        keys.append(f"user_code:{user.user_code}")
    return keys


def assignment_enforced(user: TokenUser) -> bool:
    return settings.ASSIGNMENT_FEATURE_ENABLED and not user.is_super_admin


def build_assigned_keys(assign_to_all: bool, members: List[Dict]) -> List[str]:
    if assign_to_all:
        return ["all"]
    keys = []
    for member in members:
        keys.append(f"email:{member['email']}")
        keys.append(f"user_code:{member['user_code']}")
    return keys


class BookingService:

    def __init__(self, repo: WebsiteRepository, client: Optional[razorpay.Client] = None):
        self.repo = repo
        self.client = client

    def _get(self, booking_id: str) -> Dict:
        booking = self.repo.get(SERVICE_BOOKINGS, booking_id)
        if not booking:
            raise NotFoundError("Service booking not found")
        return booking

    def _save_progress(self, booking_id: str, progress: Dict, **changes) -> Dict:
        changes["progress_steps"] = progress
        changes["updated_at"] = now_iso()
        return self.repo.update(SERVICE_BOOKINGS, booking_id, changes)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_booking(self, booking_id: str, user: TokenUser) -> Dict:
        booking = self._get(booking_id)
        if assignment_enforced(user):
            if not set(booking.get("assignedKeys") or []) & set(visibility_keys(user)):
                raise ForbiddenError("You are not assigned to this booking")
        return booking

    def list_bookings(
        self,
        user: TokenUser,
        cursor: Optional[str] = None,
        limit: int = 20,
        status: Optional[str] = None,
    ) -> Dict:
        if limit <= 0 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        filters = {"master_status": status} if status else None
        overlaps = ("assignedKeys", visibility_keys(user)) if assignment_enforced(user) else None
        bookings, next_cursor = self.repo.list_page(
            SERVICE_BOOKINGS, filters, cursor=cursor, limit=limit, overlaps=overlaps
        )
        return {
            "bookings": bookings,
            "next_cursor": next_cursor,
            "has_more": next_cursor is not None,
            "accessControlEnabled": overlaps is not None,
        }

    def search_bookings(self, value: str, user: TokenUser) -> Dict:
        value = value.strip()
        field = detect_booking_field(value)
        bookings = self.repo.find(SERVICE_BOOKINGS, {field: value})
        if assignment_enforced(user):
            keys = set(visibility_keys(user))
            bookings = [b for b in bookings if keys & set(b.get("assignedKeys") or [])]
        return {
            "matchedField": field,
            "queryValue": value,
            "resultsCount": len(bookings),
            "bookings": bookings,
        }

    # ------------------------------------------------------------------
    # Fulfilment
    # ------------------------------------------------------------------

    def mark_fulfilled(self, booking_ids: List[str], actor: TokenUser) -> List[Dict]:
        """Fulfil each booking independently; refunds in flight block fulfilment"""
        results = []
        for booking_id in dict.fromkeys(booking_ids):
            booking = self.repo.get(SERVICE_BOOKINGS, booking_id)
            if not booking:
                results.append({"id": booking_id, "success": False, "reason": "Service not found"})
                continue

            steps = booking_steps(booking)
            last = last_step(steps)
            if last and last["step_id"] == "SERVICE_FULFILLED":
                results.append({"id": booking_id, "success": False, "reason": "Already fulfilled"})
                continue
            if last and last["step_id"] in REFUND_STEPS:
                results.append({
                    "id": booking_id,
                    "success": False,
                    "reason": f"Cannot fulfill service because last step is {last['step_id']}",
                })
                continue

            for step in steps:
                step["isCompleted"] = True
            steps.append(make_step(
                "SERVICE_FULFILLED", "Process Fulfilled", "Congrats, Your Service Request has Been Completed"
            ))
            updated = self._save_progress(
                booking_id, progress_with(steps, True), master_status="completed", fulfilledBy=actor.id
            )
            results.append({"id": booking_id, "success": True, "service": updated})

        logger.info(
            f"Mark fulfilled by {actor.id}: {sum(1 for r in results if r['success'])}/{len(results)} succeeded"
        )
        return results

    def unmark_fulfilled(self, booking_ids: List[str], actor: TokenUser) -> List[Dict]:
        """Reopen each fulfilled booking at its SERVICE_IN_PROGRESS step"""
        results = []
        for booking_id in dict.fromkeys(booking_ids):
            booking = self.repo.get(SERVICE_BOOKINGS, booking_id)
            if not booking:
                results.append({"id": booking_id, "success": False, "reason": "Service not found"})
                continue

            steps = booking_steps(booking)
            last = last_step(steps)
            if not last or last["step_id"] != "SERVICE_FULFILLED":
                results.append({
                    "id": booking_id,
                    "success": False,
                    "reason": "Last step is not SERVICE_FULFILLED, cannot unmark",
                })
                continue

            steps.pop()
            current_index = None
            for index, step in enumerate(steps):
                if step["step_id"] == "SERVICE_IN_PROGRESS":
                    step["isCompleted"] = False
                    current_index = index
                    break

            updated = self._save_progress(
                booking_id, progress_with(steps, False, current_index), master_status="processing"
            )
            results.append({"id": booking_id, "success": True, "service": updated})

        logger.info(
            f"Unmark fulfilled by {actor.id}: {sum(1 for r in results if r['success'])}/{len(results)} succeeded"
        )
        return results

    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------

    def reject_refund(self, booking_id: str, note: str, actor: TokenUser) -> Dict:
        if not note or not note.strip():
            raise ValidationError("Admin note is required")

        booking = self._get(booking_id)
        refund = booking.get("refundDetails") or {}
        steps = booking_steps(booking)
        last = last_step(steps)

        if refund.get("current_status") == "rejected":
            raise ValidationError("Refund has already been rejected")
        if (booking.get("progress_steps") or {}).get("isFulfilled"):
            raise ValidationError("Service already fulfilled")
        if not last or last["step_id"] != "REFUND_REQUESTED":
            raise ValidationError("Cannot reject refund: last step is not REFUND_REQUESTED")

        for step in steps:
            if step["step_id"] == "REFUND_REQUESTED":
                step["isCompleted"] = True
        steps.append(make_step("REFUND_REJECTED", "Refund Rejected", "Refund request was rejected by the team."))

        refund.update({
            "current_status": "rejected",
            "admin_notes": note.strip(),
            "rejectedAt": now_iso(),
            "rejectedBy": actor.id,
        })
        updated = self._save_progress(booking_id, progress_with(steps, False), refundDetails=refund)
        logger.info(f"Refund rejected for booking {booking_id} by {actor.id}")
        return updated

    def initiate_refund(self, booking_id: str, actor: TokenUser, amount: Optional[float] = None,
                        note: Optional[str] = None) -> Dict:
        """
        Refund the booking's payment through Razorpay and record the
        REFUND_INITIATED step. Without an amount the full payment is refunded.
        """
        booking = self._get(booking_id)
        steps = booking_steps(booking)
        last = last_step(steps)

        if booking.get("master_status") != "in_progress":
            raise ValidationError(f"Cannot initiate refund. Service status is {booking.get('master_status')}")
        if not last or last["step_id"] != "REFUND_REQUESTED":
            raise ValidationError(f"Cannot initiate refund. Last step is {last['step_id'] if last else 'none'}")
        if not booking.get("pay_id"):
            raise ValidationError("Booking has no payment to refund")
        if self.client is None:
            raise GatewayError("Payment gateway is not configured")

        data = {"notes": {"service_booking_id": booking_id, "initiated_by": actor.id}}
        if amount is not None:
            data["amount"] = int(round(amount * 100))
        if note:
            data["notes"]["note"] = note
        refund_response = gateway_call("create refund", self.client.payment.refund, booking["pay_id"], data)

        steps.append(make_step(
            "REFUND_INITIATED", "Refund Initiated", "Refund accepted & team has initiated the process."
        ))
        refund = booking.get("refundDetails") or {}
        refund.update({
            "current_status": "initiated",
            "initiatedAt": now_iso(),
            "initiatedBy": actor.id,
            "razorpay_refund_details": refund_response,
        })
        updated = self._save_progress(booking_id, progress_with(steps, False), refundDetails=refund)
        logger.info(f"Refund {refund_response.get('id')} initiated for booking {booking_id} by {actor.id}")
        return updated

    # ------------------------------------------------------------------
    # Staff assignment
    # ------------------------------------------------------------------

    def assign_members(
        self,
        db: Session,
        booking_id: str,
        member_ids: List[str],
        assign_to_all: bool,
        actor: TokenUser,
    ) -> Dict:
        """
        Replace who may see and work on a booking.

        assignedKeys is what list/search filter on: ["all"] or one
        email:<e> and user_code:<c> pair per member.
        """
        member_ids = list(dict.fromkeys(member_ids))
        if len(member_ids) > MAX_BOOKING_MEMBERS:
            raise ValidationError(f"Maximum of {MAX_BOOKING_MEMBERS} members allowed")

        users = load_assignable_users(db, member_ids)
        self._get(booking_id)

        now = now_iso()
        members = [
            {
                "user_code": u.user_code,
                "name": u.name,
                "email": u.email,
                "assignedAt": now,
                "assignedBy": actor.id,
            }
            for u in users
        ]
        assigned_keys = build_assigned_keys(assign_to_all, members)
        assignment = {"assignToAll": assign_to_all, "members": members, "assignedKeys": assigned_keys}

        self.repo.update(SERVICE_BOOKINGS, booking_id, {
            "assignmentManagement": assignment,
            "assignedKeys": assigned_keys,
            "updated_at": now,
        })
        logger.info(f"Booking {booking_id} assigned to {len(members)} member(s), all={assign_to_all} by {actor.id}")
        return assignment


class PaymentLinkService:

    def __init__(self, repo: WebsiteRepository, client: Optional[razorpay.Client] = None):
        self.repo = repo
        self.client = client

    def _link_payload(self, payload: PaymentLinkCreate, doc_id: str) -> Dict:
        user = payload.user
        item = payload.service or payload.plan
        return {
            "amount": int(round(payload.payment.finalPayment * 100)),
            "currency": payload.payment.currency or "INR",
            "description": f"Payment for {item.name if item and item.name else 'service'}",
            "customer": {
                "name": f"{user.firstName} {user.lastName or ''}".strip(),
                "email": user.email,
                "contact": user.mobile,
            },
            "notify": {"sms": True, "email": True},
            "reminder_enable": True,
            "notes": {"payment_link_doc_id": doc_id},
            "callback_url": settings.PAYMENT_LINK_CALLBACK_URL,
            "callback_method": "get",
        }

    def create_payment_link(self, payload: PaymentLinkCreate, actor: TokenUser) -> Dict:
        """
        The document is written first with isReady=false, so a gateway
        failure still leaves a record (with the error) behind.
        """
        doc = self.repo.insert(PAYMENT_LINKS, {
            "notes": payload.model_dump(mode="json"),
            "isReady": False,
            "createdBy": actor.id,
        })
        doc_id = doc["id"]

        try:
            if self.client is None:
                raise GatewayError("Payment gateway is not configured")
            link = self.client.payment_link.create(self._link_payload(payload, doc_id))
        except Exception as e:
            self.repo.update(PAYMENT_LINKS, doc_id, {"error": str(e) or "Failed to create Razorpay link"})
            logger.error(f"Payment link {doc_id} failed: {e}")
            if isinstance(e, RAZORPAY_ERRORS + (GatewayError,)):
                raise GatewayError("Failed to create payment link", details={"payment_link_id": doc_id})
            raise

        updated = self.repo.update(PAYMENT_LINKS, doc_id, {
            "razorpay_id": link.get("id"),
            "pid": link.get("id"),
            "short_url": link.get("short_url"),
            "status": link.get("status"),
            "expire_by": link.get("expire_by"),
            "reference_id": link.get("reference_id") or "",
            "reminder_enable": link.get("reminder_enable", False),
            "user_id": payload.user.uid or payload.user.email,
            "updated_at": now_iso(),
            "isReady": True,
        })
        logger.info(f"Payment link {link.get('id')} created by {actor.id}")
        return {"paymentLink": link, "record": updated}

    def list_payment_links(self, cursor: Optional[str] = None, limit: int = 20) -> Dict:
        if limit <= 0 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        links, next_cursor = self.repo.list_page(PAYMENT_LINKS, cursor=cursor, limit=limit)
        return {"payment_links": links, "next_cursor": next_cursor, "has_more": next_cursor is not None}
