"""
Tests for service bookings (fulfilment, refunds, assignment) and payment links

Razorpay is a MagicMock; the booking documents live in the in-memory store.

Author: Back Office Team
Date: 2025-11-14
"""
import pytest
import razorpay

from backoffice.core.config import settings
from backoffice.core.errors import ForbiddenError, GatewayError, ValidationError
from backoffice.domain.website import PaymentLinkCreate
from backoffice.repositories.website_repository import PAYMENT_LINKS, SERVICE_BOOKINGS
from backoffice.services.booking_service import (
    BookingService,
    PaymentLinkService,
    detect_booking_field,
    visibility_keys,
)


def step(step_id, completed=True):
    return {
        "step_id": step_id,
        "step_name": step_id.replace("_", " ").title(),
        "step_desc": "",
        "isCompleted": completed,
        "completed_at": "2025-11-01T00:00:00+00:00",
    }


@pytest.fixture
def make_booking(website_repo):
    """Factory: booking document whose progress ends with the given steps"""
    def _make(*step_ids, **fields):
        steps = [step(s) for s in step_ids or ("PAYMENT_RECEIVED", "SERVICE_IN_PROGRESS")]
        doc = {
            "service_booking_id": "SBID1001",
            "master_status": "in_progress",
            "pay_id": "pay_N1a2b3",
            "progress_steps": {
                "steps": steps,
                "current_step": steps[-1]["step_name"],
                "current_step_index": len(steps) - 1,
                "isFulfilled": False,
            },
        }
        doc.update(fields)
        return website_repo.insert(SERVICE_BOOKINGS, doc)
    return _make


@pytest.fixture
def bookings(website_repo, razorpay_client):
    return BookingService(website_repo, razorpay_client)


def step_ids(booking):
    return [s["step_id"] for s in booking["progress_steps"]["steps"]]


class TestSearch:

    @pytest.mark.parametrize("value, field", [
        ("SBID9f8e7d", "service_booking_id"),
        ("pay_N1a2b3", "pay_id"),
        ("order_Q9w8e7", "razorpay_order_id"),
        ("AFIN/INV/2025/11/0042", "invoiceNumber"),
    ])
    def test_detect_field(self, value, field):
        assert detect_booking_field(value) == field

    def test_unsupported_value(self):
        with pytest.raises(ValidationError) as exc:
            detect_booking_field("hello")

        assert exc.value.code == "INVALID_SEARCH_FORMAT"

    def test_search_by_payment_id(self, bookings, make_booking, manager_actor):
        booking = make_booking()

        result = bookings.search_bookings(" pay_N1a2b3 ", manager_actor)

        assert result["matchedField"] == "pay_id"
        assert [b["id"] for b in result["bookings"]] == [booking["id"]]


class TestAccessControl:

    def test_visibility_keys(self, manager_actor):
        assert visibility_keys(manager_actor) == [
            "all", "email:maya@example.com", f"user_code:{manager_actor.user_code}",
        ]

    def test_disabled_feature_shows_everything(self, bookings, make_booking, viewer_actor):
        make_booking(assignedKeys=["email:someone@example.com"])

        result = bookings.list_bookings(viewer_actor)

        assert len(result["bookings"]) == 1
        assert result["accessControlEnabled"] is False

    def test_enforced_for_staff(self, bookings, make_booking, viewer_actor, monkeypatch):
        monkeypatch.setattr(settings, "ASSIGNMENT_FEATURE_ENABLED", True)
        mine = make_booking(assignedKeys=["email:vic@example.com"])
        shared = make_booking(assignedKeys=["all"])
        hidden = make_booking(assignedKeys=["email:someone@example.com"])

        result = bookings.list_bookings(viewer_actor)

        assert {b["id"] for b in result["bookings"]} == {mine["id"], shared["id"]}
        assert result["accessControlEnabled"] is True
        with pytest.raises(ForbiddenError):
            bookings.get_booking(hidden["id"], viewer_actor)

    def test_super_admin_bypasses_assignment(self, bookings, make_booking, super_actor, monkeypatch):
        monkeypatch.setattr(settings, "ASSIGNMENT_FEATURE_ENABLED", True)
        hidden = make_booking(assignedKeys=[])

        assert bookings.get_booking(hidden["id"], super_actor)["id"] == hidden["id"]

    @pytest.mark.parametrize("limit", [0, 51])
    def test_limit_bounds(self, bookings, viewer_actor, limit):
        with pytest.raises(ValidationError):
            bookings.list_bookings(viewer_actor, limit=limit)


class TestFulfilment:

    def test_mark_fulfilled_per_booking(self, bookings, make_booking, manager_actor):
        open_booking = make_booking()
        done = make_booking("PAYMENT_RECEIVED", "SERVICE_FULFILLED")
        refunding = make_booking("PAYMENT_RECEIVED", "REFUND_REQUESTED")

        results = bookings.mark_fulfilled([open_booking["id"], done["id"], refunding["id"], "missing"], manager_actor)
        by_id = {r["id"]: r for r in results}

        assert by_id[open_booking["id"]]["success"] is True
        assert by_id[done["id"]]["reason"] == "Already fulfilled"
        assert by_id[refunding["id"]]["reason"] == "Cannot fulfill service because last step is REFUND_REQUESTED"
        assert by_id["missing"]["reason"] == "Service not found"

        fulfilled = by_id[open_booking["id"]]["service"]
        assert fulfilled["master_status"] == "completed"
        assert fulfilled["fulfilledBy"] == manager_actor.id
        assert fulfilled["progress_steps"]["isFulfilled"] is True
        assert step_ids(fulfilled)[-1] == "SERVICE_FULFILLED"
        assert fulfilled["progress_steps"]["current_step"] == "Process Fulfilled"

    def test_unmark_reopens_in_progress_step(self, bookings, make_booking, manager_actor):
        booking = make_booking()
        bookings.mark_fulfilled([booking["id"]], manager_actor)

        results = bookings.unmark_fulfilled([booking["id"]], manager_actor)

        assert results[0]["success"] is True
        reopened = results[0]["service"]
        assert step_ids(reopened) == ["PAYMENT_RECEIVED", "SERVICE_IN_PROGRESS"]
        assert reopened["progress_steps"]["isFulfilled"] is False
        assert reopened["progress_steps"]["current_step_index"] == 1
        assert reopened["progress_steps"]["steps"][1]["isCompleted"] is False
        assert reopened["master_status"] == "processing"

    def test_unmark_reports_each_booking(self, bookings, make_booking, manager_actor):
        fulfilled = make_booking()
        bookings.mark_fulfilled([fulfilled["id"]], manager_actor)
        still_open = make_booking()

        results = bookings.unmark_fulfilled(
            [fulfilled["id"], still_open["id"], "missing", fulfilled["id"]], manager_actor
        )
        by_id = {r["id"]: r for r in results}

        assert len(results) == 3
        assert by_id[fulfilled["id"]]["success"] is True
        assert by_id[still_open["id"]]["reason"] == "Last step is not SERVICE_FULFILLED, cannot unmark"
        assert by_id["missing"]["reason"] == "Service not found"
        assert step_ids(bookings.repo.get(SERVICE_BOOKINGS, still_open["id"]))[-1] == "SERVICE_IN_PROGRESS"


class TestRefunds:

    def test_reject_refund(self, bookings, make_booking, manager_actor):
        booking = make_booking("PAYMENT_RECEIVED", "REFUND_REQUESTED")

        rejected = bookings.reject_refund(booking["id"], "  Work already delivered ", manager_actor)

        assert step_ids(rejected)[-1] == "REFUND_REJECTED"
        assert rejected["refundDetails"]["current_status"] == "rejected"
        assert rejected["refundDetails"]["admin_notes"] == "Work already delivered"
        assert rejected["refundDetails"]["rejectedBy"] == manager_actor.id

    def test_reject_needs_note(self, bookings, make_booking, manager_actor):
        booking = make_booking("PAYMENT_RECEIVED", "REFUND_REQUESTED")

        with pytest.raises(ValidationError, match="note"):
            bookings.reject_refund(booking["id"], "  ", manager_actor)

    def test_reject_twice(self, bookings, make_booking, manager_actor):
        booking = make_booking(
            "PAYMENT_RECEIVED", "REFUND_REQUESTED", refundDetails={"current_status": "rejected"}
        )

        with pytest.raises(ValidationError, match="already been rejected"):
            bookings.reject_refund(booking["id"], "again", manager_actor)

    def test_reject_without_request(self, bookings, make_booking, manager_actor):
        booking = make_booking()

        with pytest.raises(ValidationError, match="REFUND_REQUESTED"):
            bookings.reject_refund(booking["id"], "nothing to reject", manager_actor)

    def test_initiate_refund_in_paise(self, bookings, make_booking, razorpay_client, manager_actor):
        razorpay_client.payment.refund.return_value = {"id": "rfnd_1", "amount": 49950}
        booking = make_booking("PAYMENT_RECEIVED", "REFUND_REQUESTED")

        refunded = bookings.initiate_refund(booking["id"], manager_actor, amount=499.5, note="Partial")

        payment_id, data = razorpay_client.payment.refund.call_args.args
        assert payment_id == "pay_N1a2b3"
        assert data["amount"] == 49950
        assert data["notes"]["note"] == "Partial"
        assert step_ids(refunded)[-1] == "REFUND_INITIATED"
        assert refunded["refundDetails"]["current_status"] == "initiated"
        assert refunded["refundDetails"]["razorpay_refund_details"]["id"] == "rfnd_1"

    def test_full_refund_omits_amount(self, bookings, make_booking, razorpay_client, manager_actor):
        razorpay_client.payment.refund.return_value = {"id": "rfnd_2"}
        booking = make_booking("PAYMENT_RECEIVED", "REFUND_REQUESTED")

        bookings.initiate_refund(booking["id"], manager_actor)

        assert "amount" not in razorpay_client.payment.refund.call_args.args[1]

    def test_initiate_requires_in_progress(self, bookings, make_booking, razorpay_client, manager_actor):
        booking = make_booking("PAYMENT_RECEIVED", "REFUND_REQUESTED", master_status="completed")

        with pytest.raises(ValidationError, match="completed"):
            bookings.initiate_refund(booking["id"], manager_actor)
        razorpay_client.payment.refund.assert_not_called()

    def test_gateway_failure(self, bookings, make_booking, razorpay_client, website_repo, manager_actor):
        razorpay_client.payment.refund.side_effect = razorpay.errors.BadRequestError("refund amount too high")
        booking = make_booking("PAYMENT_RECEIVED", "REFUND_REQUESTED")

        with pytest.raises(GatewayError):
            bookings.initiate_refund(booking["id"], manager_actor)

        assert step_ids(website_repo.get(SERVICE_BOOKINGS, booking["id"]))[-1] == "REFUND_REQUESTED"

    def test_unconfigured_gateway(self, website_repo, make_booking, manager_actor):
        booking = make_booking("PAYMENT_RECEIVED", "REFUND_REQUESTED")

        with pytest.raises(GatewayError):
            BookingService(website_repo, None).initiate_refund(booking["id"], manager_actor)


class TestAssignMembers:

    def test_assign_members_builds_keys(self, db, bookings, make_booking, viewer, manager, super_actor):
        booking = make_booking()

        result = bookings.assign_members(db, booking["id"], [viewer.id, manager.id, viewer.id], False, super_actor)

        assert result["assignToAll"] is False
        assert {m["email"] for m in result["members"]} == {"vic@example.com", "maya@example.com"}
        assert set(result["assignedKeys"]) == {
            "email:vic@example.com", f"user_code:{viewer.user_code}",
            "email:maya@example.com", f"user_code:{manager.user_code}",
        }

    def test_assign_to_all(self, db, bookings, make_booking, website_repo, super_actor):
        booking = make_booking()

        bookings.assign_members(db, booking["id"], [], True, super_actor)

        assert website_repo.get(SERVICE_BOOKINGS, booking["id"])["assignedKeys"] == ["all"]

    def test_member_cap(self, db, bookings, make_booking, super_actor):
        with pytest.raises(ValidationError, match="Maximum"):
            bookings.assign_members(db, make_booking()["id"], [f"user-{i}" for i in range(11)], False, super_actor)

    def test_inactive_member_rejected(self, db, bookings, make_booking, make_user, super_actor):
        suspended = make_user(status="SUSPENDED")

        with pytest.raises(ValidationError):
            bookings.assign_members(db, make_booking()["id"], [suspended.id], False, super_actor)


class TestPaymentLinks:

    @pytest.fixture
    def payload(self):
        return PaymentLinkCreate(
            user={"firstName": "Priya", "lastName": "Sharma", "email": "priya@example.com", "mobile": "9876543210"},
            payment={"finalPayment": 1499.99},
            service={"id": "gst-registration", "name": "GST Registration"},
        )

    def test_create_link(self, website_repo, razorpay_client, payload, manager_actor):
        razorpay_client.payment_link.create.return_value = {
            "id": "plink_1", "short_url": "https://rzp.io/i/abc", "status": "created",
        }

        result = PaymentLinkService(website_repo, razorpay_client).create_payment_link(payload, manager_actor)

        sent = razorpay_client.payment_link.create.call_args.args[0]
        assert sent["amount"] == 149999
        assert sent["description"] == "Payment for GST Registration"
        assert sent["customer"]["name"] == "Priya Sharma"
        assert sent["notes"]["payment_link_doc_id"] == result["record"]["id"]

        record = result["record"]
        assert record["isReady"] is True
        assert record["razorpay_id"] == "plink_1"
        assert record["short_url"] == "https://rzp.io/i/abc"
        assert record["user_id"] == "priya@example.com"

    def test_failure_keeps_record_with_error(self, website_repo, razorpay_client, payload, manager_actor):
        razorpay_client.payment_link.create.side_effect = razorpay.errors.ServerError("upstream down")

        with pytest.raises(GatewayError) as exc:
            PaymentLinkService(website_repo, razorpay_client).create_payment_link(payload, manager_actor)

        doc_id = exc.value.details["payment_link_id"]
        stored = website_repo.get(PAYMENT_LINKS, doc_id)
        assert stored["isReady"] is False
        assert "upstream down" in stored["error"]

    def test_unexpected_error_is_recorded_then_raised(self, website_repo, razorpay_client, payload, manager_actor):
        razorpay_client.payment_link.create.side_effect = ConnectionError("connection reset")

        with pytest.raises(ConnectionError):
            PaymentLinkService(website_repo, razorpay_client).create_payment_link(payload, manager_actor)

        stored = website_repo.find_one(PAYMENT_LINKS, {"createdBy": manager_actor.id})
        assert stored["isReady"] is False
        assert stored["error"] == "connection reset"

    def test_unconfigured_gateway_records_error(self, website_repo, payload, manager_actor):
        with pytest.raises(GatewayError) as exc:
            PaymentLinkService(website_repo, None).create_payment_link(payload, manager_actor)

        stored = website_repo.get(PAYMENT_LINKS, exc.value.details["payment_link_id"])
        assert stored["error"] == "Payment gateway is not configured"

    def test_list_limit(self, website_repo):
        with pytest.raises(ValidationError):
            PaymentLinkService(website_repo).list_payment_links(limit=100)
