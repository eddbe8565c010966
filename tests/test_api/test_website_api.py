"""
API tests for the website operations: coupons, customers, influencers,
commissions, bookings, payment links, service pricing and Razorpay reports

Author: Back Office Team
Date: 2025-11-14
"""
import pytest
import razorpay

from backoffice.repositories.website_repository import (
    COMMISSIONS,
    CUSTOMERS,
    PAYMENT_LINKS,
    SERVICE_BOOKINGS,
    SERVICE_PRICING_CONFIGS,
)


@pytest.fixture
def super_headers(super_admin, headers_for):
    return headers_for(super_admin)


@pytest.fixture
def coupon_clerk(make_user, headers_for):
    """Staff member who can read coupons but not change them"""
    return headers_for(make_user("VIEW_ONLY", ["coupons.access"], name="Cody Clerk"))


class TestCouponsApi:

    def test_create_then_validate(self, client, super_headers):
        created = client.post(
            "/api/v1/coupons",
            json={"code": "diwali25", "discount": {"kind": "percent", "amount": 25, "maxDiscount": 500}},
            headers=super_headers,
        )
        assert created.status_code == 201
        assert created.json()["data"]["code"] == "DIWALI25"

        validated = client.post("/api/v1/coupons/validate", json={"code": "Diwali25"}, headers=super_headers)

        assert validated.status_code == 200
        assert validated.json()["message"] == "Coupon is valid"
        assert validated.json()["data"]["discount"]["maxDiscount"] == 500

    def test_validation_failure_carries_reason_code(self, client, super_headers):
        client.post(
            "/api/v1/coupons",
            json={"code": "PAUSED", "discount": {"kind": "flat", "amount": 100}, "state": "inactive"},
            headers=super_headers,
        )

        response = client.post("/api/v1/coupons/validate", json={"code": "PAUSED"}, headers=super_headers)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "COUPON_INACTIVE"

    def test_unknown_code_is_404(self, client, super_headers):
        response = client.post("/api/v1/coupons/validate", json={"code": "NOPE"}, headers=super_headers)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "COUPON_NOT_FOUND"

    def test_read_only_staff_cannot_create(self, client, coupon_clerk):
        assert client.get("/api/v1/coupons", headers=coupon_clerk).status_code == 200

        response = client.post(
            "/api/v1/coupons", json={"code": "SNEAKY", "discount": {"kind": "flat", "amount": 1}}, headers=coupon_clerk
        )
        assert response.status_code == 403

    def test_bad_window_rejected_by_schema(self, client, super_headers):
        response = client.post(
            "/api/v1/coupons",
            json={
                "code": "BACKWARDS",
                "discount": {"kind": "flat", "amount": 10},
                "validFrom": "2025-12-01T00:00:00Z",
                "expiresAt": "2025-11-01T00:00:00Z",
            },
            headers=super_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestCustomersApi:

    def test_search_by_email(self, client, website_repo, super_headers):
        website_repo.insert(CUSTOMERS, {"firstName": "Priya", "email": "priya@example.com", "phoneNumber": "9876543210"})

        response = client.post("/api/v1/customers/search", json={"value": "PRIYA@example.com"}, headers=super_headers)

        assert response.status_code == 200
        assert response.json()["data"]["matchedField"] == "email"
        assert response.json()["data"]["resultsCount"] == 1

    def test_search_miss(self, client, super_headers):
        response = client.post("/api/v1/customers/search", json={"value": "9999999999"}, headers=super_headers)

        assert response.status_code == 404
        assert response.json()["error"]["details"] == {"matchedField": "phoneNumber", "queryValue": "9999999999"}

    def test_create_duplicate(self, client, website_repo, super_headers):
        website_repo.insert(CUSTOMERS, {"email": "priya@example.com", "phoneNumber": "9876543210"})

        response = client.post(
            "/api/v1/customers",
            json={"firstName": "Priya", "email": "priya@example.com", "phoneNumber": "9000000000"},
            headers=super_headers,
        )

        assert response.status_code == 409
        assert response.json()["error"]["details"] == {"duplicates": ["email"]}


class TestInfluencersApi:

    def test_create_and_block_delete(self, client, website_repo, super_headers):
        created = client.post(
            "/api/v1/influencers",
            json={"name": "Riya Kapoor", "email": "riya@example.com", "username": "riya_k"},
            headers=super_headers,
        ).json()["data"]
        website_repo.insert(COMMISSIONS, {"influencerId": created["id"], "status": "unpaid"})

        response = client.delete(f"/api/v1/influencers/{created['id']}", headers=super_headers)

        assert response.status_code == 409

    def test_mark_commissions_paid(self, client, website_repo, super_headers):
        commission = website_repo.insert(COMMISSIONS, {"influencerId": "inf-1", "status": "unpaid"})

        response = client.patch(
            "/api/v1/commissions/paid-status",
            json={"ids": [commission["id"], "missing"], "actionType": "markPaid"},
            headers=super_headers,
        )

        assert response.json()["message"] == "1 commission(s) updated"
        assert response.json()["data"]["skipped"] == ["missing"]


class TestBookingsApi:

    @pytest.fixture
    def booking(self, website_repo):
        return website_repo.insert(SERVICE_BOOKINGS, {
            "service_booking_id": "SBID2002",
            "master_status": "in_progress",
            "pay_id": "pay_Z9y8x7",
            "progress_steps": {
                "steps": [{"step_id": "PAYMENT_RECEIVED", "step_name": "Payment Received", "isCompleted": True}],
                "current_step": "Payment Received",
                "current_step_index": 0,
                "isFulfilled": False,
            },
        })

    def test_mark_fulfilled_summary(self, client, booking, super_headers):
        response = client.post(
            "/api/v1/bookings/mark-fulfilled",
            json={"service_booking_ids": [booking["id"], "missing"]},
            headers=super_headers,
        )

        assert response.status_code == 200
        assert response.json()["message"] == "1 of 2 booking(s) marked fulfilled"

    def test_unmark_fulfilled_takes_a_list(self, client, booking, super_headers):
        client.post("/api/v1/bookings/mark-fulfilled", json={"service_booking_ids": [booking["id"]]},
                    headers=super_headers)

        response = client.post(
            "/api/v1/bookings/unmark-fulfilled",
            json={"service_booking_ids": [booking["id"], "missing"]},
            headers=super_headers,
        )

        assert response.status_code == 200
        assert response.json()["message"] == "1 of 2 booking(s) unmarked as fulfilled"
        by_id = {r["id"]: r for r in response.json()["data"]}
        assert by_id[booking["id"]]["service"]["master_status"] == "processing"
        assert by_id["missing"]["success"] is False

    def test_search(self, client, booking, super_headers):
        response = client.post("/api/v1/bookings/search", json={"value": "SBID2002"}, headers=super_headers)

        assert response.json()["data"]["matchedField"] == "service_booking_id"
        assert response.json()["data"]["bookings"][0]["id"] == booking["id"]

    def test_search_bad_format(self, client, super_headers):
        response = client.post("/api/v1/bookings/search", json={"value": "???"}, headers=super_headers)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_SEARCH_FORMAT"

    def test_assign_members(self, client, booking, viewer, super_headers):
        response = client.put(
            f"/api/v1/bookings/{booking['id']}/members", json={"members": [viewer.id]}, headers=super_headers
        )

        assert response.status_code == 200
        assert "email:vic@example.com" in response.json()["data"]["assignedKeys"]

    def test_too_many_members(self, client, booking, super_headers):
        response = client.put(
            f"/api/v1/bookings/{booking['id']}/members",
            json={"members": [f"user-{i}" for i in range(11)]},
            headers=super_headers,
        )

        assert response.status_code == 400


class TestPaymentLinksApi:

    PAYLOAD = {
        "user": {"firstName": "Priya", "email": "priya@example.com", "mobile": "9876543210"},
        "payment": {"finalPayment": 999},
        "plan": {"id": "pro", "name": "Pro Plan"},
    }

    def test_create(self, client, razorpay_client, super_headers):
        razorpay_client.payment_link.create.return_value = {
            "id": "plink_9", "short_url": "https://rzp.io/i/xyz", "status": "created",
        }

        response = client.post("/api/v1/payment-links", json=self.PAYLOAD, headers=super_headers)

        assert response.status_code == 201
        assert response.json()["data"]["record"]["isReady"] is True

    def test_gateway_failure_is_502_with_record(self, client, website_repo, razorpay_client, super_headers):
        razorpay_client.payment_link.create.side_effect = razorpay.errors.GatewayError("timeout")

        response = client.post("/api/v1/payment-links", json=self.PAYLOAD, headers=super_headers)

        assert response.status_code == 502
        error = response.json()["error"]
        assert error["code"] == "PAYMENT_GATEWAY_ERROR"
        assert website_repo.get(PAYMENT_LINKS, error["details"]["payment_link_id"])["isReady"] is False


class TestPaymentsApi:

    def test_refund_search_needs_an_id(self, client, super_headers):
        response = client.get("/api/v1/payments/refunds/search", headers=super_headers)

        assert response.status_code == 400

    def test_refunds_pass_window(self, client, razorpay_client, super_headers):
        razorpay_client.refund.all.return_value = {"count": 0, "items": []}

        response = client.get("/api/v1/payments/refunds", params={"count": 5, "from": 1763078400}, headers=super_headers)

        assert response.json()["data"] == {"count": 0, "items": []}
        razorpay_client.refund.all.assert_called_once_with({"count": 5, "skip": 0, "from": 1763078400})

    def test_downtime(self, client, razorpay_client, super_headers):
        razorpay_client.payment.fetchDownTime.return_value = {"items": [
            {"method": "card", "status": "started", "severity": "medium", "instrument": {"network": "VISA"}},
        ]}

        response = client.get("/api/v1/payments/downtime", headers=super_headers)

        assert response.json()["data"][0]["issues"][0]["instrument"] == "VISA"

    def test_requires_payments_access(self, client, viewer, headers_for):
        response = client.get("/api/v1/payments/balance", headers=headers_for(viewer))

        assert response.status_code == 403


class TestServicePricingApi:

    @pytest.fixture
    def pricing(self, website_repo):
        website_repo.insert(SERVICE_PRICING_CONFIGS, {
            "id": "itr-filing", "slug": "itr-filing",
            "config": {"serviceId": "itr-filing", "plans": [{"name": "Salaried", "price": 799}]},
        })
        return website_repo

    def test_read_and_replace(self, client, pricing, super_headers):
        body = {
            "serviceId": "itr-filing", "slug": "itr-filing",
            "updatedConfig": {"serviceId": "itr-filing", "plans": [{"name": "Salaried", "price": 899}]},
        }

        updated = client.put("/api/v1/service-pricing/itr-filing", json=body, headers=super_headers)
        fetched = client.get("/api/v1/service-pricing/itr-filing", headers=super_headers)

        assert updated.status_code == 200
        assert updated.json()["message"] == "Service configuration updated successfully for 'itr-filing'"
        assert fetched.json()["data"]["plans"] == [{"name": "Salaried", "price": 899}]

    def test_path_must_match_body(self, client, pricing, super_headers):
        body = {"serviceId": "itr-filing", "slug": "itr-filing", "updatedConfig": {"serviceId": "itr-filing"}}

        response = client.put("/api/v1/service-pricing/gst-registration", json=body, headers=super_headers)

        assert response.status_code == 400
        assert pricing.get(SERVICE_PRICING_CONFIGS, "itr-filing")["config"]["plans"][0]["price"] == 799

    def test_unknown_service(self, client, super_headers):
        response = client.get("/api/v1/service-pricing/itr-filing", headers=super_headers)

        assert response.status_code == 404

    def test_requires_pricing_permission(self, client, viewer, headers_for):
        response = client.get("/api/v1/service-pricing/itr-filing", headers=headers_for(viewer))

        assert response.status_code == 403
