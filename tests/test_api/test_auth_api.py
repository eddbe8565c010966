"""
API tests for authentication, staff accounts and the response envelopes

Author: Back Office Team
Date: 2025-11-14
"""
TEST_PASSWORD = "Str0ng!Pass"
NEW_PASSWORD = "N3w!Password"


class TestLogin:

    def test_login_returns_token_and_profile(self, client, manager):
        response = client.post("/api/v1/auth/login", json={"email": "MAYA@example.com", "password": TEST_PASSWORD})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Login successful"
        assert body["data"]["token_type"] == "bearer"
        assert body["data"]["user"]["email"] == "maya@example.com"
        assert "tasks.manage" in body["data"]["user"]["permissions"]
        assert "timestamp" in body["meta"]

    def test_wrong_password_uses_error_envelope(self, client, manager):
        response = client.post("/api/v1/auth/login", json={"email": "maya@example.com", "password": "nope"})

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "UNAUTHORIZED"
        assert body["error"]["message"] == "Invalid email or password"

    def test_suspended_account_with_wrong_password_looks_like_any_failure(self, client, make_user):
        make_user(email="gone@example.com", status="SUSPENDED")

        response = client.post("/api/v1/auth/login", json={"email": "gone@example.com", "password": "nope"})

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid email or password"

    def test_malformed_body_is_a_400(self, client):
        response = client.post("/api/v1/auth/login", json={"email": "not-an-email"})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert {d["field"] for d in error["details"]} == {"email", "password"}

    def test_login_is_rate_limited(self, client, manager):
        statuses = [
            client.post("/api/v1/auth/login", json={"email": "maya@example.com", "password": "wrong"}).status_code
            for _ in range(11)
        ]

        assert statuses[:10] == [401] * 10
        assert statuses[10] == 429


class TestSession:

    def test_me_requires_token(self, client):
        response = client.get("/api/v1/auth/me")

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Authentication required"

    def test_me(self, client, viewer, headers_for):
        response = client.get("/api/v1/auth/me", headers=headers_for(viewer))

        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Vic Viewer"

    def test_garbage_token(self, client):
        response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not.a.jwt"})

        assert response.status_code == 401
        assert response.json()["error"]["message"].startswith("Invalid token")

    def test_change_password(self, client, viewer, headers_for):
        response = client.post(
            "/api/v1/auth/change-password",
            json={"current_password": TEST_PASSWORD, "new_password": NEW_PASSWORD, "confirm_password": NEW_PASSWORD},
            headers=headers_for(viewer),
        )

        assert response.status_code == 200
        login = client.post("/api/v1/auth/login", json={"email": "vic@example.com", "password": NEW_PASSWORD})
        assert login.status_code == 200


class TestForgotPassword:

    def test_same_answer_for_unknown_email(self, client, manager, mail):
        known = client.post("/api/v1/auth/forgot-password", json={"email": "maya@example.com"})
        unknown = client.post("/api/v1/auth/forgot-password", json={"email": "ghost@example.com"})

        assert known.status_code == unknown.status_code == 200
        assert known.json()["message"] == unknown.json()["message"]
        assert mail.send_password_reset_email.call_count == 1

    def test_reset_flow(self, client, manager, mail):
        client.post("/api/v1/auth/forgot-password", json={"email": "maya@example.com"})
        token = mail.send_password_reset_email.call_args.args[2]

        response = client.post(
            "/api/v1/auth/reset-password",
            json={"token": token, "password": NEW_PASSWORD, "confirm_password": NEW_PASSWORD},
        )

        assert response.status_code == 200
        login = client.post("/api/v1/auth/login", json={"email": "maya@example.com", "password": NEW_PASSWORD})
        assert login.status_code == 200


class TestAdminUsers:

    def test_invite_onboard_and_login(self, client, super_admin, headers_for, mail):
        created = client.post(
            "/api/v1/admin-users",
            json={"name": "Nina New", "email": "nina@example.com", "role": "MANAGER"},
            headers=headers_for(super_admin),
        )
        assert created.status_code == 201
        assert created.json()["data"]["status"] == "INACTIVE"

        # Not onboarded yet, so there is no password to match
        early = client.post("/api/v1/auth/login", json={"email": "nina@example.com", "password": NEW_PASSWORD})
        assert early.status_code == 401

        token = mail.send_invitation_email.call_args.args[2]
        onboarded = client.post(
            "/api/v1/auth/onboarding",
            json={"token": token, "password": NEW_PASSWORD, "confirm_password": NEW_PASSWORD},
        )
        assert onboarded.status_code == 200
        assert onboarded.json()["data"]["status"] == "ACTIVE"

        login = client.post("/api/v1/auth/login", json={"email": "nina@example.com", "password": NEW_PASSWORD})
        assert login.status_code == 200

    def test_duplicate_email_conflicts(self, client, super_admin, manager, headers_for, mail):
        response = client.post(
            "/api/v1/admin-users",
            json={"name": "Maya Again", "email": "maya@example.com"},
            headers=headers_for(super_admin),
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"

    def test_listing_requires_permission(self, client, viewer, headers_for):
        response = client.get("/api/v1/admin-users", headers=headers_for(viewer))

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"
        assert "admin_users.access" in response.json()["error"]["message"]

    def test_listing_is_paginated(self, client, super_admin, manager, viewer, headers_for):
        response = client.get("/api/v1/admin-users", params={"page_size": 2}, headers=headers_for(super_admin))

        body = response.json()
        assert len(body["data"]) == 2
        assert body["meta"]["pagination"]["total_items"] == 3
        assert body["meta"]["pagination"]["has_more"] is True

    def test_sync_permissions(self, client, super_admin, viewer, headers_for):
        response = client.put(
            f"/api/v1/admin-users/{viewer.id}/permissions",
            json={"permission_codes": ["tasks.access", "coupons.access"]},
            headers=headers_for(super_admin),
        )

        assert response.status_code == 200
        assert set(response.json()["data"]["permission_codes"]) == {"tasks.access", "coupons.access"}


class TestHealth:

    def test_root(self, client):
        assert client.get("/").json()["status"] == "online"

    def test_health_reports_degraded_database(self, client, monkeypatch):
        def unreachable(**kwargs):
            raise ConnectionError("database unreachable")
        monkeypatch.setattr("backoffice.main.get_db_connection_with_retry", unreachable)

        body = client.get("/health").json()

        assert body["status"] == "degraded"
        assert body["database"]["status"] == "disconnected"
        assert body["database"]["error"] == "database unreachable"
