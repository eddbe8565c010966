"""
Pytest fixtures and configuration for the Back Office API tests

Services run against an in-memory SQLite database (one per test), the
website store is replaced with an in-memory repository and Razorpay with
a MagicMock.

Author: Back Office Team
Date: 2025-11-14
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTH_SECRET", "test-secret")

from typing import Dict, List, Optional  # noqa: E402
from unittest.mock import MagicMock, patch  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from backoffice import models  # noqa: E402,F401
from backoffice.core.auth import TokenUser, create_access_token, hash_password  # noqa: E402
from backoffice.core.database import Base, get_db, utcnow  # noqa: E402
from backoffice.core.rate_limit import rate_limiter  # noqa: E402
from backoffice.models import AdminUser, Entity  # noqa: E402
from backoffice.repositories.website_repository import (  # noqa: E402
    WebsiteRepository,
    get_website_repository,
)
from backoffice.services.payment_service import get_razorpay_client  # noqa: E402
from backoffice.services.permission_service import PermissionService  # noqa: E402

TEST_PASSWORD = "Str0ng!Pass"


class InMemoryWebsiteRepository(WebsiteRepository):
    """Dict-backed stand-in for the Supabase tables, same interface and ordering"""

    def __init__(self):
        super().__init__(client=None)
        self.collections: Dict[str, Dict[str, Dict]] = {}
        self._sequence = 0

    def _rows(self, collection: str) -> List[Dict]:
        rows = list(self.collections.get(collection, {}).values())
        return sorted(rows, key=lambda r: r.get("created_at") or "", reverse=True)

    @staticmethod
    def _matches(row: Dict, filters: Optional[Dict]) -> bool:
        return all(row.get(field) == value for field, value in (filters or {}).items())

    def get(self, collection, doc_id):
        row = self.collections.get(collection, {}).get(doc_id)
        return dict(row) if row else None

    def find(self, collection, filters=None, limit=None):
        rows = [dict(r) for r in self._rows(collection) if self._matches(r, filters)]
        return rows[:limit] if limit else rows

    def search(self, collection, fields, term, limit=20):
        term = term.lower()
        rows = [
            dict(r) for r in self._rows(collection)
            if any(term in str(r.get(f) or "").lower() for f in fields)
        ]
        return rows[:limit]

    def list_page(self, collection, filters=None, cursor=None, limit=20, overlaps=None):
        rows = [r for r in self._rows(collection) if self._matches(r, filters)]
        if overlaps:
            field, values = overlaps
            rows = [r for r in rows if set(r.get(field) or []) & set(values)]
        if cursor:
            rows = [r for r in rows if r["created_at"] < cursor]
        page = [dict(r) for r in rows[:limit]]
        next_cursor = page[-1]["created_at"] if len(rows) > limit and page else None
        return page, next_cursor

    def insert(self, collection, document):
        self._sequence += 1
        doc = dict(document)
        doc.setdefault("id", f"{collection}-{self._sequence}")
        doc.setdefault("created_at", f"2025-11-01T00:00:00.{self._sequence:06d}+00:00")
        self.collections.setdefault(collection, {})[doc["id"]] = doc
        return dict(doc)

    def update(self, collection, doc_id, changes):
        row = self.collections.get(collection, {}).get(doc_id)
        if row is None:
            return None
        row.update(changes)
        return dict(row)

    def delete(self, collection, doc_id):
        return self.collections.get(collection, {}).pop(doc_id, None) is not None


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
def engine():
    """Fresh in-memory SQLite database shared by every connection of one test"""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    PermissionService(session).seed()
    yield session
    session.close()


# ============================================================================
# Actors
# ============================================================================

@pytest.fixture
def make_user(db):
    """
    Factory for ACTIVE, onboarded staff accounts

    Usage:
        manager = make_user("MANAGER", ["tasks.manage"])
    """
    counter = {"n": 0}

    def _make(role: str = "VIEW_ONLY", permissions: Optional[List[str]] = None, **fields) -> AdminUser:
        counter["n"] += 1
        n = counter["n"]
        user = AdminUser(
            user_code=fields.pop("user_code", f"ADMIN_USER_{900 + n:03d}"),
            name=fields.pop("name", f"Staff {n}"),
            email=fields.pop("email", f"staff{n}@example.com"),
            role=role,
            status=fields.pop("status", "ACTIVE"),
            password_hash=hash_password(fields.pop("password", TEST_PASSWORD)),
            onboarding_completed_at=fields.pop("onboarding_completed_at", utcnow()),
            **fields,
        )
        db.add(user)
        db.commit()
        if permissions:
            PermissionService(db).sync_user_permissions(user.id, permissions, None)
        db.refresh(user)
        return user

    return _make


def as_token_user(user: AdminUser) -> TokenUser:
    return TokenUser(
        id=user.id,
        email=user.email,
        name=user.name,
        user_code=user.user_code,
        role=user.role,
        permissions=user.permission_codes,
    )


@pytest.fixture
def super_admin(make_user):
    return make_user("SUPER_ADMIN", name="Root Admin", email="root@example.com")


@pytest.fixture
def super_actor(super_admin):
    return as_token_user(super_admin)


@pytest.fixture
def manager(make_user):
    return make_user(
        "MANAGER",
        ["tasks.access", "tasks.manage", "tasks.delete", "tasks.charge.manage", "entities.access", "entities.manage"],
        name="Maya Manager",
        email="maya@example.com",
    )


@pytest.fixture
def manager_actor(manager):
    return as_token_user(manager)


@pytest.fixture
def viewer(make_user):
    return make_user("VIEW_ONLY", ["tasks.access"], name="Vic Viewer", email="vic@example.com")


@pytest.fixture
def viewer_actor(viewer):
    return as_token_user(viewer)


def auth_headers(user: AdminUser) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def headers_for():
    """headers_for(user) -> Authorization header carrying a fresh access token"""
    return auth_headers


@pytest.fixture
def token_user_for():
    return as_token_user


# ============================================================================
# Domain data
# ============================================================================

@pytest.fixture
def make_entity(db):
    counter = {"n": 0}

    def _make(**fields) -> Entity:
        counter["n"] += 1
        entity = Entity(
            name=fields.pop("name", f"Client {counter['n']}"),
            entity_type=fields.pop("entity_type", "PRIVATE_LIMITED_COMPANY"),
            status=fields.pop("status", "ACTIVE"),
            **fields,
        )
        db.add(entity)
        db.commit()
        db.refresh(entity)
        return entity

    return _make


@pytest.fixture
def entity(make_entity):
    return make_entity(name="Acme Advisory Pvt Ltd", email="accounts@acme.example", pan="AAACA1234A")


# ============================================================================
# External stores
# ============================================================================

@pytest.fixture
def website_repo():
    return InMemoryWebsiteRepository()


@pytest.fixture
def razorpay_client():
    return MagicMock(name="razorpay.Client")


@pytest.fixture
def mail():
    """Captures outgoing staff emails; every send reports success"""
    with patch("backoffice.services.admin_user_service.email_service") as mock_email:
        mock_email.send_invitation_email.return_value = (True, None)
        mock_email.send_onboarding_reset_email.return_value = (True, None)
        mock_email.send_password_reset_email.return_value = (True, None)
        yield mock_email


# ============================================================================
# HTTP
# ============================================================================

@pytest.fixture
def client(db, website_repo, razorpay_client):
    """
    TestClient against the real app with the stores swapped out

    Requests share the test's session, so rows created by fixtures are
    visible to the endpoints and their writes are visible to assertions.
    """
    from backoffice.main import app

    def override_get_db():
        try:
            yield db
        except Exception:
            db.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_website_repository] = lambda: website_repo
    app.dependency_overrides[get_razorpay_client] = lambda: razorpay_client
    rate_limiter.reset()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    rate_limiter.reset()
