"""
Tests for CustomerService lookups and profile edits

Author: Back Office Team
Date: 2025-11-14
"""
import pytest

from backoffice.core.errors import ConflictError, NotFoundError, ValidationError
from backoffice.domain.website import CustomerCreate, CustomerUpdate
from backoffice.repositories.website_repository import CUSTOMERS
from backoffice.services.customer_service import CustomerService, detect_search_field


@pytest.fixture
def service(website_repo):
    return CustomerService(website_repo)


@pytest.fixture
def priya(website_repo):
    return website_repo.insert(CUSTOMERS, {
        "id": "uid_Priya_0001",
        "firstName": "Priya",
        "email": "priya@example.com",
        "phoneNumber": "9876543210",
    })


class TestDetectSearchField:

    @pytest.mark.parametrize("value, expected", [
        ("9876543210", ("phoneNumber", "9876543210")),
        ("+919876543210", ("phoneNumber", "+919876543210")),
        (" Priya@Example.com ", ("email", "priya@example.com")),
        ("uid_Priya_0001", ("uid", "uid_Priya_0001")),
    ])
    def test_detects_field(self, value, expected):
        assert detect_search_field(value) == expected

    @pytest.mark.parametrize("value", ["", "abc", "not an email@"])
    def test_unsupported_format(self, value):
        with pytest.raises(ValidationError) as exc:
            detect_search_field(value)

        assert exc.value.code == "INVALID_SEARCH_FORMAT"


class TestSearchCustomers:

    def test_by_phone(self, service, priya):
        result = service.search_customers("9876543210")

        assert result["matchedField"] == "phoneNumber"
        assert result["resultsCount"] == 1
        assert result["customers"][0]["id"] == priya["id"]

    def test_by_uid(self, service, priya):
        assert service.search_customers("uid_Priya_0001")["customers"][0]["firstName"] == "Priya"

    def test_no_match_reports_field(self, service, priya):
        with pytest.raises(NotFoundError) as exc:
            service.search_customers("nobody@example.com")

        assert exc.value.code == "CUSTOMER_NOT_FOUND"
        assert exc.value.details == {"matchedField": "email", "queryValue": "nobody@example.com"}


class TestCreateAndUpdate:

    def test_create_marks_admin_created(self, service, super_actor):
        customer = service.create_customer(
            CustomerCreate(firstName="Arjun", email="ARJUN@example.com", phoneNumber="9123456780"), super_actor
        )

        assert customer["email"] == "arjun@example.com"
        assert customer["createdByAdmin"] is True
        assert customer["createdBy"] == super_actor.id

    def test_duplicates_are_listed(self, service, priya, super_actor):
        payload = CustomerCreate(
            firstName="Priya", email="priya@example.com", phoneNumber="9876543210", alternatePhone="9000000001"
        )

        with pytest.raises(ConflictError) as exc:
            service.create_customer(payload, super_actor)

        assert exc.value.details == {"duplicates": ["email", "phoneNumber"]}

    def test_phone_must_be_digits(self):
        with pytest.raises(ValueError):
            CustomerCreate(firstName="Arjun", email="arjun@example.com", phoneNumber="98765-43210")

    def test_update_profile(self, service, priya, super_actor):
        updated = service.update_customer(priya["id"], CustomerUpdate(lastName="Sharma"), super_actor)

        assert updated["lastName"] == "Sharma"
        assert updated["updatedBy"] == super_actor.id

    def test_update_needs_fields(self, service, priya, super_actor):
        with pytest.raises(ValidationError, match="No fields"):
            service.update_customer(priya["id"], CustomerUpdate(), super_actor)

    def test_alternate_cannot_equal_primary(self, service, priya, super_actor):
        with pytest.raises(ValidationError, match="primary"):
            service.update_customer(priya["id"], CustomerUpdate(alternatePhone="9876543210"), super_actor)

    def test_alternate_taken_by_someone_else(self, service, priya, website_repo, super_actor):
        website_repo.insert(CUSTOMERS, {"firstName": "Ravi", "phoneNumber": "9000000002"})

        with pytest.raises(ConflictError):
            service.update_customer(priya["id"], CustomerUpdate(alternatePhone="9000000002"), super_actor)

    def test_missing_customer(self, service, super_actor):
        with pytest.raises(NotFoundError):
            service.update_customer("missing", CustomerUpdate(lastName="X"), super_actor)

    def test_list_customers(self, service, priya):
        result = service.list_customers()

        assert [c["id"] for c in result["customers"]] == [priya["id"]]
        assert result["has_more"] is False
