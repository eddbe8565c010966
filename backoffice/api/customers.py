"""
Customer API endpoints (website store)
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from backoffice.core.auth import TokenUser, require_permission
from backoffice.core.responses import success_response
from backoffice.domain.website import CustomerCreate, CustomerUpdate, SearchRequest
from backoffice.repositories.website_repository import WebsiteRepository, get_website_repository
from backoffice.services.customer_service import CustomerService

router = APIRouter(prefix="/api/v1/customers", tags=["Customers"])


@router.get("")
async def list_customers(
    cursor: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=50),
    user: TokenUser = Depends(require_permission("customers.access")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    return success_response(CustomerService(repo).list_customers(cursor=cursor, limit=limit))


@router.post("/search")
async def search_customers(
    body: SearchRequest,
    user: TokenUser = Depends(require_permission("customers.access")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    """Find customers by phone number, email or uid (detected from the value)"""
    return success_response(CustomerService(repo).search_customers(body.value))


@router.get("/{customer_id}")
async def get_customer(
    customer_id: str,
    user: TokenUser = Depends(require_permission("customers.access")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    return success_response(CustomerService(repo).get_customer(customer_id))


@router.post("", status_code=201)
async def create_customer(
    body: CustomerCreate,
    user: TokenUser = Depends(require_permission("customers.create")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    return success_response(CustomerService(repo).create_customer(body, user), "Customer created")


@router.put("/{customer_id}")
async def update_customer(
    customer_id: str,
    body: CustomerUpdate,
    user: TokenUser = Depends(require_permission("customers.update")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    return success_response(CustomerService(repo).update_customer(customer_id, body, user), "Customer updated")
