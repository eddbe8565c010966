"""
Service pricing API endpoints (website store)
"""
from fastapi import APIRouter, Depends

from backoffice.core.auth import TokenUser, require_permission
from backoffice.core.errors import ValidationError
from backoffice.core.responses import success_response
from backoffice.domain.website import ServicePricingUpdate
from backoffice.repositories.website_repository import WebsiteRepository, get_website_repository
from backoffice.services.service_pricing_service import ServicePricingService

router = APIRouter(prefix="/api/v1/service-pricing", tags=["Service Pricing"])


@router.get("/{service_id}")
async def get_service_pricing(
    service_id: str,
    user: TokenUser = Depends(require_permission("service_pricing.access")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    return success_response(ServicePricingService(repo).get_config(service_id))


@router.put("/{service_id}")
async def update_service_pricing(
    service_id: str,
    body: ServicePricingUpdate,
    user: TokenUser = Depends(require_permission("service_pricing.update")),
    repo: WebsiteRepository = Depends(get_website_repository),
):
    """The body carries the whole config; its serviceId must match the one in updatedConfig"""
    if service_id != body.serviceId:
        raise ValidationError("Service ID in the path must match the request body")
    result = ServicePricingService(repo).update_config(body, user)
    return success_response(result, f"Service configuration updated successfully for '{service_id}'")
