"""
Service Pricing Service
Per-service pricing documents the public website renders its plans from

Author: Back Office Team
Date: 2025-11-18
"""
import json
import logging
from typing import Dict

from backoffice.core.auth import TokenUser
from backoffice.core.errors import NotFoundError, ValidationError
from backoffice.domain.website import MAX_PRICING_CONFIG_BYTES, MAX_PRICING_CONFIG_DEPTH, ServicePricingUpdate
from backoffice.repositories.website_repository import SERVICE_PRICING_CONFIGS, WebsiteRepository, now_iso

logger = logging.getLogger(__name__)


def config_depth(value, depth: int = 0) -> int:
    """Nesting depth of a JSON value; scalars at the top level are depth 0"""
    if depth > MAX_PRICING_CONFIG_DEPTH:
        return depth
    if isinstance(value, dict):
        children = value.values()
    elif isinstance(value, list):
        children = value
    else:
        return depth
    return max([config_depth(child, depth + 1) for child in children] + [depth])


def config_errors(config: Dict) -> list:
    errors = []
    if config_depth(config) > MAX_PRICING_CONFIG_DEPTH:
        errors.append({
            "field": "updatedConfig",
            "message": f"Configuration object is too deeply nested (max depth: {MAX_PRICING_CONFIG_DEPTH})",
        })
    size = len(json.dumps(config, separators=(",", ":")))
    if size > MAX_PRICING_CONFIG_BYTES:
        errors.append({
            "field": "updatedConfig",
            "message": f"Configuration is too large ({size} bytes, max: {MAX_PRICING_CONFIG_BYTES} bytes)",
        })
    return errors


class ServicePricingService:

    def __init__(self, repo: WebsiteRepository):
        self.repo = repo

    def get_config(self, service_id: str) -> Dict:
        doc = self.repo.get(SERVICE_PRICING_CONFIGS, service_id)
        if not doc:
            raise NotFoundError(f"Service with id {service_id} not found")
        return {
            **(doc.get("config") or {}),
            "serviceId": service_id,
            "slug": doc.get("slug"),
            "updatedAt": doc.get("updatedAt"),
            "updatedBy": doc.get("updatedBy"),
        }

    def update_config(self, payload: ServicePricingUpdate, actor: TokenUser) -> Dict:
        """Replace the stored pricing document of an existing service"""
        config = payload.updatedConfig
        if payload.serviceId != config.get("serviceId"):
            raise ValidationError(
                "Service ID mismatch",
                details=[{
                    "field": "serviceId",
                    "message": "Service ID in request body must match the one in updatedConfig",
                }],
            )

        errors = config_errors(config)
        if errors:
            raise ValidationError("Invalid service configuration", details=errors)

        if not self.repo.get(SERVICE_PRICING_CONFIGS, payload.serviceId):
            raise NotFoundError(f"Service with ID '{payload.serviceId}' does not exist")

        self.repo.update(SERVICE_PRICING_CONFIGS, payload.serviceId, {
            "slug": payload.slug,
            "config": config,
            "updatedAt": now_iso(),
            "updatedBy": actor.id,
        })
        logger.info(f"Pricing for service {payload.serviceId} ({payload.slug}) updated by {actor.id}")
        return {
            "serviceId": payload.serviceId,
            "slug": payload.slug,
            "configUpdated": True,
            "summary": {
                "fieldsUpdated": len(config),
                "configSize": len(json.dumps(config, separators=(",", ":"))),
            },
        }
