"""
Rules API - FastAPI routers for tier rules, client rules and configured tiers.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..errors import NotFoundError
from .state import PricingServices, get_services

tier_router = APIRouter(prefix="/api/tier-rules", tags=["tier-rules"])
client_router = APIRouter(prefix="/api/client-rules", tags=["client-rules"])
tiers_router = APIRouter(prefix="/api/tiers", tags=["tiers"])


# Pydantic models for API

class TierRuleFields(BaseModel):
    """Editable tier rule fields. Omitted fields keep their current values."""
    base_price: Optional[float] = None
    discount_type: Optional[str] = None
    discount_value: Optional[float] = None
    modified_by: Optional[str] = None


class TierRulePreview(TierRuleFields):
    product_id: str
    tier_id: str


class BulkDiscountRequest(BaseModel):
    tier_id: str
    discount_type: str = "percentage"
    discount_value: float
    category: Optional[str] = None
    product_ids: Optional[list[str]] = None
    modified_by: Optional[str] = None
    preview_only: bool = False


class ClientRuleFields(BaseModel):
    """Editable client rule fields. Omitted fields keep their current values."""
    pricing_type: Optional[str] = None
    fixed_price: Optional[float] = None
    base_price: Optional[float] = None
    markup_type: Optional[str] = None
    markup_value: Optional[float] = None
    agreement_ref: Optional[str] = None
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    min_quantity: Optional[int] = Field(default=None, ge=1)
    notes: Optional[str] = None
    modified_by: Optional[str] = None


class ClientRulePreview(ClientRuleFields):
    client_id: str
    product_id: str


def _split(body: BaseModel, *exclude: str) -> tuple[dict, Optional[str]]:
    """Only fields sent in the request, plus the audit identity."""
    fields = body.model_dump(exclude_unset=True, exclude={'modified_by', *exclude})
    return fields, body.modified_by


# Tier rule endpoints

@tier_router.get("")
async def list_tier_rules(
    tier_id: Optional[str] = None,
    product_id: Optional[str] = None,
    include_inactive: bool = False,
    services: PricingServices = Depends(get_services),
):
    """List tier rules, active only unless asked otherwise."""
    rules = services.store.list_tier_rules(tier_id, product_id, include_inactive=include_inactive)
    return [r.to_record() for r in rules]


@tier_router.post("/preview")
async def preview_tier_rule(body: TierRulePreview, services: PricingServices = Depends(get_services)):
    """Compute a tier rule's final price without saving."""
    fields, _ = _split(body, 'product_id', 'tier_id')
    return services.store.preview_tier_rule(body.product_id, body.tier_id, fields).to_record()


@tier_router.post("/bulk-discount")
async def bulk_discount(body: BulkDiscountRequest, services: PricingServices = Depends(get_services)):
    """Apply one discount to every matching product in a tier, atomically."""
    staged = services.bulk_updater.stage_bulk_discount(
        body.tier_id,
        body.discount_type,
        body.discount_value,
        category=body.category,
        product_ids=body.product_ids,
        modified_by=body.modified_by,
    )
    if body.preview_only:
        staged.discard()
        return staged.to_dict()
    return staged.commit().to_dict()


@tier_router.get("/{tier_id}/{product_id}")
async def get_tier_rule(tier_id: str, product_id: str, services: PricingServices = Depends(get_services)):
    """Get the active tier rule for a product."""
    rule = services.store.get_tier_rule(product_id, tier_id)
    if rule is None:
        raise NotFoundError(f"No active tier rule for product '{product_id}' in tier '{tier_id}'")
    return rule.to_record()


@tier_router.put("/{tier_id}/{product_id}")
async def upsert_tier_rule(
    tier_id: str,
    product_id: str,
    body: TierRuleFields,
    services: PricingServices = Depends(get_services),
):
    """Create or update the tier rule for a product."""
    fields, modified_by = _split(body)
    return services.store.upsert_tier_rule(product_id, tier_id, fields, modified_by=modified_by).to_record()


@tier_router.delete("/{tier_id}/{product_id}")
async def deactivate_tier_rule(
    tier_id: str,
    product_id: str,
    modified_by: Optional[str] = None,
    services: PricingServices = Depends(get_services),
):
    """Retire the active tier rule for a product."""
    rule = services.store.deactivate_tier_rule(product_id, tier_id, modified_by=modified_by)
    return {"success": True, "message": f"Tier rule '{rule.id}' deactivated"}


# Client rule endpoints

@client_router.get("")
async def list_client_rules(
    client_id: Optional[str] = None,
    product_id: Optional[str] = None,
    include_inactive: bool = False,
    services: PricingServices = Depends(get_services),
):
    """List client rules, active only unless asked otherwise."""
    rules = services.store.list_client_rules(client_id, product_id, include_inactive=include_inactive)
    return [r.to_record() for r in rules]


@client_router.post("/preview")
async def preview_client_rule(body: ClientRulePreview, services: PricingServices = Depends(get_services)):
    """Compute a client rule's final price without saving."""
    fields, _ = _split(body, 'client_id', 'product_id')
    return services.store.preview_client_rule(body.client_id, body.product_id, fields).to_record()


@client_router.get("/{client_id}/{product_id}")
async def get_client_rule(client_id: str, product_id: str, services: PricingServices = Depends(get_services)):
    """Get the active client rule for a product."""
    rule = services.store.get_client_rule(client_id, product_id)
    if rule is None:
        raise NotFoundError(f"No active client rule for client '{client_id}' and product '{product_id}'")
    return rule.to_record()


@client_router.put("/{client_id}/{product_id}")
async def upsert_client_rule(
    client_id: str,
    product_id: str,
    body: ClientRuleFields,
    services: PricingServices = Depends(get_services),
):
    """Create or update a negotiated client price."""
    fields, modified_by = _split(body)
    return services.store.upsert_client_rule(client_id, product_id, fields, modified_by=modified_by).to_record()


@client_router.delete("/{client_id}/{product_id}")
async def deactivate_client_rule(
    client_id: str,
    product_id: str,
    modified_by: Optional[str] = None,
    services: PricingServices = Depends(get_services),
):
    """Retire the active client rule. The record is kept for audit."""
    rule = services.store.deactivate_client_rule(client_id, product_id, modified_by=modified_by)
    return {"success": True, "message": f"Client rule '{rule.id}' deactivated"}


# Configured tiers

@tiers_router.get("")
async def list_tiers(services: PricingServices = Depends(get_services)):
    """Configured tiers with their default discounts."""
    return [tier.to_dict() for tier in services.settings.tiers]


@tiers_router.get("/{tier_id}")
async def get_tier(tier_id: str, services: PricingServices = Depends(get_services)):
    tier = services.settings.get_tier(tier_id)
    if tier is None:
        raise NotFoundError(f"Tier '{tier_id}' is not configured")
    return tier.to_dict()
