"""
Imports and reporting endpoints.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..engine.models import PriceRecord
from .state import PricingServices, get_services

router = APIRouter(prefix="/api", tags=["imports", "reports"])


class PriceRecordIn(BaseModel):
    """One historical sale. Invalid values are skipped by the importer, not rejected here."""
    product_id: Optional[str] = None
    price: Optional[float] = None
    quantity: Optional[int] = 1
    sold_date: Optional[date] = None
    order_id: Optional[str] = None
    contract_ref: Optional[str] = None
    original_price: Optional[float] = None
    notes: Optional[str] = None


class ImportRequest(BaseModel):
    records: list[PriceRecordIn]
    source: str = "manual"
    imported_by: Optional[str] = None


@router.post("/imports/{client_id}")
async def import_history(client_id: str, body: ImportRequest, services: PricingServices = Depends(get_services)):
    """Import historical prices for a client."""
    records = [PriceRecord(**r.model_dump()) for r in body.records]
    result = services.importer.process_import(
        client_id, records, source=body.source, imported_by=body.imported_by
    )
    return result.to_dict()


@router.get("/stats")
async def get_stats(services: PricingServices = Depends(get_services)):
    """Get pricing statistics."""
    return services.reports.get_pricing_stats()


@router.get("/clients/{client_id}/pricing")
async def get_client_pricing(client_id: str, services: PricingServices = Depends(get_services)):
    return services.reports.get_client_all_pricing(client_id)


@router.get("/clients/{client_id}/history")
async def get_client_history(
    client_id: str,
    product_id: Optional[str] = None,
    limit: int = 5,
    services: PricingServices = Depends(get_services),
):
    """Most recent sales first."""
    return services.reports.get_client_price_history(client_id, product_id=product_id, limit=limit)


@router.get("/clients/{client_id}/onboarding")
async def get_client_onboarding(client_id: str, services: PricingServices = Depends(get_services)):
    return services.reports.get_onboarding_status(client_id)
