from contextlib import asynccontextmanager
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .. import __version__
from ..config.logging_config import setup_logging
from ..config.settings import get_settings
from ..errors import NotFoundError, StoreUnavailable, ValidationError
from .reports_api import router as reports_router
from .rules_api import client_router, tier_router, tiers_router
from .state import PricingServices, get_services


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(get_settings().log_level)
    yield


app = FastAPI(
    title="Client Pricing API",
    description="Tier, client and historical price resolution",
    version=__version__,
    lifespan=lifespan,
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(tier_router)
app.include_router(client_router)
app.include_router(tiers_router)
app.include_router(reports_router)


# Domain errors -> HTTP status

@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    content = {"detail": str(exc)}
    if exc.partial_result is not None:
        content["partialResult"] = exc.partial_result.to_dict()
    return JSONResponse(status_code=503, content=content)


class ResolveRequest(BaseModel):
    product_id: str
    quantity: int = Field(default=1, ge=1)
    client_id: Optional[str] = None
    tier_id: Optional[str] = None
    as_of: Optional[date] = None


class BulkResolveRequest(BaseModel):
    product_ids: list[str]
    quantity: int = Field(default=1, ge=1)
    client_id: Optional[str] = None
    tier_id: Optional[str] = None
    as_of: Optional[date] = None


@app.get("/")
async def root():
    return {"status": "online", "message": "Client Pricing API Active"}


@app.post("/resolve")
async def resolve_price(req: ResolveRequest, services: PricingServices = Depends(get_services)):
    """Resolve the unit price for one product, with its trace."""
    resolution = services.resolver.resolve(
        req.product_id, req.quantity, client_id=req.client_id, tier_id=req.tier_id, as_of=req.as_of
    )
    return resolution.to_dict()


@app.post("/resolve/bulk")
async def resolve_prices(req: BulkResolveRequest, services: PricingServices = Depends(get_services)):
    """Resolve several products against one committed state."""
    resolutions = services.resolver.resolve_many(
        req.product_ids, req.quantity, client_id=req.client_id, tier_id=req.tier_id, as_of=req.as_of
    )
    return {product_id: r.to_dict() for product_id, r in resolutions.items()}


@app.get("/system/status")
async def get_status(services: PricingServices = Depends(get_services)):
    state = services.repository.snapshot()
    return {
        "engine_active": True,
        "products_loaded": len(services.products),
        "clients_loaded": len(services.clients),
        "tier_rules_count": len(state.list_tier_rules()),
        "client_rules_count": len(state.list_client_rules()),
        "price_history_count": len(state.history),
        "max_batch_writes": services.settings.max_batch_writes,
        "public_tier_id": services.settings.public_tier_id,
    }
