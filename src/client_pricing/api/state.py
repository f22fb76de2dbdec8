"""
Shared service wiring for the API.

Everything is built once from settings and handed to routes through
``Depends(get_services)``, so tests can swap the whole container with
``app.dependency_overrides``.
"""
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from ..catalog.catalogs import ClientRegistry, ProductCatalog
from ..config.settings import Settings, get_settings
from ..engine.price_resolver import PriceResolver
from ..services.bulk_tier_updater import BulkTierUpdater
from ..services.historical_import import HistoricalImportProcessor
from ..services.reporting_service import PricingReportService
from ..store.json_repository import JsonFilePricingRepository
from ..store.repository import PricingRepository
from ..store.rule_store import PricingRuleStore

logger = logging.getLogger(__name__)


@dataclass
class PricingServices:
    settings: Settings
    products: ProductCatalog
    clients: ClientRegistry
    repository: PricingRepository
    store: PricingRuleStore
    resolver: PriceResolver
    importer: HistoricalImportProcessor
    bulk_updater: BulkTierUpdater
    reports: PricingReportService

    @classmethod
    def build(
        cls,
        settings: Settings,
        products: ProductCatalog,
        clients: ClientRegistry,
        repository: PricingRepository,
        clock=None,
    ) -> 'PricingServices':
        """Wire every service around one repository."""
        extra = {'clock': clock} if clock is not None else {}
        store = PricingRuleStore(
            repository, products, clients,
            default_modified_by=settings.default_modified_by, **extra
        )
        return cls(
            settings=settings,
            products=products,
            clients=clients,
            repository=repository,
            store=store,
            resolver=PriceResolver(
                repository, products, clients, public_tier_id=settings.public_tier_id, **extra
            ),
            importer=HistoricalImportProcessor(
                store, max_batch_writes=settings.max_batch_writes,
                import_user=settings.import_user, **extra
            ),
            bulk_updater=BulkTierUpdater(store, max_batch_writes=settings.max_batch_writes),
            reports=PricingReportService(repository, clients),
        )


def load_services(settings: Optional[Settings] = None) -> PricingServices:
    """Load catalogs and the JSON store named in settings."""
    settings = settings or get_settings()
    products = ProductCatalog.from_csv(settings.products_csv)
    clients = ClientRegistry.from_csv(settings.clients_csv)
    repository = JsonFilePricingRepository(settings.store_path)
    logger.info(
        "Loaded %d products and %d clients; store at %s",
        len(products), len(clients), settings.store_path
    )
    return PricingServices.build(settings, products, clients, repository)


@lru_cache(maxsize=1)
def get_services() -> PricingServices:
    return load_services()
