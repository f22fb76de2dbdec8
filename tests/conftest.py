"""
Shared fixtures: small in-memory catalogs, an in-memory repository and a
fixed clock so validity windows and timestamps are deterministic.
"""
from datetime import datetime

import pytest

from client_pricing.catalog.catalogs import ClientRegistry, ProductCatalog
from client_pricing.engine.price_resolver import PriceResolver
from client_pricing.services.bulk_tier_updater import BulkTierUpdater
from client_pricing.services.historical_import import HistoricalImportProcessor
from client_pricing.services.reporting_service import PricingReportService
from client_pricing.store.repository import InMemoryPricingRepository
from client_pricing.store.rule_store import PricingRuleStore

NOW = datetime(2025, 2, 1, 9, 30)


def fixed_clock():
    return NOW


@pytest.fixture
def products():
    return ProductCatalog.from_records([
        {'id': 'P1', 'code': 'CAM-4K-01', 'name': '4K Dome Camera', 'category': 'cameras', 'base_price': 850.0},
        {'id': 'P2', 'code': 'NVR-16-02', 'name': '16 Channel NVR', 'category': 'recorders', 'base_price': 640.0},
        {'id': 'P3', 'code': 'CAM-BUL-03', 'name': 'Bullet Camera', 'category': 'cameras', 'base_price': 320.0},
        {'id': 'P4', 'code': 'SW-POE-08', 'name': 'PoE Switch', 'category': 'networking', 'base_price': 100.0},
        {'id': 'P5', 'code': 'CBL-CAT6', 'name': 'Cat6 Cable', 'category': 'cabling', 'base_price': 200.0},
    ])


@pytest.fixture
def clients():
    return ClientRegistry.from_records([
        {'id': 'C1', 'name': 'Northwind Security', 'default_tier_id': 'tier_1', 'is_active': True},
        {'id': 'C2', 'name': 'Contoso Integrators', 'default_tier_id': 'tier_2', 'is_active': True},
        {'id': 'C3', 'name': 'No Tier Ltd', 'default_tier_id': None, 'is_active': True},
    ])


@pytest.fixture
def repository():
    return InMemoryPricingRepository()


@pytest.fixture
def store(repository, products, clients):
    return PricingRuleStore(repository, products, clients, clock=fixed_clock)


@pytest.fixture
def resolver(repository, products, clients):
    return PriceResolver(repository, products, clients, clock=fixed_clock)


@pytest.fixture
def importer(store):
    return HistoricalImportProcessor(store, clock=fixed_clock)


@pytest.fixture
def updater(store):
    return BulkTierUpdater(store)


@pytest.fixture
def reports(repository, clients):
    return PricingReportService(repository, clients)


@pytest.fixture
def clock():
    return fixed_clock
