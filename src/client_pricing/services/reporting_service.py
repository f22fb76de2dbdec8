"""
Pricing Report Service - read-only summaries over the committed store.
"""
import logging
from typing import Optional

import pandas as pd

from ..catalog.catalogs import ClientRegistry
from ..engine.models import PRICE_SOURCE_HISTORICAL
from ..store.repository import PricingRepository

logger = logging.getLogger(__name__)


class PricingReportService:
    """Statistics and per-client views for dashboards and the API."""

    def __init__(self, repository: PricingRepository, clients: ClientRegistry):
        self.repository = repository
        self.clients = clients

    def get_pricing_stats(self) -> dict:
        """Get statistics about rules and the price ledger."""
        state = self.repository.snapshot()
        tier_rules = state.list_tier_rules()
        client_rules = state.list_client_rules()

        history = pd.DataFrame([r.to_record() for r in state.history.values()])
        average_discount = 0.0
        if not history.empty:
            discounts = pd.to_numeric(history['discountPercentage'], errors='coerce').dropna()
            if not discounts.empty:
                average_discount = round(float(discounts.mean()), 2)

        return {
            'totalClients': len(self.clients),
            'clientsWithSpecialPricing': len({r.client_id for r in client_rules}),
            'totalPriceHistory': len(state.history),
            'averageDiscount': average_discount,
            'activeTierRules': len(tier_rules),
            'activeClientRules': len(client_rules),
            'historicalRules': sum(1 for r in client_rules if r.price_source == PRICE_SOURCE_HISTORICAL),
        }

    def get_client_all_pricing(self, client_id: str) -> dict:
        """A client's active rules plus the tier schedule it falls back to."""
        client = self.clients.require(client_id)
        state = self.repository.snapshot()
        tier_rules = state.list_tier_rules(tier_id=client.default_tier_id) if client.default_tier_id else []
        return {
            'client': client.to_record(),
            'clientRules': [r.to_record() for r in state.list_client_rules(client_id=client.id)],
            'tierRules': [r.to_record() for r in tier_rules],
        }

    def get_client_price_history(
        self,
        client_id: str,
        product_id: Optional[str] = None,
        limit: Optional[int] = 5
    ) -> list[dict]:
        """Ledger rows for a client, newest sale first."""
        client = self.clients.require(client_id)
        rows = self.repository.snapshot().list_history(client_id=client.id, product_id=product_id)
        if not rows:
            return []

        df = pd.DataFrame([r.to_record() for r in rows])
        # Stable sort keeps insertion order for same-day sales, latest insert first
        df = df.iloc[::-1].sort_values('soldDate', ascending=False, kind='stable')
        if limit is not None:
            df = df.head(limit)
        df = df.astype(object).where(pd.notna(df), None)
        return df.to_dict(orient='records')

    def get_onboarding_status(self, client_id: str) -> dict:
        client = self.clients.require(client_id)
        status = self.repository.snapshot().get_onboarding(client.id)
        if status is None:
            return {
                'clientId': client.id,
                'historicalPricesImported': False,
                'pricesImportedCount': 0,
                'pricesSkippedCount': 0,
                'pricingRulesCreated': 0,
                'lastImportDate': None,
                'lastImportMethod': None,
                'notes': None,
            }
        return status.to_record()
