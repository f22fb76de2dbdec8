"""
Price Resolver - decides the authoritative unit price with traceability.

Resolution order (first match wins):
1. Active client rule for (client, product), quantity >= its minimum and
   the resolution date inside [valid_from, valid_until]
2. Active tier rule for (product, tier) where tier is the requested tier,
   else the client's default tier
3. Optional public tier rule, when one is configured
4. Catalog base price

A valid client rule always wins over tier pricing; the rule's ``priority``
is audit metadata and never consulted here.
"""
import logging
from datetime import date, datetime
from typing import Callable, Iterable, Optional

from ..catalog.catalogs import ClientRegistry, ProductCatalog
from ..errors import ValidationError
from ..store.repository import PricingRepository, PricingState
from .models import (
    SOURCE_CATALOG,
    SOURCE_CLIENT,
    SOURCE_TIER,
    ClientKey,
    PriceResolution,
    TierKey,
)

logger = logging.getLogger(__name__)


class PriceResolver:
    """
    Resolves prices against the last committed repository state.

    Holds no pricing state of its own: every call reads one snapshot, so a
    resolution never mixes rules from before and after a commit.
    """

    def __init__(
        self,
        repository: PricingRepository,
        products: ProductCatalog,
        clients: ClientRegistry,
        clock: Callable[[], datetime] = datetime.now,
        public_tier_id: Optional[str] = None,
    ):
        self.repository = repository
        self.products = products
        self.clients = clients
        self.clock = clock
        self.public_tier_id = public_tier_id

    def resolve(
        self,
        product_id: str,
        quantity: int = 1,
        client_id: Optional[str] = None,
        tier_id: Optional[str] = None,
        as_of: Optional[date] = None
    ) -> PriceResolution:
        """
        Resolve the unit price for one product.

        Args:
            product_id: Catalog product id
            quantity: Order quantity (>= 1), checked against client rule minimums
            client_id: Optional client; enables client rules and default tier
            tier_id: Optional explicit tier, overrides the client's default tier
            as_of: Date the price applies on (defaults to today)

        Returns:
            PriceResolution with unit price, source, rule id and trace
        """
        return self._resolve(self.repository.snapshot(), product_id, quantity, client_id, tier_id, as_of)

    def resolve_many(
        self,
        product_ids: Iterable[str],
        quantity: int = 1,
        client_id: Optional[str] = None,
        tier_id: Optional[str] = None,
        as_of: Optional[date] = None
    ) -> dict[str, PriceResolution]:
        """Resolve several products against a single committed snapshot."""
        state = self.repository.snapshot()
        return {
            str(product_id): self._resolve(state, product_id, quantity, client_id, tier_id, as_of)
            for product_id in product_ids
        }

    def _resolve(
        self,
        state: PricingState,
        product_id: str,
        quantity: int,
        client_id: Optional[str],
        tier_id: Optional[str],
        as_of: Optional[date]
    ) -> PriceResolution:
        if product_id is None or not str(product_id).strip():
            raise ValidationError("product_id is required")
        if quantity is None or int(quantity) < 1:
            raise ValidationError(f"quantity must be >= 1, got {quantity}")

        product_id = str(product_id).strip()
        quantity = int(quantity)
        day = as_of or self.clock().date()

        product = self.products.require(product_id)
        client = self.clients.require(client_id) if client_id else None

        resolution = PriceResolution(
            product_id=product_id,
            quantity=quantity,
            unit_price=product.base_price,
            source=SOURCE_CATALOG,
            client_id=client.id if client else None,
        )
        resolution.add_trace("Product Lookup", "Found product in catalog", product_id)

        # 1. Client-specific rule
        if client:
            rule = state.get_client_rule(ClientKey(client.id, product_id))
            if rule is None:
                resolution.add_trace("Client Rule", "No active client rule")
            elif quantity < rule.min_quantity:
                resolution.add_trace(
                    "Client Rule",
                    f"Rule {rule.id} skipped: quantity {quantity} below minimum",
                    str(rule.min_quantity)
                )
            elif not rule.is_valid_on(day):
                resolution.add_trace(
                    "Client Rule",
                    f"Rule {rule.id} skipped: outside validity window on {day.isoformat()}",
                    f"{rule.valid_from} → {rule.valid_until or 'open'}"
                )
            else:
                resolution.unit_price = rule.final_price
                resolution.source = SOURCE_CLIENT
                resolution.rule_id = rule.id
                resolution.add_trace(
                    "Price Resolution",
                    f"Using {rule.price_source} client rule {rule.id}",
                    f"${rule.final_price:.2f}"
                )
                return resolution

        # 2. Tier rule
        effective_tier = tier_id or (client.default_tier_id if client else None)
        if effective_tier:
            if self._apply_tier(state, resolution, product_id, effective_tier):
                return resolution
        else:
            resolution.add_trace("Tier Rule", "No tier requested and no client default tier")

        # 3. Public tier, when configured
        if self.public_tier_id and self.public_tier_id != effective_tier:
            if self._apply_tier(state, resolution, product_id, self.public_tier_id):
                return resolution

        # 4. Catalog default
        resolution.add_trace(
            "Price Resolution", "No applicable rule, using catalog base price", f"${product.base_price:.2f}"
        )
        logger.debug("Catalog fallback for product %s (client=%s, tier=%s)", product_id, client_id, effective_tier)
        return resolution

    def _apply_tier(self, state: PricingState, resolution: PriceResolution, product_id: str, tier_id: str) -> bool:
        rule = state.get_tier_rule(TierKey(product_id, tier_id))
        if rule is None:
            resolution.add_trace("Tier Rule", f"No active rule for tier {tier_id}")
            return False

        resolution.unit_price = rule.final_price
        resolution.source = SOURCE_TIER
        resolution.rule_id = rule.id
        resolution.tier_id = tier_id
        resolution.add_trace("Price Resolution", f"Using {tier_id} tier rule {rule.id}", f"${rule.final_price:.2f}")
        return True
