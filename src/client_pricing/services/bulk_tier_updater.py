"""
Bulk Tier Updater - one discount applied across a product set for one tier.

All tier rules for the targets are staged in a single repository transaction
and committed together, so a resolver never sees some products repriced and
others not. Target sets larger than the write cap are rejected up front;
``plan_batches`` splits them into chunks for sequential invocation.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from ..engine.models import DISCOUNT_TYPES, BulkUpdateResult, Product, TierKey
from ..engine.price_math import compute_tier_final_price
from ..errors import PricingError, ValidationError
from ..store.rule_store import PricingRuleStore

logger = logging.getLogger(__name__)

STATUS_STAGED = 'staged'
STATUS_COMMITTED = 'committed'
STATUS_DISCARDED = 'discarded'


@dataclass(frozen=True)
class BulkPreviewRow:
    """Before/after final price for one target product."""
    product_id: str
    base_price: float
    current_final_price: Optional[float]
    new_final_price: float
    rule_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'productId': self.product_id,
            'basePrice': self.base_price,
            'currentFinalPrice': self.current_final_price,
            'newFinalPrice': self.new_final_price,
            'ruleId': self.rule_id,
        }


class StagedBulkUpdate:
    """
    A computed but uncommitted bulk discount.

    Nothing is written until ``commit()``. ``discard()`` simply marks the
    staged update unusable.
    """

    def __init__(
        self,
        updater: 'BulkTierUpdater',
        tier_id: str,
        discount_type: str,
        discount_value: float,
        rows: list[BulkPreviewRow],
        modified_by: Optional[str] = None,
    ):
        self._updater = updater
        self.tier_id = tier_id
        self.discount_type = discount_type
        self.discount_value = discount_value
        self.rows = rows
        self.modified_by = modified_by
        self.status = STATUS_STAGED

    @property
    def product_ids(self) -> list[str]:
        return [row.product_id for row in self.rows]

    def commit(self) -> BulkUpdateResult:
        """Write every staged rule in one atomic transaction."""
        if self.status != STATUS_STAGED:
            raise PricingError(f"Bulk update already {self.status}")
        result = self._updater._commit(self)
        self.status = STATUS_COMMITTED
        return result

    def discard(self):
        if self.status == STATUS_COMMITTED:
            raise PricingError("Bulk update already committed; apply a compensating update instead")
        self.status = STATUS_DISCARDED
        logger.info("Discarded staged bulk update for %s (%d products)", self.tier_id, len(self.rows))

    def to_dict(self) -> dict:
        return {
            'tierId': self.tier_id,
            'discountType': self.discount_type,
            'discountValue': self.discount_value,
            'status': self.status,
            'targetCount': len(self.rows),
            'preview': [row.to_dict() for row in self.rows],
        }


class BulkTierUpdater:
    """Applies tier-wide discounts to filtered product sets."""

    def __init__(
        self,
        store: PricingRuleStore,
        max_batch_writes: int = 500,
    ):
        self.store = store
        self.repository = store.repository
        self.products = store.products
        self.max_batch_writes = max_batch_writes

    def resolve_targets(
        self,
        category: Optional[str] = None,
        product_ids: Optional[Iterable[str]] = None
    ) -> list[Product]:
        """Catalog products in ``category`` (if given), intersected with ``product_ids`` (if given)."""
        wanted = None
        if product_ids is not None:
            wanted = [str(p).strip() for p in product_ids if p is not None and str(p).strip()]
            missing = [p for p in wanted if p not in self.products]
            if missing:
                logger.warning("Bulk update ignoring %d unknown products: %s", len(missing), missing[:10])
        return self.products.list(category=category, product_ids=wanted)

    def plan_batches(
        self,
        category: Optional[str] = None,
        product_ids: Optional[Iterable[str]] = None
    ) -> list[list[str]]:
        """Split the target set into product-id chunks that each fit in one transaction."""
        ids = [p.id for p in self.resolve_targets(category, product_ids)]
        size = self.max_batch_writes
        return [ids[i:i + size] for i in range(0, len(ids), size)]

    def stage_bulk_discount(
        self,
        tier_id: str,
        discount_type: str,
        discount_value: float,
        category: Optional[str] = None,
        product_ids: Optional[Iterable[str]] = None,
        modified_by: Optional[str] = None
    ) -> StagedBulkUpdate:
        """Validate inputs and compute the preview without writing anything."""
        if tier_id is None or not str(tier_id).strip():
            raise ValidationError("tier_id is required")
        tier_id = str(tier_id).strip()
        if discount_type not in DISCOUNT_TYPES:
            raise ValidationError(
                f"Invalid discount type '{discount_type}', must be one of: {sorted(DISCOUNT_TYPES)}"
            )
        try:
            discount_value = float(discount_value)
        except (TypeError, ValueError):
            raise ValidationError(f"discount_value must be a number, got {discount_value!r}")
        if discount_value < 0:
            raise ValidationError("discount_value must be >= 0")

        targets = self.resolve_targets(category, product_ids)
        if len(targets) > self.max_batch_writes:
            raise ValidationError(
                f"Bulk update targets {len(targets)} products, more than the cap of "
                f"{self.max_batch_writes}; split it with plan_batches()"
            )

        state = self.repository.snapshot()
        rows = []
        for product in targets:
            existing = state.get_tier_rule(TierKey(product.id, tier_id))
            base_price = existing.base_price if existing else product.base_price
            rows.append(BulkPreviewRow(
                product_id=product.id,
                base_price=base_price,
                current_final_price=existing.final_price if existing else None,
                new_final_price=compute_tier_final_price(base_price, discount_type, discount_value),
                rule_id=existing.id if existing else None,
            ))

        logger.debug("Staged bulk %s %.2f for %s over %d products", discount_type, discount_value, tier_id, len(rows))
        return StagedBulkUpdate(self, tier_id, discount_type, discount_value, rows, modified_by)

    def apply_bulk_discount(
        self,
        tier_id: str,
        discount_type: str,
        discount_value: float,
        category: Optional[str] = None,
        product_ids: Optional[Iterable[str]] = None,
        modified_by: Optional[str] = None
    ) -> BulkUpdateResult:
        """
        Upsert one tier rule per target product, all in one transaction.

        Resulting prices below zero are floored to 0, never rejected.

        Returns:
            BulkUpdateResult with the count and ids of written rules
        """
        staged = self.stage_bulk_discount(
            tier_id, discount_type, discount_value, category, product_ids, modified_by
        )
        return staged.commit()

    def _commit(self, staged: StagedBulkUpdate) -> BulkUpdateResult:
        result = BulkUpdateResult(tier_id=staged.tier_id)
        fields = {'discount_type': staged.discount_type, 'discount_value': staged.discount_value}

        with self.repository.transaction() as tx:
            for product_id in staged.product_ids:
                rule = self.store.upsert_tier_rule(
                    product_id, staged.tier_id, fields, modified_by=staged.modified_by, tx=tx
                )
                result.rule_ids.append(rule.id)
            result.updated_count = len(result.rule_ids)

        logger.info(
            "Bulk %s discount %.2f applied to %d products in %s",
            staged.discount_type, staged.discount_value, result.updated_count, staged.tier_id
        )
        return result
