"""
Historical Import Processor - turns past sales into ledger rows and rules.

Every valid record is appended to the price history ledger. A fixed-price
client rule is synthesized from a record only when the client has no active
rule for that product yet (counting rules created earlier in the same
sub-batch), so negotiated and previously derived prices are never
overwritten by an import.

Records are committed in sequential sub-batches bounded by the repository
write cap. Each sub-batch is atomic; a failed sub-batch is skipped in full
and reported, earlier and later sub-batches still commit.
"""
import logging
from datetime import datetime
from typing import Callable, Iterable, Optional, Union

from ..engine.models import (
    PRICING_FIXED,
    ClientKey,
    ClientOnboardingStatus,
    ImportResult,
    PriceHistoryRecord,
    PriceRecord,
    Product,
    parse_date,
)
from ..errors import PartialBatchFailure, PricingError, StoreUnavailable, ValidationError
from ..store.repository import Transaction, generate_id
from ..store.rule_store import PricingRuleStore

logger = logging.getLogger(__name__)

# Ledger row + synthesized rule
WRITES_PER_RECORD = 2


class HistoricalImportProcessor:
    """Imports historical sale prices for one client at a time."""

    def __init__(
        self,
        store: PricingRuleStore,
        max_batch_writes: int = 500,
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[str], str] = generate_id,
        import_user: str = 'system_import',
    ):
        if max_batch_writes < WRITES_PER_RECORD + 1:
            raise ValueError(f"max_batch_writes must be at least {WRITES_PER_RECORD + 1}")
        self.store = store
        self.repository = store.repository
        self.products = store.products
        self.clients = store.clients
        self.max_batch_writes = max_batch_writes
        self.clock = clock
        self.id_factory = id_factory
        self.import_user = import_user

    @property
    def records_per_batch(self) -> int:
        """Records per sub-batch; one write is reserved for the onboarding summary."""
        return max(1, (self.max_batch_writes - 1) // WRITES_PER_RECORD)

    def process_import(
        self,
        client_id: str,
        records: Iterable[Union[PriceRecord, dict]],
        source: str = 'import',
        imported_by: Optional[str] = None
    ) -> ImportResult:
        """
        Import historical prices for a client.

        Args:
            client_id: Registered client the sales belong to
            records: PriceRecord objects (or dicts) from an import adapter
            source: Ledger source tag, e.g. 'csv' or 'manual'
            imported_by: Audit identity for created rules

        Returns:
            ImportResult with imported, skipped and rules-created counts
        """
        if client_id is None or not str(client_id).strip():
            raise ValidationError("client_id is required")
        client = self.clients.require(str(client_id).strip())
        imported_by = imported_by or self.import_user

        records = [r if isinstance(r, PriceRecord) else PriceRecord.from_dict(r) for r in records]
        result = ImportResult(client_id=client.id)
        size = self.records_per_batch

        for batch_index, start in enumerate(range(0, len(records), size)):
            batch = records[start:start + size]
            try:
                batch_result = self._commit_batch(client.id, batch, source, imported_by)
            except StoreUnavailable as e:
                logger.error(
                    "Import for %s aborted at batch %d: %s (%d batches already committed)",
                    client.id, batch_index, e, result.batches_committed
                )
                raise StoreUnavailable(str(e), partial_result=result) from e
            except PricingError as e:
                failure = PartialBatchFailure(batch_index, len(batch), e)
                logger.warning("Import for %s: %s", client.id, failure)
                result.failures.append(failure)
                result.skipped_count += len(batch)
                continue

            result.imported_count += batch_result.imported_count
            result.skipped_count += batch_result.skipped_count
            result.pricing_rules_created_count += batch_result.pricing_rules_created_count
            result.imported_prices.extend(batch_result.imported_prices)
            result.batches_committed += 1

        logger.info(
            "Imported %d historical prices for %s: %d rules created, %d skipped, %d failed batches",
            result.imported_count, client.id, result.pricing_rules_created_count,
            result.skipped_count, len(result.failures)
        )
        return result

    def _commit_batch(self, client_id: str, batch: list[PriceRecord], source: str, imported_by: str) -> ImportResult:
        """Stage and commit one sub-batch atomically."""
        batch_result = ImportResult(client_id=client_id)

        with self.repository.transaction() as tx:
            for record in batch:
                history = self._to_history(client_id, record, source)
                if history is None:
                    batch_result.skipped_count += 1
                    continue

                tx.append_history(history)
                batch_result.imported_count += 1
                entry = {
                    'productId': history.product_id,
                    'price': history.price,
                    'historyId': history.id,
                    'ruleId': None,
                }

                if tx.get_client_rule(ClientKey(client_id, history.product_id)) is None:
                    rule = self.store.upsert_client_rule(
                        client_id,
                        history.product_id,
                        {
                            'pricing_type': PRICING_FIXED,
                            'fixed_price': history.price,
                            'valid_from': self.clock().date(),
                        },
                        modified_by=imported_by,
                        history=history,
                        tx=tx,
                    )
                    batch_result.pricing_rules_created_count += 1
                    entry['ruleId'] = rule.id

                batch_result.imported_prices.append(entry)

            self._update_onboarding(tx, client_id, batch_result, source)

            if tx.write_count > self.max_batch_writes:
                raise ValidationError(
                    f"Batch staged {tx.write_count} writes, exceeding the cap of {self.max_batch_writes}"
                )

        return batch_result

    def _to_history(self, client_id: str, record: PriceRecord, source: str) -> Optional[PriceHistoryRecord]:
        """Validate a record and build its ledger row, or None to skip it."""
        product = self._find_product(record.product_id)
        if product is None:
            logger.debug("Skipping record: product '%s' not in catalog", record.product_id)
            return None

        try:
            price = float(record.price)
        except (TypeError, ValueError):
            logger.debug("Skipping record for %s: invalid price %r", product.id, record.price)
            return None
        if price <= 0:
            logger.debug("Skipping record for %s: price must be > 0", product.id)
            return None

        try:
            quantity = int(record.quantity) if record.quantity not in (None, '') else 1
        except (TypeError, ValueError):
            logger.debug("Skipping record for %s: invalid quantity %r", product.id, record.quantity)
            return None
        if quantity < 1:
            logger.debug("Skipping record for %s: quantity must be > 0", product.id)
            return None

        try:
            sold_date = parse_date(record.sold_date) or self.clock().date()
        except (TypeError, ValueError):
            logger.debug("Skipping record for %s: invalid sold date %r", product.id, record.sold_date)
            return None

        original_price = self._optional_price(record.original_price)
        discount = discount_percentage = None
        if original_price and original_price > price:
            discount = round(original_price - price, 2)
            discount_percentage = round((original_price - price) / original_price * 100, 2)

        return PriceHistoryRecord(
            id=self.id_factory('ph'),
            client_id=client_id,
            product_id=product.id,
            price=price,
            quantity=quantity,
            sold_date=sold_date,
            order_id=record.order_id or None,
            contract_ref=record.contract_ref or None,
            original_price=original_price,
            discount=discount,
            discount_percentage=discount_percentage,
            notes=record.notes or None,
            source=source,
            is_active=True,
            created_at=self.clock(),
        )

    def _find_product(self, product_id) -> Optional[Product]:
        if product_id is None or not str(product_id).strip():
            return None
        return self.products.find(str(product_id).strip())

    @staticmethod
    def _optional_price(value) -> Optional[float]:
        if value is None or value == '':
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    def _update_onboarding(self, tx: Transaction, client_id: str, batch_result: ImportResult, source: str):
        """Fold this sub-batch's counts into the client's onboarding summary."""
        previous = tx.get_onboarding(client_id) or ClientOnboardingStatus(client_id=client_id)
        tx.save_onboarding(ClientOnboardingStatus(
            client_id=client_id,
            historical_prices_imported=previous.historical_prices_imported or batch_result.imported_count > 0,
            prices_imported_count=previous.prices_imported_count + batch_result.imported_count,
            prices_skipped_count=previous.prices_skipped_count + batch_result.skipped_count,
            pricing_rules_created=previous.pricing_rules_created + batch_result.pricing_rules_created_count,
            last_import_date=self.clock(),
            last_import_method=source,
            notes=(
                f"Last import: {batch_result.imported_count} prices, "
                f"{batch_result.pricing_rules_created_count} new rules, "
                f"{batch_result.skipped_count} skipped"
            ),
        ))
