"""
Pricing Repository - persistence abstraction for rules and the price ledger.

A repository holds one committed ``PricingState``. Writers open a
``transaction()``, which works on a private copy of that state under the
repository's write lock; on success the copy is persisted and then swapped
in, on any exception it is dropped. Readers take ``snapshot()`` and therefore
only ever see fully committed states.

Composite-key indexes (``TierKey`` / ``ClientKey`` → rule id) cover active
rules only and are rebuilt from the records whenever a state is loaded.
"""
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from ..engine.models import (
    ClientKey,
    ClientOnboardingStatus,
    ClientPriceRule,
    PriceHistoryRecord,
    TierKey,
    TierPriceRule,
)
from ..errors import PricingError, ValidationError

logger = logging.getLogger(__name__)

DOCUMENT_VERSION = 1


def generate_id(prefix: str) -> str:
    """Generate a unique record id, e.g. ``cpr_3f9a...``."""
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


def _recency(rule) -> datetime:
    return rule.last_modified or rule.created_at or datetime.min


class PricingState:
    """Rules, ledger and onboarding summaries, plus the active-key indexes."""

    def __init__(
        self,
        tier_rules: Optional[dict] = None,
        client_rules: Optional[dict] = None,
        history: Optional[dict] = None,
        onboarding: Optional[dict] = None,
        tier_index: Optional[dict] = None,
        client_index: Optional[dict] = None,
    ):
        self.tier_rules: dict[str, TierPriceRule] = dict(tier_rules or {})
        self.client_rules: dict[str, ClientPriceRule] = dict(client_rules or {})
        self.history: dict[str, PriceHistoryRecord] = dict(history or {})
        self.onboarding: dict[str, ClientOnboardingStatus] = dict(onboarding or {})

        if tier_index is None or client_index is None:
            self.tier_index: dict[TierKey, str] = {}
            self.client_index: dict[ClientKey, str] = {}
            self.rebuild_index()
        else:
            self.tier_index = dict(tier_index)
            self.client_index = dict(client_index)

    def rebuild_index(self):
        """Rebuild composite-key indexes from the active records."""
        self.tier_index = self._index(self.tier_rules.values(), self.tier_rules)
        self.client_index = self._index(self.client_rules.values(), self.client_rules)

    @staticmethod
    def _index(rules, by_id: dict) -> dict:
        index = {}
        for rule in rules:
            if not rule.is_active:
                continue
            current_id = index.get(rule.key)
            if current_id is None:
                index[rule.key] = rule.id
                continue
            # Legacy data with two active rules for one key: newest wins the index
            current = by_id[current_id]
            logger.warning(
                "Multiple active rules for %s (%s, %s); indexing the most recent",
                rule.key, current_id, rule.id
            )
            if _recency(rule) > _recency(current):
                index[rule.key] = rule.id
        return index

    def copy(self) -> 'PricingState':
        """Shallow copy; records are frozen so sharing them is safe."""
        return PricingState(
            tier_rules=self.tier_rules,
            client_rules=self.client_rules,
            history=self.history,
            onboarding=self.onboarding,
            tier_index=self.tier_index,
            client_index=self.client_index,
        )

    # Reads

    def get_tier_rule(self, key: TierKey) -> Optional[TierPriceRule]:
        """Active tier rule for a key."""
        rule_id = self.tier_index.get(key)
        return self.tier_rules[rule_id] if rule_id else None

    def get_client_rule(self, key: ClientKey) -> Optional[ClientPriceRule]:
        """Active client rule for a key."""
        rule_id = self.client_index.get(key)
        return self.client_rules[rule_id] if rule_id else None

    def get_tier_rule_by_id(self, rule_id: str) -> Optional[TierPriceRule]:
        return self.tier_rules.get(rule_id)

    def get_client_rule_by_id(self, rule_id: str) -> Optional[ClientPriceRule]:
        return self.client_rules.get(rule_id)

    def list_tier_rules(
        self,
        tier_id: Optional[str] = None,
        product_id: Optional[str] = None,
        active_only: bool = True
    ) -> list[TierPriceRule]:
        rules = []
        for rule in self.tier_rules.values():
            if active_only and not rule.is_active:
                continue
            if tier_id is not None and rule.tier_id != tier_id:
                continue
            if product_id is not None and rule.product_id != product_id:
                continue
            rules.append(rule)
        return rules

    def list_client_rules(
        self,
        client_id: Optional[str] = None,
        product_id: Optional[str] = None,
        active_only: bool = True
    ) -> list[ClientPriceRule]:
        rules = []
        for rule in self.client_rules.values():
            if active_only and not rule.is_active:
                continue
            if client_id is not None and rule.client_id != client_id:
                continue
            if product_id is not None and rule.product_id != product_id:
                continue
            rules.append(rule)
        return rules

    def list_history(
        self,
        client_id: Optional[str] = None,
        product_id: Optional[str] = None
    ) -> list[PriceHistoryRecord]:
        """Ledger rows in insertion order."""
        return [
            record for record in self.history.values()
            if (client_id is None or record.client_id == client_id)
            and (product_id is None or record.product_id == product_id)
        ]

    def get_onboarding(self, client_id: str) -> Optional[ClientOnboardingStatus]:
        return self.onboarding.get(client_id)

    # Serialization

    def to_document(self) -> dict:
        return {
            'version': DOCUMENT_VERSION,
            'savedAt': datetime.now().isoformat(),
            'tierRules': [r.to_record() for r in self.tier_rules.values()],
            'clientRules': [r.to_record() for r in self.client_rules.values()],
            'priceHistory': [r.to_record() for r in self.history.values()],
            'clientOnboarding': [s.to_record() for s in self.onboarding.values()],
        }

    @classmethod
    def from_document(cls, data: dict) -> 'PricingState':
        tier_rules = [TierPriceRule.from_record(r) for r in data.get('tierRules', [])]
        client_rules = [ClientPriceRule.from_record(r) for r in data.get('clientRules', [])]
        history = [PriceHistoryRecord.from_record(r) for r in data.get('priceHistory', [])]
        onboarding = [ClientOnboardingStatus.from_record(r) for r in data.get('clientOnboarding', [])]
        return cls(
            tier_rules={r.id: r for r in tier_rules},
            client_rules={r.id: r for r in client_rules},
            history={r.id: r for r in history},
            onboarding={s.client_id: s for s in onboarding},
        )


class Transaction:
    """
    Staged writes against a private state copy.

    Reads go through the staged state, so later steps in the same transaction
    see earlier writes.
    """

    def __init__(self, state: PricingState):
        self.state = state
        self.write_count = 0
        self.closed = False

    def _check_open(self):
        if self.closed:
            raise PricingError("Transaction is already closed")

    # Reads (read-your-writes)

    def get_tier_rule(self, key: TierKey) -> Optional[TierPriceRule]:
        return self.state.get_tier_rule(key)

    def get_client_rule(self, key: ClientKey) -> Optional[ClientPriceRule]:
        return self.state.get_client_rule(key)

    def get_onboarding(self, client_id: str) -> Optional[ClientOnboardingStatus]:
        return self.state.get_onboarding(client_id)

    # Writes

    def save_tier_rule(self, rule: TierPriceRule):
        """Insert or replace a tier rule by id, keeping the key index in step."""
        self._check_open()
        self._save_rule(rule, self.state.tier_rules, self.state.tier_index)

    def save_client_rule(self, rule: ClientPriceRule):
        """Insert or replace a client rule by id, keeping the key index in step."""
        self._check_open()
        self._save_rule(rule, self.state.client_rules, self.state.client_index)

    def _save_rule(self, rule, by_id: dict, index: dict):
        indexed_id = index.get(rule.key)
        if rule.is_active:
            if indexed_id is not None and indexed_id != rule.id:
                raise ValidationError(
                    f"Active rule {indexed_id} already exists for {rule.key}; "
                    f"refusing to activate {rule.id}"
                )
            index[rule.key] = rule.id
        elif indexed_id == rule.id:
            del index[rule.key]
        by_id[rule.id] = rule
        self.write_count += 1

    def append_history(self, record: PriceHistoryRecord):
        """Append a ledger row. Existing rows are never replaced."""
        self._check_open()
        if record.id in self.state.history:
            raise ValidationError(f"Price history record {record.id} already exists (ledger is append-only)")
        self.state.history[record.id] = record
        self.write_count += 1

    def save_onboarding(self, status: ClientOnboardingStatus):
        self._check_open()
        self.state.onboarding[status.client_id] = status
        self.write_count += 1


class PricingRepository:
    """Base repository: committed state, write lock, and transactions."""

    def __init__(self, state: Optional[PricingState] = None):
        self._lock = threading.RLock()
        self._state = state if state is not None else self._load()

    def _load(self) -> PricingState:
        return PricingState()

    def _persist(self, state: PricingState):
        """Durably store a state before it becomes the committed one."""

    def snapshot(self) -> PricingState:
        """The last committed state. Treat as read-only."""
        with self._lock:
            return self._state

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """
        Run staged writes atomically.

        Holding the write lock for the whole transaction serializes
        read-then-write upserts, so two creates for one key become a create
        followed by an overwrite.
        """
        with self._lock:
            tx = Transaction(self._state.copy())
            try:
                yield tx
            except BaseException:
                logger.debug("Transaction discarded (%d staged writes)", tx.write_count)
                raise
            else:
                if tx.write_count:
                    self._persist(tx.state)
                    self._state = tx.state
                    logger.debug("Transaction committed (%d writes)", tx.write_count)
            finally:
                tx.closed = True

    # Convenience reads against the committed state

    def get_tier_rule(self, key: TierKey) -> Optional[TierPriceRule]:
        return self.snapshot().get_tier_rule(key)

    def get_client_rule(self, key: ClientKey) -> Optional[ClientPriceRule]:
        return self.snapshot().get_client_rule(key)

    def list_tier_rules(self, **filters) -> list[TierPriceRule]:
        return self.snapshot().list_tier_rules(**filters)

    def list_client_rules(self, **filters) -> list[ClientPriceRule]:
        return self.snapshot().list_client_rules(**filters)

    def list_history(self, **filters) -> list[PriceHistoryRecord]:
        return self.snapshot().list_history(**filters)

    def get_onboarding(self, client_id: str) -> Optional[ClientOnboardingStatus]:
        return self.snapshot().get_onboarding(client_id)


class InMemoryPricingRepository(PricingRepository):
    """Repository kept only in process memory. Used by tests and previews."""
