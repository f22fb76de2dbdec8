"""
Pricing Rule Store - update-or-create for tier and client pricing rules.

Every write is keyed by its composite identity: an existing active rule for
the key is superseded in place (same id), otherwise a new rule is created.
Retired rules are never resurrected; the next upsert for that key creates a
new id. Final prices always come from ``price_math`` and cannot be set.
"""
import logging
import re
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from ..catalog.catalogs import ClientRegistry, ProductCatalog
from ..engine.models import (
    DISCOUNT_PERCENTAGE,
    PRICE_SOURCE_HISTORICAL,
    PRICE_SOURCE_MANUAL,
    PRICING_FIXED,
    PRICING_MARKUP,
    PRICING_TYPES,
    PRIORITY_HISTORICAL,
    PRIORITY_MANUAL,
    ClientKey,
    ClientPriceRule,
    PriceHistoryRecord,
    TierKey,
    TierPriceRule,
    parse_date,
)
from ..engine.price_math import compute_client_final_price, compute_tier_final_price
from ..errors import NotFoundError, ValidationError
from .repository import PricingRepository, Transaction, generate_id

logger = logging.getLogger(__name__)

TIER_RULE_FIELDS = {'base_price', 'discount_type', 'discount_value'}

CLIENT_RULE_FIELDS = {
    'pricing_type', 'fixed_price', 'base_price', 'markup_type', 'markup_value',
    'agreement_ref', 'valid_from', 'valid_until', 'min_quantity', 'notes',
}

DERIVED_FIELDS = {'final_price'}

FIXED_ONLY_FIELDS = {'fixed_price'}
MARKUP_ONLY_FIELDS = {'markup_type', 'markup_value'}

HISTORICAL_AGREEMENT_REF = 'HISTORICAL'
HISTORICAL_NOTE_PREFIX = 'Auto-imported from historical sale on'

_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')


def normalize_fields(fields: Optional[dict], allowed: set) -> dict:
    """Snake-case the keys of a field dict and reject derived or unknown fields."""
    normalized = {}
    for key, value in (fields or {}).items():
        name = _CAMEL_BOUNDARY.sub('_', str(key)).lower()
        if name in DERIVED_FIELDS:
            raise ValidationError("final_price is derived from the pricing fields and cannot be set")
        if name not in allowed:
            raise ValidationError(f"Unknown field '{key}'")
        normalized[name] = value
    return normalized


def _require_id(value, label: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{label} is required")
    return str(value).strip()


def _optional_number(value, label: str) -> Optional[float]:
    if value is None or value == '':
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a number, got {value!r}")


def _sent(fields: dict, names: set) -> set:
    return {name for name in names if fields.get(name) is not None}


def _infer_pricing_type(fields: dict, existing: Optional[ClientPriceRule]) -> str:
    """
    Explicit pricing_type wins; otherwise the price fields sent decide, and
    only an update that sends neither keeps the existing rule's type.
    """
    if 'pricing_type' in fields:
        return fields['pricing_type']
    fixed_sent = _sent(fields, FIXED_ONLY_FIELDS)
    markup_sent = _sent(fields, MARKUP_ONLY_FIELDS)
    if fixed_sent and markup_sent:
        raise ValidationError(
            f"Cannot send both {sorted(fixed_sent)} and {sorted(markup_sent)}; set pricing_type explicitly"
        )
    if fixed_sent:
        return PRICING_FIXED
    if markup_sent:
        return PRICING_MARKUP
    return existing.pricing_type if existing else PRICING_FIXED


def _check_price_fields(fields: dict, pricing_type: str):
    """Reject sent price fields that the resulting pricing type would discard."""
    ignored = _sent(fields, MARKUP_ONLY_FIELDS if pricing_type == PRICING_FIXED else FIXED_ONLY_FIELDS)
    if ignored:
        raise ValidationError(f"{sorted(ignored)} cannot be set on a '{pricing_type}' client rule")


def _date_field(value, label: str):
    try:
        return parse_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be YYYY-MM-DD format, got {value!r}")


class PricingRuleStore:
    """Persists tier and client rules with at most one active rule per key."""

    def __init__(
        self,
        repository: PricingRepository,
        products: ProductCatalog,
        clients: ClientRegistry,
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[str], str] = generate_id,
        default_modified_by: str = 'admin_user',
    ):
        self.repository = repository
        self.products = products
        self.clients = clients
        self.clock = clock
        self.id_factory = id_factory
        self.default_modified_by = default_modified_by

    # ------------------------------------------------------------------
    # Tier rules
    # ------------------------------------------------------------------

    def get_tier_rule(self, product_id: str, tier_id: str) -> Optional[TierPriceRule]:
        """Active tier rule for a product and tier."""
        return self.repository.get_tier_rule(TierKey(str(product_id), str(tier_id)))

    def list_tier_rules(
        self,
        tier_id: Optional[str] = None,
        product_id: Optional[str] = None,
        include_inactive: bool = False
    ) -> list[TierPriceRule]:
        return self.repository.list_tier_rules(
            tier_id=tier_id, product_id=product_id, active_only=not include_inactive
        )

    def preview_tier_rule(self, product_id: str, tier_id: str, fields: Optional[dict] = None) -> TierPriceRule:
        """Compute the rule an upsert would write, without writing it."""
        product_id = _require_id(product_id, "product_id")
        tier_id = _require_id(tier_id, "tier_id")
        existing = self.get_tier_rule(product_id, tier_id)
        return self._build_tier_rule(existing, product_id, tier_id, fields, None, draft=True)

    def upsert_tier_rule(
        self,
        product_id: str,
        tier_id: str,
        fields: Optional[dict] = None,
        modified_by: Optional[str] = None,
        tx: Optional[Transaction] = None
    ) -> TierPriceRule:
        """
        Create or supersede the active tier rule for (product_id, tier_id).

        Args:
            fields: base_price (defaults to catalog price), discount_type,
                discount_value. Omitted fields keep their current values.
            tx: open transaction to stage into; a new one is committed otherwise.
        """
        if tx is None:
            with self.repository.transaction() as own_tx:
                return self.upsert_tier_rule(product_id, tier_id, fields, modified_by, tx=own_tx)

        product_id = _require_id(product_id, "product_id")
        tier_id = _require_id(tier_id, "tier_id")
        existing = tx.get_tier_rule(TierKey(product_id, tier_id))
        rule = self._build_tier_rule(existing, product_id, tier_id, fields, modified_by)
        tx.save_tier_rule(rule)

        logger.info(
            "%s tier rule %s for %s/%s: %.2f",
            "Updated" if existing else "Created", rule.id, product_id, tier_id, rule.final_price
        )
        return rule

    def deactivate_tier_rule(
        self,
        product_id: str,
        tier_id: str,
        modified_by: Optional[str] = None,
        tx: Optional[Transaction] = None
    ) -> TierPriceRule:
        """Soft-delete the active tier rule for a key."""
        if tx is None:
            with self.repository.transaction() as own_tx:
                return self.deactivate_tier_rule(product_id, tier_id, modified_by, tx=own_tx)

        key = TierKey(_require_id(product_id, "product_id"), _require_id(tier_id, "tier_id"))
        existing = tx.get_tier_rule(key)
        if existing is None:
            raise NotFoundError(f"No active tier rule for product '{key.product_id}' in tier '{key.tier_id}'")

        retired = replace(
            existing,
            is_active=False,
            last_modified=self.clock(),
            modified_by=modified_by or self.default_modified_by,
        )
        tx.save_tier_rule(retired)
        logger.info("Deactivated tier rule %s for %s/%s", retired.id, key.product_id, key.tier_id)
        return retired

    def _build_tier_rule(
        self,
        existing: Optional[TierPriceRule],
        product_id: str,
        tier_id: str,
        fields: Optional[dict],
        modified_by: Optional[str],
        draft: bool = False
    ) -> TierPriceRule:
        fields = normalize_fields(fields, TIER_RULE_FIELDS)
        product = self.products.require(product_id)

        def current(name, default):
            if name in fields:
                return fields[name]
            return getattr(existing, name) if existing else default

        base_price = _optional_number(current('base_price', product.base_price), "base_price")
        if base_price is None:
            base_price = product.base_price
        discount_type = current('discount_type', DISCOUNT_PERCENTAGE)
        discount_value = _optional_number(current('discount_value', 0.0), "discount_value")
        if discount_value is None:
            raise ValidationError("discount_value is required")

        final_price = compute_tier_final_price(base_price, discount_type, discount_value)
        now = self.clock()
        modified_by = modified_by or self.default_modified_by

        if existing:
            return replace(
                existing,
                base_price=base_price,
                discount_type=discount_type,
                discount_value=discount_value,
                final_price=final_price,
                last_modified=now,
                modified_by=modified_by,
            )

        return TierPriceRule(
            id='' if draft else self.id_factory('tpr'),
            product_id=product_id,
            tier_id=tier_id,
            base_price=base_price,
            discount_type=discount_type,
            discount_value=discount_value,
            final_price=final_price,
            is_active=not draft,
            created_at=now,
            last_modified=now,
            modified_by=modified_by,
        )

    # ------------------------------------------------------------------
    # Client rules
    # ------------------------------------------------------------------

    def get_client_rule(self, client_id: str, product_id: str) -> Optional[ClientPriceRule]:
        """Active client rule for a client and product."""
        return self.repository.get_client_rule(ClientKey(str(client_id), str(product_id)))

    def list_client_rules(
        self,
        client_id: Optional[str] = None,
        product_id: Optional[str] = None,
        include_inactive: bool = False
    ) -> list[ClientPriceRule]:
        return self.repository.list_client_rules(
            client_id=client_id, product_id=product_id, active_only=not include_inactive
        )

    def preview_client_rule(self, client_id: str, product_id: str, fields: Optional[dict] = None) -> ClientPriceRule:
        """Compute the rule an upsert would write (DRAFT), without writing it."""
        client_id = _require_id(client_id, "client_id")
        product_id = _require_id(product_id, "product_id")
        existing = self.get_client_rule(client_id, product_id)
        return self._build_client_rule(existing, client_id, product_id, fields, None, None, draft=True)

    def upsert_client_rule(
        self,
        client_id: str,
        product_id: str,
        fields: Optional[dict] = None,
        modified_by: Optional[str] = None,
        history: Optional[PriceHistoryRecord] = None,
        tx: Optional[Transaction] = None
    ) -> ClientPriceRule:
        """
        Create or supersede the active client rule for (client_id, product_id).

        Manual upserts get priority 1 and price source 'manual'. Passing the
        ledger record a rule is derived from (``history``) marks it as
        historical with priority 2 and provenance.
        """
        if tx is None:
            with self.repository.transaction() as own_tx:
                return self.upsert_client_rule(
                    client_id, product_id, fields, modified_by, history, tx=own_tx
                )

        client_id = _require_id(client_id, "client_id")
        product_id = _require_id(product_id, "product_id")
        existing = tx.get_client_rule(ClientKey(client_id, product_id))
        rule = self._build_client_rule(existing, client_id, product_id, fields, modified_by, history)
        tx.save_client_rule(rule)

        logger.info(
            "%s %s client rule %s for %s/%s: %.2f",
            "Updated" if existing else "Created", rule.price_source, rule.id,
            client_id, product_id, rule.final_price
        )
        return rule

    def deactivate_client_rule(
        self,
        client_id: str,
        product_id: str,
        modified_by: Optional[str] = None,
        tx: Optional[Transaction] = None
    ) -> ClientPriceRule:
        """Soft-delete the active client rule for a key. The record is retained."""
        if tx is None:
            with self.repository.transaction() as own_tx:
                return self.deactivate_client_rule(client_id, product_id, modified_by, tx=own_tx)

        key = ClientKey(_require_id(client_id, "client_id"), _require_id(product_id, "product_id"))
        existing = tx.get_client_rule(key)
        if existing is None:
            raise NotFoundError(
                f"No active client rule for client '{key.client_id}' and product '{key.product_id}'"
            )

        retired = replace(
            existing,
            is_active=False,
            last_modified=self.clock(),
            modified_by=modified_by or self.default_modified_by,
        )
        tx.save_client_rule(retired)
        logger.info("Deactivated client rule %s for %s/%s", retired.id, key.client_id, key.product_id)
        return retired

    def _build_client_rule(
        self,
        existing: Optional[ClientPriceRule],
        client_id: str,
        product_id: str,
        fields: Optional[dict],
        modified_by: Optional[str],
        history: Optional[PriceHistoryRecord],
        draft: bool = False
    ) -> ClientPriceRule:
        fields = normalize_fields(fields, CLIENT_RULE_FIELDS)
        self.clients.require(client_id)
        product = self.products.require(product_id)

        def current(name, default=None):
            if name in fields:
                return fields[name]
            return getattr(existing, name) if existing else default

        pricing_type = _infer_pricing_type(fields, existing)
        if pricing_type not in PRICING_TYPES:
            raise ValidationError(f"Invalid pricing type '{pricing_type}', must be one of: {sorted(PRICING_TYPES)}")
        _check_price_fields(fields, pricing_type)

        fixed_price = _optional_number(current('fixed_price'), "fixed_price")
        base_price = _optional_number(current('base_price'), "base_price")
        markup_type = current('markup_type')
        markup_value = _optional_number(current('markup_value'), "markup_value")

        if pricing_type == PRICING_MARKUP:
            fixed_price = None
            if base_price is None:
                base_price = product.base_price
            markup_type = markup_type or DISCOUNT_PERCENTAGE
        else:
            markup_type = None
            markup_value = None

        final_price = compute_client_final_price(
            pricing_type,
            fixed_price=fixed_price,
            base_price=base_price,
            markup_type=markup_type,
            markup_value=markup_value,
        )

        raw_min_qty = current('min_quantity', 1)
        try:
            min_quantity = int(raw_min_qty if raw_min_qty is not None else 1)
        except (TypeError, ValueError):
            raise ValidationError(f"min_quantity must be an integer, got {raw_min_qty!r}")
        if min_quantity < 1:
            raise ValidationError(f"min_quantity must be >= 1, got {min_quantity}")

        now = self.clock()
        valid_from = _date_field(current('valid_from'), "valid_from") or now.date()
        valid_until = _date_field(current('valid_until'), "valid_until")
        if valid_until and valid_until < valid_from:
            raise ValidationError("valid_until must not be before valid_from")

        agreement_ref = current('agreement_ref')
        notes = current('notes')
        modified_by = modified_by or self.default_modified_by

        if history is not None:
            price_source = PRICE_SOURCE_HISTORICAL
            priority = PRIORITY_HISTORICAL
            based_on_history_id = history.id
            last_sold_price = history.price
            last_sold_date = history.sold_date
            agreement_ref = agreement_ref or history.contract_ref or HISTORICAL_AGREEMENT_REF
            notes = notes or f"{HISTORICAL_NOTE_PREFIX} {history.sold_date.isoformat()}"
        else:
            # A manual write takes over an imported rule: drop the import placeholders
            if 'agreement_ref' not in fields and agreement_ref == HISTORICAL_AGREEMENT_REF:
                agreement_ref = None
            if 'notes' not in fields and notes and notes.startswith(HISTORICAL_NOTE_PREFIX):
                notes = None
            price_source = PRICE_SOURCE_MANUAL
            priority = PRIORITY_MANUAL
            based_on_history_id = None
            last_sold_price = existing.last_sold_price if existing else None
            last_sold_date = existing.last_sold_date if existing else None

        values = dict(
            pricing_type=pricing_type,
            fixed_price=fixed_price,
            base_price=base_price,
            markup_type=markup_type,
            markup_value=markup_value,
            final_price=final_price,
            agreement_ref=agreement_ref,
            valid_from=valid_from,
            valid_until=valid_until,
            min_quantity=min_quantity,
            priority=priority,
            price_source=price_source,
            based_on_history_id=based_on_history_id,
            notes=notes,
            last_sold_price=last_sold_price,
            last_sold_date=last_sold_date,
            last_modified=now,
            modified_by=modified_by,
        )

        if existing:
            return replace(existing, **values)

        return ClientPriceRule(
            id='' if draft else self.id_factory('cpr'),
            client_id=client_id,
            product_id=product_id,
            is_active=not draft,
            created_at=now,
            created_by=modified_by,
            **values,
        )
