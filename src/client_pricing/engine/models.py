"""
Data models for the pricing engine.

Uses dataclasses for structured, type-safe data representation. Persisted
records are frozen: a change is always a new instance written through a
repository transaction. ``to_record()`` produces the camelCase field set that
reporting and UI previews read.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional


DISCOUNT_PERCENTAGE = 'percentage'
DISCOUNT_FIXED = 'fixed'
DISCOUNT_TYPES = {DISCOUNT_PERCENTAGE, DISCOUNT_FIXED}

PRICING_FIXED = 'fixed'
PRICING_MARKUP = 'markup'
PRICING_TYPES = {PRICING_FIXED, PRICING_MARKUP}

PRICE_SOURCE_MANUAL = 'manual'
PRICE_SOURCE_HISTORICAL = 'historical'

PRIORITY_MANUAL = 1
PRIORITY_HISTORICAL = 2

# Resolution provenance
SOURCE_CLIENT = 'client'
SOURCE_TIER = 'tier'
SOURCE_CATALOG = 'catalog_default'


def to_iso(value: Optional[date]) -> Optional[str]:
    """Serialize a date/datetime (or None) to ISO format."""
    return value.isoformat() if value is not None else None


def parse_date(value: Any) -> Optional[date]:
    """Parse a date from ISO string, date or datetime. Empty values give None."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    # Accept full timestamps as well as plain YYYY-MM-DD
    return datetime.fromisoformat(text[:10] if 'T' in text or ' ' in text else text).date()


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse a datetime from ISO string or datetime. Empty values give None."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.fromisoformat(str(value).strip())


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == '':
        return None
    return float(value)


@dataclass(frozen=True)
class TierKey:
    """Composite identity of a tier rule."""
    product_id: str
    tier_id: str


@dataclass(frozen=True)
class ClientKey:
    """Composite identity of a client rule."""
    client_id: str
    product_id: str


@dataclass(frozen=True)
class Product:
    """A catalog product (read-only, owned by the catalog)."""
    id: str
    base_price: float
    category: Optional[str] = None
    code: Optional[str] = None
    name: Optional[str] = None

    def to_record(self) -> dict:
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'basePrice': self.base_price,
            'category': self.category,
        }


@dataclass(frozen=True)
class Client:
    """A registered client (read-only, owned by the client registry)."""
    id: str
    default_tier_id: Optional[str] = None
    name: Optional[str] = None
    is_active: bool = True

    def to_record(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'defaultTierId': self.default_tier_id,
            'isActive': self.is_active,
        }


@dataclass(frozen=True)
class TierPriceRule:
    """List price of one product for one tier."""
    id: str
    product_id: str
    tier_id: str
    base_price: float
    discount_type: str
    discount_value: float
    final_price: float
    is_active: bool = True
    created_at: Optional[datetime] = None
    last_modified: Optional[datetime] = None
    modified_by: Optional[str] = None

    @property
    def key(self) -> TierKey:
        return TierKey(self.product_id, self.tier_id)

    def to_record(self) -> dict:
        return {
            'id': self.id,
            'productId': self.product_id,
            'tierId': self.tier_id,
            'basePrice': self.base_price,
            'discountType': self.discount_type,
            'discountValue': self.discount_value,
            'finalPrice': self.final_price,
            'isActive': self.is_active,
            'createdAt': to_iso(self.created_at),
            'lastModified': to_iso(self.last_modified),
            'modifiedBy': self.modified_by,
        }

    @classmethod
    def from_record(cls, row: dict) -> 'TierPriceRule':
        return cls(
            id=row['id'],
            product_id=row['productId'],
            tier_id=row['tierId'],
            base_price=float(row['basePrice']),
            discount_type=row.get('discountType', DISCOUNT_PERCENTAGE),
            discount_value=float(row.get('discountValue', 0)),
            final_price=float(row['finalPrice']),
            is_active=bool(row.get('isActive', True)),
            created_at=parse_datetime(row.get('createdAt')),
            last_modified=parse_datetime(row.get('lastModified')),
            modified_by=row.get('modifiedBy'),
        )


@dataclass(frozen=True)
class ClientPriceRule:
    """A negotiated or history-derived price override for one client and product."""
    id: str
    client_id: str
    product_id: str
    pricing_type: str
    final_price: float
    fixed_price: Optional[float] = None
    base_price: Optional[float] = None
    markup_type: Optional[str] = None
    markup_value: Optional[float] = None
    agreement_ref: Optional[str] = None
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None  # inclusive
    min_quantity: int = 1
    priority: int = PRIORITY_MANUAL
    price_source: str = PRICE_SOURCE_MANUAL
    based_on_history_id: Optional[str] = None
    notes: Optional[str] = None
    last_sold_price: Optional[float] = None
    last_sold_date: Optional[date] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None
    last_modified: Optional[datetime] = None
    modified_by: Optional[str] = None

    @property
    def key(self) -> ClientKey:
        return ClientKey(self.client_id, self.product_id)

    def is_valid_on(self, day: date) -> bool:
        """True if ``day`` falls inside [valid_from, valid_until]."""
        if self.valid_from and day < self.valid_from:
            return False
        if self.valid_until and day > self.valid_until:
            return False
        return True

    def to_record(self) -> dict:
        return {
            'id': self.id,
            'clientId': self.client_id,
            'productId': self.product_id,
            'pricingType': self.pricing_type,
            'fixedPrice': self.fixed_price,
            'basePrice': self.base_price,
            'markupType': self.markup_type,
            'markupValue': self.markup_value,
            'finalPrice': self.final_price,
            'agreementRef': self.agreement_ref,
            'validFrom': to_iso(self.valid_from),
            'validUntil': to_iso(self.valid_until),
            'minQuantity': self.min_quantity,
            'priority': self.priority,
            'priceSource': self.price_source,
            'basedOnHistoryId': self.based_on_history_id,
            'notes': self.notes,
            'lastSoldPrice': self.last_sold_price,
            'lastSoldDate': to_iso(self.last_sold_date),
            'isActive': self.is_active,
            'createdAt': to_iso(self.created_at),
            'createdBy': self.created_by,
            'lastModified': to_iso(self.last_modified),
            'modifiedBy': self.modified_by,
        }

    @classmethod
    def from_record(cls, row: dict) -> 'ClientPriceRule':
        return cls(
            id=row['id'],
            client_id=row['clientId'],
            product_id=row['productId'],
            pricing_type=row.get('pricingType', PRICING_FIXED),
            final_price=float(row['finalPrice']),
            fixed_price=_optional_float(row.get('fixedPrice')),
            base_price=_optional_float(row.get('basePrice')),
            markup_type=row.get('markupType'),
            markup_value=_optional_float(row.get('markupValue')),
            agreement_ref=row.get('agreementRef'),
            valid_from=parse_date(row.get('validFrom')),
            valid_until=parse_date(row.get('validUntil')),
            min_quantity=int(row.get('minQuantity') or 1),
            priority=int(row.get('priority') or PRIORITY_MANUAL),
            price_source=row.get('priceSource', PRICE_SOURCE_MANUAL),
            based_on_history_id=row.get('basedOnHistoryId'),
            notes=row.get('notes'),
            last_sold_price=_optional_float(row.get('lastSoldPrice')),
            last_sold_date=parse_date(row.get('lastSoldDate')),
            is_active=bool(row.get('isActive', True)),
            created_at=parse_datetime(row.get('createdAt')),
            created_by=row.get('createdBy'),
            last_modified=parse_datetime(row.get('lastModified')),
            modified_by=row.get('modifiedBy'),
        )


@dataclass(frozen=True)
class PriceHistoryRecord:
    """One past sale. Append-only: never updated, never deduplicated."""
    id: str
    client_id: str
    product_id: str
    price: float
    quantity: int
    sold_date: date
    order_id: Optional[str] = None
    contract_ref: Optional[str] = None
    original_price: Optional[float] = None
    discount: Optional[float] = None
    discount_percentage: Optional[float] = None
    notes: Optional[str] = None
    source: str = 'import'
    is_active: bool = True
    created_at: Optional[datetime] = None

    def to_record(self) -> dict:
        return {
            'id': self.id,
            'clientId': self.client_id,
            'productId': self.product_id,
            'price': self.price,
            'quantity': self.quantity,
            'soldDate': to_iso(self.sold_date),
            'orderId': self.order_id,
            'contractRef': self.contract_ref,
            'originalPrice': self.original_price,
            'discount': self.discount,
            'discountPercentage': self.discount_percentage,
            'notes': self.notes,
            'source': self.source,
            'isActive': self.is_active,
            'createdAt': to_iso(self.created_at),
        }

    @classmethod
    def from_record(cls, row: dict) -> 'PriceHistoryRecord':
        return cls(
            id=row['id'],
            client_id=row['clientId'],
            product_id=row['productId'],
            price=float(row['price']),
            quantity=int(row.get('quantity') or 1),
            sold_date=parse_date(row.get('soldDate')),
            order_id=row.get('orderId'),
            contract_ref=row.get('contractRef'),
            original_price=_optional_float(row.get('originalPrice')),
            discount=_optional_float(row.get('discount')),
            discount_percentage=_optional_float(row.get('discountPercentage')),
            notes=row.get('notes'),
            source=row.get('source', 'import'),
            is_active=bool(row.get('isActive', True)),
            created_at=parse_datetime(row.get('createdAt')),
        )


@dataclass(frozen=True)
class ClientOnboardingStatus:
    """Cumulative summary of historical imports for one client."""
    client_id: str
    historical_prices_imported: bool = False
    prices_imported_count: int = 0
    prices_skipped_count: int = 0
    pricing_rules_created: int = 0
    last_import_date: Optional[datetime] = None
    last_import_method: Optional[str] = None
    notes: Optional[str] = None

    def to_record(self) -> dict:
        return {
            'clientId': self.client_id,
            'historicalPricesImported': self.historical_prices_imported,
            'pricesImportedCount': self.prices_imported_count,
            'pricesSkippedCount': self.prices_skipped_count,
            'pricingRulesCreated': self.pricing_rules_created,
            'lastImportDate': to_iso(self.last_import_date),
            'lastImportMethod': self.last_import_method,
            'notes': self.notes,
        }

    @classmethod
    def from_record(cls, row: dict) -> 'ClientOnboardingStatus':
        return cls(
            client_id=row['clientId'],
            historical_prices_imported=bool(row.get('historicalPricesImported', False)),
            prices_imported_count=int(row.get('pricesImportedCount') or 0),
            prices_skipped_count=int(row.get('pricesSkippedCount') or 0),
            pricing_rules_created=int(row.get('pricingRulesCreated') or 0),
            last_import_date=parse_datetime(row.get('lastImportDate')),
            last_import_method=row.get('lastImportMethod'),
            notes=row.get('notes'),
        )


@dataclass
class PriceRecord:
    """A historical sale handed over by an import adapter."""
    product_id: Optional[str]
    price: Optional[float]
    quantity: Optional[int] = 1
    sold_date: Any = None  # date, ISO string or None (= today)
    order_id: Optional[str] = None
    contract_ref: Optional[str] = None
    original_price: Optional[float] = None
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'PriceRecord':
        """Build from a camelCase or snake_case mapping."""
        def pick(*names):
            for name in names:
                if name in data and data[name] is not None:
                    return data[name]
            return None

        return cls(
            product_id=pick('productId', 'product_id'),
            price=pick('price'),
            quantity=pick('quantity'),
            sold_date=pick('soldDate', 'sold_date'),
            order_id=pick('orderId', 'order_id'),
            contract_ref=pick('contractRef', 'contract_ref'),
            original_price=pick('originalPrice', 'original_price'),
            notes=pick('notes'),
        )


@dataclass
class TraceStep:
    """A single step in the pricing resolution trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass
class PriceResolution:
    """The effective unit price for one product and its provenance."""
    product_id: str
    quantity: int
    unit_price: float
    source: str  # "client", "tier" or "catalog_default"
    rule_id: Optional[str] = None
    tier_id: Optional[str] = None
    client_id: Optional[str] = None
    trace: list[TraceStep] = field(default_factory=list)

    @property
    def extended_price(self) -> float:
        return round(self.unit_price * self.quantity, 2)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the trace for this resolution."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"→ {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"→ {t.step}: {t.description}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            'productId': self.product_id,
            'quantity': self.quantity,
            'unitPrice': self.unit_price,
            'extendedPrice': self.extended_price,
            'source': self.source,
            'ruleId': self.rule_id,
            'tierId': self.tier_id,
            'clientId': self.client_id,
            'trace': [
                {'step': t.step, 'description': t.description, 'value': t.value}
                for t in self.trace
            ],
        }


@dataclass
class ImportResult:
    """Counts from one historical import invocation."""
    client_id: str
    imported_count: int = 0
    skipped_count: int = 0
    pricing_rules_created_count: int = 0
    batches_committed: int = 0
    failures: list = field(default_factory=list)  # PartialBatchFailure
    imported_prices: list[dict] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict:
        return {
            'clientId': self.client_id,
            'importedCount': self.imported_count,
            'skippedCount': self.skipped_count,
            'pricingRulesCreatedCount': self.pricing_rules_created_count,
            'batchesCommitted': self.batches_committed,
            'failures': [f.to_dict() for f in self.failures],
            'importedPrices': self.imported_prices,
        }


@dataclass
class BulkUpdateResult:
    """Outcome of one committed bulk tier update."""
    tier_id: str
    updated_count: int = 0
    rule_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'tierId': self.tier_id,
            'updatedCount': self.updated_count,
            'ruleIds': self.rule_ids,
        }
