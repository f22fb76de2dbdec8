"""Store subpackage - repositories and the rule upsert store."""
from .repository import InMemoryPricingRepository, PricingRepository, PricingState, Transaction
from .json_repository import JsonFilePricingRepository
from .rule_store import PricingRuleStore

__all__ = [
    'InMemoryPricingRepository',
    'JsonFilePricingRepository',
    'PricingRepository',
    'PricingRuleStore',
    'PricingState',
    'Transaction',
]
