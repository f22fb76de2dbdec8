"""
JSON file persistence: round trip through disk, atomic commits, bad files.
"""
import json

import pytest

from client_pricing.engine.models import ClientKey, TierKey
from client_pricing.errors import StoreUnavailable
from client_pricing.services.historical_import import HistoricalImportProcessor
from client_pricing.store.json_repository import JsonFilePricingRepository
from client_pricing.store.rule_store import PricingRuleStore


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / 'store' / 'pricing_store.json'


@pytest.fixture
def json_store(store_path, products, clients, clock):
    repository = JsonFilePricingRepository(store_path)
    return PricingRuleStore(repository, products, clients, clock=clock)


def test_missing_file_starts_empty(store_path):
    repository = JsonFilePricingRepository(store_path)
    assert repository.list_tier_rules() == []
    assert not store_path.exists(), "Nothing is written until the first commit"


def test_committed_rules_survive_reload(json_store, store_path, clock):
    tier_rule = json_store.upsert_tier_rule('P1', 'tier_1', {'discount_value': 15})
    client_rule = json_store.upsert_client_rule('C1', 'P1', {'fixed_price': 700, 'min_quantity': 10})
    HistoricalImportProcessor(json_store, clock=clock).process_import(
        'C2', [{'productId': 'P2', 'price': 500, 'soldDate': '2025-01-05'}]
    )

    reopened = JsonFilePricingRepository(store_path)

    assert reopened.get_tier_rule(TierKey('P1', 'tier_1')) == tier_rule
    assert reopened.get_client_rule(ClientKey('C1', 'P1')) == client_rule
    assert len(reopened.list_history(client_id='C2')) == 1
    assert reopened.get_onboarding('C2').prices_imported_count == 1


def test_document_uses_camel_case_records(json_store, store_path):
    json_store.upsert_tier_rule('P4', 'tier_2', {'discount_type': 'fixed', 'discount_value': 15})

    document = json.loads(store_path.read_text(encoding='utf-8'))
    record = document['tierRules'][0]

    assert document['version'] == 1
    assert record['productId'] == 'P4'
    assert record['finalPrice'] == pytest.approx(85.0)
    assert record['isActive'] is True


def test_retired_rules_are_kept_on_disk(json_store, store_path):
    json_store.upsert_client_rule('C1', 'P1', {'fixed_price': 700})
    json_store.deactivate_client_rule('C1', 'P1')

    reopened = JsonFilePricingRepository(store_path)
    assert reopened.get_client_rule(ClientKey('C1', 'P1')) is None
    assert len(reopened.list_client_rules(active_only=False)) == 1


def test_failed_write_keeps_previous_file(json_store, store_path, monkeypatch):
    json_store.upsert_tier_rule('P1', 'tier_1', {'discount_value': 15})
    before = store_path.read_text(encoding='utf-8')

    def broken_replace(src, dst):
        raise OSError("read-only file system")

    monkeypatch.setattr('client_pricing.store.json_repository.os.replace', broken_replace)

    with pytest.raises(StoreUnavailable):
        json_store.upsert_tier_rule('P1', 'tier_1', {'discount_value': 50})

    assert store_path.read_text(encoding='utf-8') == before
    assert json_store.get_tier_rule('P1', 'tier_1').final_price == pytest.approx(722.50)
    assert [p.name for p in store_path.parent.iterdir()] == [store_path.name], "Temp file cleaned up"


def test_corrupt_file_is_store_unavailable(store_path):
    store_path.parent.mkdir(parents=True)
    store_path.write_text("{not json", encoding='utf-8')

    with pytest.raises(StoreUnavailable):
        JsonFilePricingRepository(store_path)


def test_duplicate_active_rules_newest_wins(store_path):
    """Hand-edited files with two active rules for one key still load."""
    base = {
        'productId': 'P1', 'tierId': 'tier_1', 'basePrice': 850, 'discountType': 'percentage',
        'discountValue': 10, 'isActive': True,
    }
    store_path.parent.mkdir(parents=True)
    store_path.write_text(json.dumps({
        'version': 1,
        'tierRules': [
            dict(base, id='tpr_old', finalPrice=765, lastModified='2025-01-01T00:00:00'),
            dict(base, id='tpr_new', finalPrice=700, lastModified='2025-01-15T00:00:00'),
        ],
    }), encoding='utf-8')

    repository = JsonFilePricingRepository(store_path)
    assert repository.get_tier_rule(TierKey('P1', 'tier_1')).id == 'tpr_new'
