"""
Bulk tier discounts: targeting, atomicity, staging and the write cap.
"""
import pytest

from client_pricing.engine.models import TierKey
from client_pricing.errors import PricingError, StoreUnavailable, ValidationError
from client_pricing.services.bulk_tier_updater import BulkTierUpdater


def test_category_filter(updater, repository):
    result = updater.apply_bulk_discount('tier_2', 'percentage', 10, category='cameras')

    assert result.updated_count == 2
    assert {r.product_id for r in repository.list_tier_rules(tier_id='tier_2')} == {'P1', 'P3'}
    assert repository.get_tier_rule(TierKey('P1', 'tier_2')).final_price == pytest.approx(765.0)


def test_category_intersected_with_product_ids(updater, repository):
    result = updater.apply_bulk_discount('tier_2', 'fixed', 20, category='cameras', product_ids=['P3', 'P4'])

    assert result.updated_count == 1
    assert repository.get_tier_rule(TierKey('P3', 'tier_2')).final_price == pytest.approx(300.0)
    assert repository.get_tier_rule(TierKey('P4', 'tier_2')) is None


def test_no_filter_targets_whole_catalog(updater, products):
    result = updater.apply_bulk_discount('tier_1', 'percentage', 5)
    assert result.updated_count == len(products)
    assert len(result.rule_ids) == len(set(result.rule_ids))


def test_existing_rules_are_superseded_not_duplicated(store, updater, repository):
    existing = store.upsert_tier_rule('P4', 'tier_3', {'base_price': 120, 'discount_value': 10})

    result = updater.apply_bulk_discount('tier_3', 'percentage', 25, product_ids=['P4', 'P5'])

    assert existing.id in result.rule_ids
    rule = repository.get_tier_rule(TierKey('P4', 'tier_3'))
    assert rule.base_price == pytest.approx(120.0), "Existing base price is kept"
    assert rule.final_price == pytest.approx(90.0)
    assert len(repository.list_tier_rules(tier_id='tier_3', active_only=False)) == 2


def test_aggressive_markdown_floors_at_zero(updater, repository):
    updater.apply_bulk_discount('tier_4', 'percentage', 150, category='networking')
    assert repository.get_tier_rule(TierKey('P4', 'tier_4')).final_price == 0.0


def test_invalid_input_writes_nothing(updater, repository):
    with pytest.raises(ValidationError):
        updater.apply_bulk_discount('tier_1', 'percentage', -10)
    with pytest.raises(ValidationError):
        updater.apply_bulk_discount('tier_1', 'half-off', 10)
    with pytest.raises(ValidationError):
        updater.apply_bulk_discount('', 'percentage', 10)

    assert repository.list_tier_rules() == []


def test_interrupted_bulk_update_changes_nothing(store, updater, repository, monkeypatch):
    """A persistence failure at commit leaves every rule as it was."""
    store.upsert_tier_rule('P1', 'tier_1', {'discount_value': 5})
    before = {r.id: r.final_price for r in repository.list_tier_rules()}

    def broken_persist(state):
        raise StoreUnavailable("store offline")

    monkeypatch.setattr(repository, '_persist', broken_persist)

    with pytest.raises(StoreUnavailable):
        updater.apply_bulk_discount('tier_1', 'percentage', 30)

    after = {r.id: r.final_price for r in repository.list_tier_rules()}
    assert after == before, "No rule may change when the commit fails"


def test_failure_mid_staging_changes_nothing(store, updater, repository, monkeypatch):
    original = store.upsert_tier_rule
    calls = {'count': 0}

    def failing_upsert(*args, **kwargs):
        calls['count'] += 1
        if calls['count'] == 3:
            raise PricingError("interrupted")
        return original(*args, **kwargs)

    monkeypatch.setattr(store, 'upsert_tier_rule', failing_upsert)

    with pytest.raises(PricingError):
        updater.apply_bulk_discount('tier_2', 'percentage', 10)

    assert repository.list_tier_rules() == []


def test_staged_update_preview_and_discard(store, updater, repository):
    store.upsert_tier_rule('P1', 'tier_1', {'discount_value': 10})

    staged = updater.stage_bulk_discount('tier_1', 'percentage', 20, category='cameras')
    rows = {row.product_id: row for row in staged.rows}

    assert rows['P1'].current_final_price == pytest.approx(765.0)
    assert rows['P1'].new_final_price == pytest.approx(680.0)
    assert rows['P3'].current_final_price is None
    assert rows['P3'].new_final_price == pytest.approx(256.0)

    staged.discard()
    assert staged.status == 'discarded'
    assert repository.get_tier_rule(TierKey('P1', 'tier_1')).final_price == pytest.approx(765.0)
    assert repository.get_tier_rule(TierKey('P3', 'tier_1')) is None
    with pytest.raises(PricingError):
        staged.commit()


def test_staged_update_commit_matches_preview(updater, repository):
    staged = updater.stage_bulk_discount('tier_2', 'fixed', 40, product_ids=['P4', 'P5'])
    preview = {row.product_id: row.new_final_price for row in staged.rows}

    result = staged.commit()

    assert result.updated_count == 2
    for product_id, price in preview.items():
        assert repository.get_tier_rule(TierKey(product_id, 'tier_2')).final_price == pytest.approx(price)
    with pytest.raises(PricingError):
        staged.discard()


def test_oversize_target_set_rejected(store):
    updater = BulkTierUpdater(store, max_batch_writes=2)

    with pytest.raises(ValidationError):
        updater.apply_bulk_discount('tier_1', 'percentage', 10)
    assert store.list_tier_rules() == []


def test_plan_batches_fit_the_cap(store):
    updater = BulkTierUpdater(store, max_batch_writes=2)

    batches = updater.plan_batches()
    assert [len(b) for b in batches] == [2, 2, 1]

    total = sum(updater.apply_bulk_discount('tier_1', 'percentage', 10, product_ids=b).updated_count for b in batches)
    assert total == 5
    assert len(store.list_tier_rules(tier_id='tier_1')) == 5
