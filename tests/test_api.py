"""
HTTP surface: routing, request models and domain error mapping.
"""
import pytest
from fastapi.testclient import TestClient

from client_pricing.api.main import app
from client_pricing.api.state import PricingServices, get_services
from client_pricing.config.settings import Settings
from client_pricing.errors import StoreUnavailable


@pytest.fixture
def services(tmp_path, products, clients, repository, clock):
    settings = Settings(
        project_root=tmp_path,
        data_dir=tmp_path,
        products_csv=tmp_path / 'products.csv',
        clients_csv=tmp_path / 'clients.csv',
        store_path=tmp_path / 'pricing_store.json',
    )
    return PricingServices.build(settings, products, clients, repository, clock=clock)


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "online"


def test_tier_rule_crud(client):
    response = client.put("/api/tier-rules/tier_1/P1", json={"discount_type": "percentage", "discount_value": 15})
    assert response.status_code == 200, response.text
    rule = response.json()
    assert rule["finalPrice"] == pytest.approx(722.50)

    again = client.put("/api/tier-rules/tier_1/P1", json={"discount_value": 15})
    assert again.json()["id"] == rule["id"]

    assert client.get("/api/tier-rules/tier_1/P1").json()["id"] == rule["id"]
    assert len(client.get("/api/tier-rules", params={"tier_id": "tier_1"}).json()) == 1

    assert client.delete("/api/tier-rules/tier_1/P1").status_code == 200
    assert client.get("/api/tier-rules/tier_1/P1").status_code == 404


def test_resolve_scenario_a(client):
    client.put("/api/tier-rules/tier_1/P1", json={"discount_value": 15})
    client.put("/api/client-rules/C1/P1", json={"fixed_price": 700, "min_quantity": 10, "valid_from": "2025-01-01"})

    small = client.post("/resolve", json={"product_id": "P1", "quantity": 5, "client_id": "C1", "as_of": "2025-02-01"})
    large = client.post("/resolve", json={"product_id": "P1", "quantity": 20, "client_id": "C1", "as_of": "2025-02-01"})

    assert small.json()["unitPrice"] == pytest.approx(722.50)
    assert small.json()["source"] == "tier"
    assert large.json()["unitPrice"] == pytest.approx(700.0)
    assert large.json()["source"] == "client"
    assert large.json()["trace"], "Resolution carries a trace"


def test_resolve_bulk(client):
    response = client.post("/resolve/bulk", json={"product_ids": ["P1", "P2"]})
    body = response.json()
    assert set(body) == {"P1", "P2"}
    assert body["P2"]["unitPrice"] == pytest.approx(640.0)


def test_error_mapping(client):
    assert client.post("/resolve", json={"product_id": "NOPE"}).status_code == 404
    assert client.put("/api/client-rules/C9/P1", json={"fixed_price": 10}).status_code == 404
    assert client.put("/api/tier-rules/tier_1/P1", json={"discount_value": -5}).status_code == 400
    assert client.delete("/api/client-rules/C1/P1").status_code == 404


def test_request_model_validation(client):
    assert client.post("/resolve", json={"product_id": "P1", "quantity": 0}).status_code == 422


def test_store_unavailable_is_503(client, repository, monkeypatch):
    def broken_persist(state):
        raise StoreUnavailable("store offline")

    monkeypatch.setattr(repository, '_persist', broken_persist)

    response = client.put("/api/tier-rules/tier_1/P1", json={"discount_value": 10})
    assert response.status_code == 503


def test_previews_do_not_write(client):
    tier = client.post("/api/tier-rules/preview", json={"product_id": "P4", "tier_id": "tier_2", "discount_value": 20})
    client_rule = client.post(
        "/api/client-rules/preview",
        json={"client_id": "C1", "product_id": "P4", "pricing_type": "markup", "markup_type": "percentage", "markup_value": 10},
    )

    assert tier.json()["finalPrice"] == pytest.approx(80.0)
    assert client_rule.json()["finalPrice"] == pytest.approx(110.0)
    assert client.get("/api/tier-rules").json() == []
    assert client.get("/api/client-rules").json() == []


def test_bulk_discount_preview_and_apply(client):
    preview = client.post(
        "/api/tier-rules/bulk-discount",
        json={"tier_id": "tier_2", "discount_value": 10, "category": "cameras", "preview_only": True},
    )
    assert preview.json()["status"] == "discarded"
    assert preview.json()["targetCount"] == 2
    assert client.get("/api/tier-rules").json() == []

    applied = client.post(
        "/api/tier-rules/bulk-discount",
        json={"tier_id": "tier_2", "discount_value": 10, "category": "cameras"},
    )
    assert applied.json()["updatedCount"] == 2


def test_import_and_reports(client):
    response = client.post("/api/imports/C2", json={
        "records": [
            {"product_id": "P2", "price": 500, "sold_date": "2025-01-05", "original_price": 625},
            {"product_id": "NOPE", "price": 10},
        ],
        "source": "manual",
    })
    result = response.json()
    assert result["importedCount"] == 1
    assert result["skippedCount"] == 1
    assert result["pricingRulesCreatedCount"] == 1

    assert client.get("/api/clients/C2/onboarding").json()["pricesImportedCount"] == 1
    history = client.get("/api/clients/C2/history").json()
    assert history[0]["discountPercentage"] == pytest.approx(20.0)
    pricing = client.get("/api/clients/C2/pricing").json()
    assert pricing["clientRules"][0]["priceSource"] == "historical"
    assert client.get("/api/stats").json()["historicalRules"] == 1
    assert client.get("/api/clients/C9/history").status_code == 404


def test_system_status(client):
    body = client.get("/system/status").json()
    assert body["products_loaded"] == 5
    assert body["clients_loaded"] == 3
    assert body["max_batch_writes"] == 500


def test_configured_tiers(client):
    tiers = client.get("/api/tiers").json()
    assert [t["id"] for t in tiers] == ["tier_0", "tier_1", "tier_2", "tier_3", "tier_4"]

    trader = client.get("/api/tiers/tier_3").json()
    assert trader["name"] == "Trader"
    assert trader["defaultDiscount"] == pytest.approx(25.0)
    assert client.get("/api/tiers/tier_9").status_code == 404


def test_client_rule_switches_pricing_type_over_http(client):
    client.put("/api/client-rules/C2/P4", json={"pricing_type": "markup", "markup_value": 20})

    response = client.put("/api/client-rules/C2/P4", json={"fixed_price": 95})
    assert response.json()["pricingType"] == "fixed"
    assert response.json()["finalPrice"] == pytest.approx(95.0)

    conflicting = client.put("/api/client-rules/C2/P4", json={"pricing_type": "markup", "fixed_price": 90})
    assert conflicting.status_code == 400
