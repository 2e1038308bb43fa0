"""HTTP tests for the reorder endpoints."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

import app as app_module


@pytest.fixture
def client():
    app_module.cache.backend.clear()
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as c:
        yield c
    app_module.cache.backend.clear()


@pytest.fixture
def shop(seed):
    store = seed.store()
    supplier = seed.supplier()
    other = seed.supplier("Other Supplier")
    return {
        "store": store,
        "supplier": supplier,
        "other": other,
        "a": seed.product(store, stock=0, threshold=20, supplier_id=supplier),
        "b": seed.product(store, stock=3, threshold=20, supplier_id=other),
    }


def test_health(client):
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}


def test_reorder_list(client, shop):
    resp = client.get(f"/api/v1/reorders/{shop['store']}")
    body = resp.get_json()

    assert resp.status_code == 200
    assert body["count"] == 2
    assert body["partial"] is False
    assert body["items"][0]["product"]["id"] == shop["a"]


def test_views_by_supplier_critical_and_stats(client, shop):
    store = shop["store"]
    assert client.get(f"/api/v1/reorders/{store}/by-supplier").get_json()["count"] == 2
    assert client.get(f"/api/v1/reorders/{store}/critical").get_json()["count"] == 2
    assert client.get(f"/api/v1/reorders/{store}/automatic").get_json()["count"] == 0
    assert client.get(f"/api/v1/reorders/{store}/suppliers").get_json()["count"] == 2
    assert client.get(f"/api/v1/reorders/{store}/stats").get_json()["total_items_to_reorder"] == 2


def test_views_flag_products_that_could_not_be_evaluated(client, shop):
    store = shop["store"]
    original = app_module.repository.pending_ordered_quantity

    def flaky(product_id, store_id):
        if product_id == shop["b"]:
            raise OperationalError("SELECT ...", {}, Exception("database is locked"))
        return original(product_id, store_id)

    with patch.object(app_module.repository, "pending_ordered_quantity", side_effect=flaky):
        for path in ("", "/by-supplier", "/critical", "/automatic", "/suppliers", "/stats"):
            body = client.get(f"/api/v1/reorders/{store}{path}").get_json()
            assert body["partial"] is True, path
            assert [u["product_id"] for u in body["unavailable"]] == [shop["b"]], path

    body = client.get(f"/api/v1/reorders/{store}/critical").get_json()
    assert body["partial"] is False
    assert body["count"] == 2


def test_unknown_product_is_404(client, shop):
    resp = client.get(f"/api/v1/reorders/{shop['store']}/products/9999")
    assert resp.status_code == 404
    assert resp.get_json()["status"] == "error"


def test_create_purchase_order(client, shop):
    resp = client.post("/api/v1/reorders/purchase-orders", json={
        "store_id": shop["store"],
        "created_by": 3,
        "items": [{"product_id": shop["a"], "supplier_id": shop["supplier"], "quantity": 20}],
    })

    assert resp.status_code == 201
    order = resp.get_json()["purchase_order"]
    assert order["total_amount"] == 200.0

    history = client.get(f"/api/v1/reorders/{shop['store']}/history").get_json()
    assert history["count"] == 1


def test_mixed_supplier_order_is_422(client, shop):
    resp = client.post("/api/v1/reorders/purchase-orders", json={
        "store_id": shop["store"],
        "created_by": 3,
        "items": [
            {"product_id": shop["a"], "supplier_id": shop["supplier"], "quantity": 20},
            {"product_id": shop["b"], "supplier_id": shop["other"], "quantity": 20},
        ],
    })

    assert resp.status_code == 422
    assert resp.get_json()["field"] == "items"


def test_invalid_quantity_reports_field(client, shop):
    resp = client.post("/api/v1/reorders/purchase-orders", json={
        "store_id": shop["store"],
        "created_by": 3,
        "items": [{"product_id": shop["a"], "supplier_id": shop["supplier"], "quantity": -4}],
    })

    assert resp.status_code == 422
    assert resp.get_json()["field"] == "items[0].quantity"


def test_missing_store_is_400(client):
    resp = client.post("/api/v1/reorders/purchase-orders", json={"items": []})
    assert resp.status_code == 400


def test_clear_cache(client, seed, shop):
    assert client.get(f"/api/v1/reorders/{shop['store']}").get_json()["count"] == 2
    seed.product(shop["store"], stock=1, threshold=20)
    assert client.get(f"/api/v1/reorders/{shop['store']}").get_json()["count"] == 2

    resp = client.post("/api/v1/reorders/cache/clear", json={"store_id": shop["store"]})
    assert resp.get_json()["removed"] >= 1
    assert client.get(f"/api/v1/reorders/{shop['store']}").get_json()["count"] == 3


def test_supplier_score(client, shop):
    body = client.get(f"/api/v1/suppliers/{shop['supplier']}/score").get_json()
    assert body["reliability_score"] == 50
    assert body["average_lead_time_days"] == 7.0

    assert client.get("/api/v1/suppliers/9999/score").status_code == 404


def test_low_stock_and_alerts(client, shop):
    body = client.get(f"/api/v1/inventory/low-stock/{shop['store']}").get_json()
    assert body["count"] == 2

    resp = client.post("/api/v1/inventory/alerts", json={"recipients": ["ops@example.com"]})
    assert resp.get_json()["alerts_sent"] == 1


def test_check_low_stock_cli(shop):
    runner = app_module.app.test_cli_runner()
    app_module.cache.backend.clear()

    result = runner.invoke(args=["check-low-stock", "--store", str(shop["store"])])

    assert result.exit_code == 0
    assert "2 low stock products" in result.output


@pytest.mark.parametrize(
    "payload_ids,field",
    [
        ({"store_id": "abc", "created_by": 1}, "store_id"),
        ({"store_id": 1, "created_by": "someone"}, "created_by"),
        ({"store_id": 1.5, "created_by": 1}, "store_id"),
        ({"store_id": -2, "created_by": 1}, "store_id"),
    ],
)
def test_non_integer_ids_are_422_with_field(client, shop, payload_ids, field):
    payload = {
        "items": [{"product_id": shop["a"], "supplier_id": shop["supplier"], "quantity": 20}],
        **payload_ids,
    }
    resp = client.post("/api/v1/reorders/purchase-orders", json=payload)

    assert resp.status_code == 422
    assert resp.get_json()["field"] == field


def test_string_ids_that_are_numbers_are_accepted(client, shop):
    resp = client.post("/api/v1/reorders/purchase-orders", json={
        "store_id": str(shop["store"]),
        "created_by": "3",
        "items": [{"product_id": shop["a"], "supplier_id": shop["supplier"], "quantity": 20}],
    })
    assert resp.status_code == 201
    assert resp.get_json()["purchase_order"]["store_id"] == shop["store"]


@pytest.mark.parametrize("path", ["/api/v1/reorders/cache/clear", "/api/v1/inventory/thresholds"])
def test_store_id_must_be_an_integer(client, path):
    resp = client.post(path, json={"store_id": "abc"})

    assert resp.status_code == 422
    assert resp.get_json()["field"] == "store_id"
