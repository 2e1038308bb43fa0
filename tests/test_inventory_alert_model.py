"""Tests for low-stock alerts and threshold tuning."""

from __future__ import annotations

from unittest.mock import MagicMock

from sqlalchemy import text

from db.connection import engine


def _threshold(product_id, store_id):
    with engine.connect() as conn:
        return conn.execute(
            text("SELECT low_stock_threshold FROM product_store WHERE product_id = :p AND store_id = :s"),
            {"p": product_id, "s": store_id},
        ).scalar()


def test_low_stock_for_store_is_sorted_by_severity(seed, alert_service):
    store = seed.store()
    near = seed.product(store, stock=18, threshold=20)
    out = seed.product(store, stock=0, threshold=20)
    seed.product(store, stock=40, threshold=20)
    seed.sale(store, near, 2, days_ago=1)

    alerts = alert_service.low_stock_for_store(store)

    assert [a["product"]["id"] for a in alerts] == [out, near]
    assert alerts[0]["is_out_of_stock"] is True
    assert alerts[0]["severity_label"] == "out_of_stock"
    assert alerts[1]["last_sold_at"] is not None
    assert alerts[0]["last_sold_at"] is None


def test_inactive_products_are_not_alerted(seed, alert_service):
    store = seed.store()
    seed.product(store, stock=0, threshold=20, is_active=False)

    assert alert_service.low_stock_for_store(store) == []


def test_critical_low_stock_spans_stores(seed, alert_service):
    first = seed.store()
    second = seed.store("Harbour Road")
    seed.product(first, stock=0, threshold=20)
    seed.product(second, stock=4, threshold=20)
    seed.product(second, stock=15, threshold=20)

    critical = alert_service.critical_low_stock()

    assert sorted(a["store_id"] for a in critical) == [first, second]


def test_send_alerts_notifies_each_recipient(seed, alert_service):
    store = seed.store()
    seed.product(store, stock=0, threshold=20)
    alert_service.notifier = MagicMock()

    sent = alert_service.send_low_stock_alerts(["ops@example.com", "owner@example.com"])

    assert sent == 2
    recipient, payload = alert_service.notifier.notify.call_args.args
    assert recipient == "owner@example.com"
    assert payload["low_stock_stores"] == 1
    assert payload["critical_items"] == 1


def test_failing_recipient_is_skipped(seed, alert_service):
    store = seed.store()
    seed.product(store, stock=0, threshold=20)
    alert_service.notifier = MagicMock()
    alert_service.notifier.notify.side_effect = [RuntimeError("smtp down"), None]

    assert alert_service.send_low_stock_alerts(["a@example.com", "b@example.com"]) == 1


def test_no_low_stock_sends_nothing(seed, alert_service):
    store = seed.store()
    seed.product(store, stock=50, threshold=20)
    alert_service.notifier = MagicMock()

    assert alert_service.send_low_stock_alerts(["ops@example.com"]) == 0
    alert_service.notifier.notify.assert_not_called()


def test_update_optimal_thresholds(seed, alert_service):
    store = seed.store()
    busy = seed.product(store, stock=30, threshold=10)
    steady = seed.product(store, stock=30, threshold=19)
    idle = seed.product(store, stock=30, threshold=50)
    seed.sale(store, busy, 240, days_ago=10)   # 4/day over 60 days -> 40
    seed.sale(store, steady, 120, days_ago=10)  # 2/day -> 20, within 20% of 19

    updated = alert_service.update_optimal_thresholds(store)

    assert updated == 2
    assert _threshold(busy, store) == 40
    assert _threshold(steady, store) == 19
    assert _threshold(idle, store) == 5


def test_threshold_update_refreshes_cached_alerts(seed, alert_service):
    store = seed.store()
    product = seed.product(store, stock=8, threshold=50)
    assert len(alert_service.low_stock_for_store(store)) == 1

    alert_service.update_optimal_thresholds(store)

    # threshold dropped to 5, 8 units is no longer low
    assert alert_service.low_stock_for_store(store) == []
    assert _threshold(product, store) == 5
