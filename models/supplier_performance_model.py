import math

import pandas as pd

from utils.cache import cache_key, supplier_tags
from utils.date_utils import months_ago
from utils.stock_constants import (
    DEFAULT_LEAD_TIME_DAYS, NEUTRAL_RELIABILITY_SCORE, COMPLETION_WEIGHT, TIMELINESS_WEIGHT,
    SETTLED_PO_STATUSES, PO_RECEIVED, PO_CANCELLED
)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _with_dates(orders: pd.DataFrame) -> pd.DataFrame:
    orders = orders.copy()
    for col in ("ordered_at", "received_at", "expected_delivery_at"):
        if col in orders:
            orders[col] = pd.to_datetime(orders[col], errors="coerce")
    return orders


def average_lead_time_days(orders: pd.DataFrame) -> float:
    """Mean whole days from ordered_at to received_at; 7 with no history."""
    if orders.empty:
        return float(DEFAULT_LEAD_TIME_DAYS)
    delivered = _with_dates(orders).dropna(subset=["ordered_at", "received_at"])
    if delivered.empty:
        return float(DEFAULT_LEAD_TIME_DAYS)

    days = (delivered["received_at"] - delivered["ordered_at"]).dt.days.clip(lower=0)
    return round(float(days.mean()), 2)


def reliability_breakdown(orders: pd.DataFrame) -> dict:
    """
    Completion and timeliness of settled (received or cancelled) orders.

    A supplier without settled orders gets the neutral score of 50.
    """
    orders = _with_dates(orders)
    settled = orders[orders["status"].isin(SETTLED_PO_STATUSES)]
    if settled.empty:
        return {
            "completed_orders": 0,
            "cancelled_orders": 0,
            "on_time_orders": 0,
            "completion_rate": None,
            "timeliness_rate": None,
            "reliability_score": NEUTRAL_RELIABILITY_SCORE,
        }

    completed = settled[settled["status"] == PO_RECEIVED]
    cancelled = settled[settled["status"] == PO_CANCELLED]

    completion_rate = len(completed) / len(settled) * 100

    on_time = completed[
        completed["received_at"].notna()
        & completed["expected_delivery_at"].notna()
        & (completed["received_at"] <= completed["expected_delivery_at"])
        ]
    timeliness_rate = len(on_time) / len(completed) * 100 if len(completed) > 0 else 100.0

    score = _round_half_up(completion_rate * COMPLETION_WEIGHT + timeliness_rate * TIMELINESS_WEIGHT)

    return {
        "completed_orders": int(len(completed)),
        "cancelled_orders": int(len(cancelled)),
        "on_time_orders": int(len(on_time)),
        "completion_rate": round(completion_rate, 2),
        "timeliness_rate": round(timeliness_rate, 2),
        "reliability_score": score,
    }


def priority_score(high_priority_items: int, total_items: int, total_cost: float, avg_lead_time: float) -> float:
    """Ranks suppliers against each other within one store's reorder run."""
    high_priority_weight = high_priority_items * 10
    item_count_weight = total_items * 2
    cost_weight = min(total_cost / 1000, 10)
    lead_time_weight = max(10 - avg_lead_time, 0)  # shorter lead time scores higher
    return round(float(high_priority_weight + item_count_weight + cost_weight + lead_time_weight), 2)


class SupplierScorer:
    def __init__(self, repository, cache, lookback_months: int = 6, ttl: int = 3600):
        self.repository = repository
        self.cache = cache
        self.lookback_months = lookback_months
        self.ttl = ttl

    def _orders(self, supplier_id: int) -> pd.DataFrame:
        return self.repository.list_purchase_orders(supplier_id, months_ago(self.lookback_months))

    def average_lead_time(self, supplier_id: int | None) -> float:
        if supplier_id is None:
            return float(DEFAULT_LEAD_TIME_DAYS)
        return self.cache.remember(
            cache_key("lead_time", "supplier", supplier_id),
            self.ttl,
            supplier_tags(supplier_id),
            lambda: average_lead_time_days(self._orders(supplier_id)),
        )

    def reliability_score(self, supplier_id: int) -> int:
        return self.scorecard(supplier_id)["reliability_score"]

    def scorecard(self, supplier_id: int) -> dict:
        return self.cache.remember(
            cache_key("scorecard", "supplier", supplier_id),
            self.ttl,
            supplier_tags(supplier_id),
            lambda: self._build_scorecard(supplier_id),
        )

    def _build_scorecard(self, supplier_id: int) -> dict:
        orders = self._orders(supplier_id)
        card = {
            "supplier_id": int(supplier_id),
            "average_lead_time_days": average_lead_time_days(orders),
            "orders_in_window": int(len(orders)),
        }
        card.update(reliability_breakdown(orders))
        return card
