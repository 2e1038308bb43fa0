import math

import numpy as np

from utils.stock_constants import (
    DEFAULT_LEAD_TIME_DAYS, SAFETY_STOCK_DAYS, MIN_SAFETY_STOCK, DAYS_REMAINING_SENTINEL,
    THRESHOLD_MIN, THRESHOLD_MAX
)


def safety_stock(velocity: float) -> float:
    # Safety Stock = max(10, 3 days of demand)
    return max(float(MIN_SAFETY_STOCK), max(0.0, velocity) * SAFETY_STOCK_DAYS)


def suggested_order_quantity(
        velocity: float,
        lead_time_days: float | None = None,
        min_order_qty: int = 0,
) -> int:
    """
    Lead-time demand plus safety stock, rounded up and never below the
    minimum order quantity.
    """
    velocity = max(0.0, float(velocity))
    lt = float(lead_time_days if lead_time_days is not None else DEFAULT_LEAD_TIME_DAYS)

    raw = velocity * lt + safety_stock(velocity)
    # round first so float noise (0.7000000001) does not bump the ceiling
    qty = math.ceil(round(raw, 6))
    return max(qty, int(min_order_qty or 0))


def days_of_stock_remaining(current_stock: int, velocity: float) -> int:
    if velocity <= 0:
        return DAYS_REMAINING_SENTINEL
    return int(current_stock / velocity)


def plan_reorder(stock_level, velocity: float, lead_time_days: float | None = None) -> dict:
    """Sizing figures for one low-stock StockLevel."""
    return {
        "deficit": stock_level.deficit,
        "safety_stock": round(safety_stock(velocity), 3),
        "suggested_quantity": suggested_order_quantity(
            velocity, lead_time_days, stock_level.reorder_minimum
        ),
        "days_remaining": days_of_stock_remaining(stock_level.current_stock, velocity),
    }


def optimal_threshold(
        velocity: float,
        lead_time_days: float = DEFAULT_LEAD_TIME_DAYS,
        safety_days: int = SAFETY_STOCK_DAYS,
) -> int:
    """Reorder point covering lead time plus safety days, clamped to [5, 100]."""
    target = math.ceil(round(max(0.0, velocity) * (lead_time_days + safety_days), 6))
    return int(np.clip(target, THRESHOLD_MIN, THRESHOLD_MAX))
