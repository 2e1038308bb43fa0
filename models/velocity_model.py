from models.types import VelocityEstimate
from utils.cache import cache_key, store_tags
from utils.date_utils import days_ago


class VelocityEstimator:
    """Trailing-window average daily sales of a product at a store."""

    def __init__(self, repository, cache, window_days: int = 30, ttl: int = 3600):
        self.repository = repository
        self.cache = cache
        self.window_days = window_days
        self.ttl = ttl

    def estimate(self, product_id: int, store_id: int, window_days: int | None = None) -> VelocityEstimate:
        window = int(window_days or self.window_days)
        units_per_day = self.cache.remember(
            cache_key("velocity", "product", product_id, "store", store_id, "window", window),
            self.ttl,
            store_tags(store_id),
            lambda: self._compute(product_id, store_id, window),
        )
        return VelocityEstimate(
            product_id=product_id,
            store_id=store_id,
            window_days=window,
            units_per_day=float(units_per_day),
        )

    def units_per_day(self, product_id: int, store_id: int, window_days: int | None = None) -> float:
        return self.estimate(product_id, store_id, window_days).units_per_day

    def _compute(self, product_id: int, store_id: int, window: int) -> float:
        sold = self.repository.sum_sold_quantity(product_id, store_id, days_ago(window))
        # 0 means "no demand signal", not an error
        return max(0.0, sold / window)
