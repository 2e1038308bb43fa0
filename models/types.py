from dataclasses import dataclass


@dataclass(frozen=True)
class StockLevel:
    """On-hand stock and low-stock policy of one product in one store."""
    product_id: int
    store_id: int
    current_stock: int
    threshold: int
    min_order_quantity: int | None = None

    @property
    def reorder_minimum(self) -> int:
        # Falls back to the reorder trigger point when no batch size is set
        if self.min_order_quantity is not None:
            return self.min_order_quantity
        return self.threshold

    @property
    def deficit(self) -> int:
        return max(0, self.threshold - self.current_stock)


@dataclass(frozen=True)
class VelocityEstimate:
    product_id: int
    store_id: int
    window_days: int
    units_per_day: float


@dataclass(frozen=True)
class ReorderLine:
    """One accepted line of a reorder selection."""
    product_id: int
    supplier_id: int
    quantity: int
    unit_cost: float | None = None
    notes: str | None = None
    priority: int | None = None
