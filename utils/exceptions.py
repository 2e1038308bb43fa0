class ReorderError(Exception):
    """Base class for decision-engine errors surfaced to callers."""


class MixedSupplierError(ReorderError):
    def __init__(self, supplier_ids):
        self.supplier_ids = sorted(supplier_ids)
        super().__init__(
            f"All items must be from the same supplier (got suppliers {self.supplier_ids})"
        )


class ValidationError(ReorderError):
    """Caller input rejected; field names the offending input."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")


class PurchaseOrderValidationError(ValidationError):
    pass


class ProductNotFoundError(ReorderError, LookupError):
    def __init__(self, product_id, store_id=None):
        self.product_id = product_id
        self.store_id = store_id
        where = f" in store {store_id}" if store_id is not None else ""
        super().__init__(f"Product {product_id} not found{where}")


class SupplierNotFoundError(ReorderError, LookupError):
    def __init__(self, supplier_id):
        self.supplier_id = supplier_id
        super().__init__(f"Supplier {supplier_id} not found")


class StockDataUnavailableError(ReorderError):
    """A collaborator lookup failed for a single product."""

    def __init__(self, product_id, reason: str):
        self.product_id = product_id
        self.reason = reason
        super().__init__(f"Data unavailable for product {product_id}: {reason}")


class CacheBackendError(Exception):
    pass
