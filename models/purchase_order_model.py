import logging
import secrets
import string
from datetime import timedelta

from models.types import ReorderLine
from utils.date_utils import utcnow
from utils.exceptions import MixedSupplierError, PurchaseOrderValidationError
from utils.stock_constants import PO_DRAFT

logger = logging.getLogger(__name__)


def generate_po_number(now=None) -> str:
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(4))
    return f"PO-RO-{(now or utcnow()):%Y%m%d}-{suffix}"


def parse_reorder_lines(items) -> list:
    """
    Validate raw reorder selections into ReorderLine objects.

    Raises PurchaseOrderValidationError naming the first offending field.
    """
    if not items:
        raise PurchaseOrderValidationError("items", "at least one item is required")

    lines = []
    for idx, item in enumerate(items):
        prefix = f"items[{idx}]"
        if not isinstance(item, dict):
            raise PurchaseOrderValidationError(prefix, "must be an object")

        for field in ("product_id", "supplier_id", "quantity"):
            if item.get(field) is None:
                raise PurchaseOrderValidationError(f"{prefix}.{field}", "is required")

        ids = {}
        for field in ("product_id", "supplier_id"):
            try:
                ids[field] = int(item[field])
            except (TypeError, ValueError):
                raise PurchaseOrderValidationError(f"{prefix}.{field}", "must be an integer")
        product_id, supplier_id = ids["product_id"], ids["supplier_id"]

        quantity = item["quantity"]
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise PurchaseOrderValidationError(f"{prefix}.quantity", "must be a positive integer")

        unit_cost = item.get("unit_cost")
        if unit_cost is not None:
            try:
                unit_cost = float(unit_cost)
            except (TypeError, ValueError):
                raise PurchaseOrderValidationError(f"{prefix}.unit_cost", "must be a number")
            if unit_cost < 0:
                raise PurchaseOrderValidationError(f"{prefix}.unit_cost", "must not be negative")

        lines.append(ReorderLine(
            product_id=product_id,
            supplier_id=supplier_id,
            quantity=quantity,
            unit_cost=unit_cost,
            notes=item.get("notes"),
            priority=item.get("priority"),
        ))
    return lines


class PurchaseOrderAssembler:
    """Turns an accepted reorder selection into one draft purchase order."""

    def __init__(self, repository, supplier_scorer, cache):
        self.repository = repository
        self.suppliers = supplier_scorer
        self.cache = cache

    def create_from_reorder(self, items, store_id: int, created_by: int, notes: str | None = None) -> dict:
        lines = parse_reorder_lines(items)

        supplier_ids = {line.supplier_id for line in lines}
        if len(supplier_ids) > 1:
            raise MixedSupplierError(supplier_ids)
        supplier_id = supplier_ids.pop()

        # Lookups raise before anything is written
        self.repository.get_supplier(supplier_id)
        products = {line.product_id: self.repository.get_product(line.product_id) for line in lines}

        now = utcnow()
        lead_time = self.suppliers.average_lead_time(supplier_id)
        header = {
            "po_number": generate_po_number(now),
            "supplier_id": supplier_id,
            "store_id": store_id,
            "created_by": created_by,
            "status": PO_DRAFT,
            "notes": notes,
            "expected_delivery_at": now + timedelta(days=lead_time),
            "created_at": now,
        }

        rows = []
        for line in lines:
            unit_cost = line.unit_cost if line.unit_cost is not None else products[line.product_id]["cost"]
            line_notes = line.notes
            if not line_notes and line.priority is not None:
                line_notes = f"Reorder - Priority: {line.priority}"
            rows.append({
                "product_id": line.product_id,
                "quantity_ordered": line.quantity,
                "unit_cost": round(unit_cost, 2),
                "total_cost": round(line.quantity * unit_cost, 2),
                "notes": line_notes,
            })

        order = self.repository.create_purchase_order(header, rows)
        logger.info(
            f"Created purchase order {order['po_number']} for supplier {supplier_id} "
            f"in store {store_id} ({len(rows)} lines, total {order['total_amount']})"
        )

        # New pending quantities must show up on the next read
        self.cache.invalidate_store(store_id)
        return order
