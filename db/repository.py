from datetime import datetime

import pandas as pd
from sqlalchemy import text, bindparam, DateTime

from db.models import PurchaseOrder, PurchaseOrderItem, ProductStore
from models.types import StockLevel
from utils.date_utils import format_date, format_timestamp
from utils.exceptions import ProductNotFoundError, SupplierNotFoundError
from utils.stock_constants import (
    build_low_stock_query, build_stock_level_query, OPEN_PO_STATUSES, PO_CANCELLED
)


def _int_or_none(value):
    if value is None or pd.isna(value):
        return None
    return int(value)


class InventoryRepository:
    """
    Read/write access to the stock, sales and purchasing tables.

    Everything the decision engine needs from persistence goes through here,
    so the engine itself stays a set of pure computations over these results.
    """

    def __init__(self, engine, session_factory):
        self.engine = engine
        self.session_factory = session_factory

    # ---------------------------------------------------------
    # Stock levels
    # ---------------------------------------------------------
    @staticmethod
    def _entry_from_row(row) -> dict:
        supplier_id = _int_or_none(row["supplier_id"])
        return {
            "stock_level": StockLevel(
                product_id=int(row["product_id"]),
                store_id=int(row["store_id"]),
                current_stock=max(0, int(row["current_stock"])),
                threshold=max(0, int(row["threshold"])),
                min_order_quantity=_int_or_none(row["min_order_quantity"]),
            ),
            "product": {
                "id": int(row["product_id"]),
                "name": row["product_name"],
                "sku": row["sku"],
                "cost": float(row["cost"] or 0),
                "supplier_id": supplier_id,
            },
            "supplier": (
                {"id": supplier_id, "name": row["supplier_name"]}
                if supplier_id is not None else None
            ),
        }

    def list_low_stock(self, store_id: int) -> list:
        df = pd.read_sql(
            build_low_stock_query(),
            self.engine,
            params={"store_id": store_id, "active": True},
        )
        return [self._entry_from_row(r) for _, r in df.iterrows()]

    def get_stock_entry(self, product_id: int, store_id: int) -> dict:
        df = pd.read_sql(
            build_stock_level_query(),
            self.engine,
            params={"store_id": store_id, "product_id": product_id},
        )
        if df.empty:
            raise ProductNotFoundError(product_id, store_id)
        return self._entry_from_row(df.iloc[0])

    def list_store_stock(self, store_id: int) -> list:
        query = text("""
                     SELECT ps.product_id, ps.store_id, ps.stock, ps.low_stock_threshold, ps.min_order_quantity
                     FROM product_store ps
                              JOIN products p ON p.id = ps.product_id
                     WHERE ps.store_id = :store_id
                       AND p.is_active = :active
                     ORDER BY ps.product_id
                     """)
        df = pd.read_sql(query, self.engine, params={"store_id": store_id, "active": True})
        return [
            StockLevel(
                product_id=int(r["product_id"]),
                store_id=int(r["store_id"]),
                current_stock=int(r["stock"]),
                threshold=int(r["low_stock_threshold"]),
                min_order_quantity=_int_or_none(r["min_order_quantity"]),
            )
            for _, r in df.iterrows()
        ]

    def update_threshold(self, product_id: int, store_id: int, threshold: int) -> None:
        db = self.session_factory()
        try:
            (
                db.query(ProductStore)
                .filter_by(product_id=product_id, store_id=store_id)
                .update({"low_stock_threshold": threshold})
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def list_store_ids(self) -> list:
        with self.engine.connect() as conn:
            rows = conn.execute(text("SELECT id FROM stores ORDER BY id")).all()
        return [int(r[0]) for r in rows]

    # ---------------------------------------------------------
    # Products / suppliers
    # ---------------------------------------------------------
    def get_product(self, product_id: int) -> dict:
        query = text("""
                     SELECT id, name, sku, cost, supplier_id, is_active
                     FROM products
                     WHERE id = :product_id
                     """)
        with self.engine.connect() as conn:
            row = conn.execute(query, {"product_id": product_id}).mappings().first()
        if row is None:
            raise ProductNotFoundError(product_id)
        return {
            "id": int(row["id"]),
            "name": row["name"],
            "sku": row["sku"],
            "cost": float(row["cost"] or 0),
            "supplier_id": _int_or_none(row["supplier_id"]),
            "is_active": bool(row["is_active"]),
        }

    def get_supplier(self, supplier_id: int) -> dict:
        query = text("SELECT id, name, email, is_active FROM suppliers WHERE id = :supplier_id")
        with self.engine.connect() as conn:
            row = conn.execute(query, {"supplier_id": supplier_id}).mappings().first()
        if row is None:
            raise SupplierNotFoundError(supplier_id)
        return {
            "id": int(row["id"]),
            "name": row["name"],
            "email": row["email"],
            "is_active": bool(row["is_active"]),
        }

    # ---------------------------------------------------------
    # Sales
    # ---------------------------------------------------------
    def sum_sold_quantity(self, product_id: int, store_id: int, since: datetime) -> int:
        query = text("""
                     SELECT COALESCE(SUM(si.quantity), 0)
                     FROM sale_items si
                              JOIN sales s ON si.sale_id = s.id
                     WHERE si.product_id = :product_id
                       AND s.store_id = :store_id
                       AND s.created_at >= :since
                     """).bindparams(bindparam("since", type_=DateTime))
        with self.engine.connect() as conn:
            total = conn.execute(
                query, {"product_id": product_id, "store_id": store_id, "since": since}
            ).scalar()
        return max(0, int(total or 0))

    def last_sold_at(self, product_id: int, store_id: int) -> str | None:
        query = text("""
                     SELECT MAX(s.created_at)
                     FROM sale_items si
                              JOIN sales s ON si.sale_id = s.id
                     WHERE si.product_id = :product_id
                       AND s.store_id = :store_id
                     """)
        with self.engine.connect() as conn:
            value = conn.execute(query, {"product_id": product_id, "store_id": store_id}).scalar()
        return format_timestamp(value)

    # ---------------------------------------------------------
    # Purchase orders
    # ---------------------------------------------------------
    def list_purchase_orders(self, supplier_id: int, since: datetime, statuses=None) -> pd.DataFrame:
        sql = """
              SELECT id, status, created_at, ordered_at, received_at, expected_delivery_at
              FROM purchase_orders
              WHERE supplier_id = :supplier_id
                AND created_at >= :since
              """
        params = [bindparam("since", type_=DateTime)]
        values = {"supplier_id": supplier_id, "since": since}
        if statuses:
            sql += " AND status IN :statuses"
            params.append(bindparam("statuses", expanding=True))
            values["statuses"] = list(statuses)

        df = pd.read_sql(text(sql).bindparams(*params), self.engine, params=values)
        for col in ("created_at", "ordered_at", "received_at", "expected_delivery_at"):
            df[col] = pd.to_datetime(df[col], errors="coerce")
        return df

    def pending_ordered_quantity(self, product_id: int, store_id: int) -> int:
        query = text("""
                     SELECT COALESCE(SUM(poi.quantity_ordered), 0)
                     FROM purchase_order_items poi
                              JOIN purchase_orders po ON po.id = poi.purchase_order_id
                     WHERE poi.product_id = :product_id
                       AND po.store_id = :store_id
                       AND po.status IN :statuses
                     """).bindparams(bindparam("statuses", expanding=True))
        with self.engine.connect() as conn:
            total = conn.execute(query, {
                "product_id": product_id,
                "store_id": store_id,
                "statuses": list(OPEN_PO_STATUSES),
            }).scalar()
        return int(total or 0)

    def last_order_date(self, product_id: int) -> str | None:
        query = text("""
                     SELECT MAX(poi.created_at)
                     FROM purchase_order_items poi
                              JOIN purchase_orders po ON po.id = poi.purchase_order_id
                     WHERE poi.product_id = :product_id
                       AND po.status != :cancelled
                     """)
        with self.engine.connect() as conn:
            value = conn.execute(query, {"product_id": product_id, "cancelled": PO_CANCELLED}).scalar()
        return format_date(value)

    def last_order_date_for_supplier(self, supplier_id: int) -> str | None:
        query = text("""
                     SELECT MAX(created_at)
                     FROM purchase_orders
                     WHERE supplier_id = :supplier_id
                       AND status != :cancelled
                     """)
        with self.engine.connect() as conn:
            value = conn.execute(query, {"supplier_id": supplier_id, "cancelled": PO_CANCELLED}).scalar()
        return format_date(value)

    def purchase_order_history(self, store_id: int, since: datetime) -> pd.DataFrame:
        query = text("""
                     SELECT po.id,
                            po.po_number,
                            s.name               AS supplier_name,
                            po.status,
                            po.total_amount,
                            po.created_at,
                            po.ordered_at,
                            po.received_at,
                            COUNT(poi.id)        AS items_count
                     FROM purchase_orders po
                              JOIN suppliers s ON s.id = po.supplier_id
                              LEFT JOIN purchase_order_items poi ON poi.purchase_order_id = po.id
                     WHERE po.store_id = :store_id
                       AND po.created_at >= :since
                     GROUP BY po.id, po.po_number, s.name, po.status, po.total_amount,
                              po.created_at, po.ordered_at, po.received_at
                     ORDER BY po.created_at DESC, po.id DESC
                     """).bindparams(bindparam("since", type_=DateTime))
        df = pd.read_sql(query, self.engine, params={"store_id": store_id, "since": since})
        for col in ("created_at", "ordered_at", "received_at"):
            df[col] = pd.to_datetime(df[col], errors="coerce")
        return df

    def create_purchase_order(self, header: dict, lines: list) -> dict:
        """
        Persist the order header and all lines in one transaction.
        total_amount is the sum of the line totals.
        """
        db = self.session_factory()
        try:
            order = PurchaseOrder(**header)
            db.add(order)
            db.flush()

            total_amount = 0.0
            for line in lines:
                db.add(PurchaseOrderItem(purchase_order_id=order.id, **line))
                total_amount += float(line["total_cost"])

            order.total_amount = round(total_amount, 2)
            db.commit()

            return {
                "id": order.id,
                "po_number": order.po_number,
                "supplier_id": order.supplier_id,
                "store_id": order.store_id,
                "created_by": order.created_by,
                "status": order.status,
                "notes": order.notes,
                "total_amount": round(total_amount, 2),
                "expected_delivery_at": format_timestamp(order.expected_delivery_at),
                "created_at": format_timestamp(order.created_at),
                "items": [
                    {
                        "product_id": line["product_id"],
                        "quantity_ordered": line["quantity_ordered"],
                        "unit_cost": float(line["unit_cost"]),
                        "total_cost": float(line["total_cost"]),
                        "notes": line.get("notes"),
                    }
                    for line in lines
                ],
            }
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
