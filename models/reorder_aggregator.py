import logging

import pandas as pd
from sqlalchemy.exc import SQLAlchemyError

from models.reorder_model import plan_reorder
from models.severity_model import classify_severity, severity_label, is_critical
from models.supplier_performance_model import priority_score
from utils.cache import cache_key, store_tags
from utils.date_utils import days_ago, format_timestamp
from utils.exceptions import StockDataUnavailableError
from utils.stock_constants import (
    HIGH_PRIORITY_SEVERITY, AUTO_REORDER_MIN_SEVERITY, AUTO_REORDER_MAX_DAYS_REMAINING
)

logger = logging.getLogger(__name__)


def rank_score(severity: int, days_remaining: int) -> int:
    # severity dominates, fewer days remaining breaks ties
    return severity * 1000 + (100 - min(days_remaining, 100))


def _is_complete(view: dict) -> bool:
    return not view["partial"]


class ReorderAggregator:
    """
    Builds the per-store reorder views from stock levels, sales velocity,
    supplier history and open purchase orders. Every view is cached and
    tagged with the store so a single tag flush refreshes all of them.
    """

    def __init__(self, repository, cache, velocity_estimator, supplier_scorer, settings):
        self.repository = repository
        self.cache = cache
        self.velocity = velocity_estimator
        self.suppliers = supplier_scorer
        self.settings = settings

    # ---------------------------------------------------------
    # Single recommendation
    # ---------------------------------------------------------
    def _build_recommendation(self, entry: dict) -> dict:
        level = entry["stock_level"]
        product = entry["product"]
        supplier = entry["supplier"]
        supplier_id = supplier["id"] if supplier else None

        try:
            velocity = self.velocity.units_per_day(
                level.product_id, level.store_id, self.settings.VELOCITY_WINDOW_DAYS
            )
            lead_time = self.suppliers.average_lead_time(supplier_id)
            pending = self.repository.pending_ordered_quantity(level.product_id, level.store_id)
            last_ordered = self.repository.last_order_date(level.product_id)
        except SQLAlchemyError as e:
            raise StockDataUnavailableError(level.product_id, str(e)) from e

        plan = plan_reorder(level, velocity, lead_time)
        severity = classify_severity(level.current_stock, level.threshold)

        return {
            "product": product,
            "supplier": supplier,
            "supplier_id": supplier_id,
            "store_id": level.store_id,
            "current_stock": level.current_stock,
            "threshold": level.threshold,
            "deficit": plan["deficit"],
            "safety_stock": plan["safety_stock"],
            "suggested_quantity": plan["suggested_quantity"],
            "estimated_cost": round(plan["suggested_quantity"] * product["cost"], 2),
            "severity": severity,
            "severity_label": severity_label(severity),
            "is_critical": is_critical(level.current_stock, level.threshold),
            "velocity": round(velocity, 4),
            "days_remaining": plan["days_remaining"],
            "pending_order_quantity": pending,
            "last_ordered_at": last_ordered,
            "average_lead_time_days": lead_time,
            "rank_score": rank_score(severity, plan["days_remaining"]),
        }

    def get_recommendation(self, store_id: int, product_id: int) -> dict:
        """Recommendation for one product; raises ProductNotFoundError."""
        entry = self.repository.get_stock_entry(product_id, store_id)
        return self._build_recommendation(entry)

    # ---------------------------------------------------------
    # Reorder list
    # ---------------------------------------------------------
    def get_reorder_report(self, store_id: int) -> dict:
        """
        Ranked reorder list plus the products that could not be evaluated.

        A collaborator failure for one product only drops that product; it is
        listed under "unavailable" so callers can tell it apart from a
        product that simply needs no reorder. Partial reports are not cached.
        """
        return self.cache.remember(
            cache_key("list", "store", store_id),
            self.settings.REORDER_LIST_TTL,
            store_tags(store_id),
            lambda: self._compute_reorder_report(store_id),
            cache_if=_is_complete,
        )

    def _compute_reorder_report(self, store_id: int) -> dict:
        items = []
        unavailable = []
        for entry in self.repository.list_low_stock(store_id):
            try:
                items.append(self._build_recommendation(entry))
            except StockDataUnavailableError as e:
                logger.warning(f"Skipping product {e.product_id} in store {store_id}: {e.reason}")
                unavailable.append({"product_id": e.product_id, "reason": e.reason})

        items.sort(key=lambda i: (-i["rank_score"], i["product"]["id"]))
        return {
            "store_id": store_id,
            "items": items,
            "unavailable": unavailable,
            "partial": bool(unavailable),
        }

    def get_reorder_list(self, store_id: int) -> list:
        return self.get_reorder_report(store_id)["items"]

    def _derived_view(self, name: str, ttl: int, store_id: int, build) -> dict:
        """
        Cached view over the reorder report. build(items) returns the view's
        own fields; the report's unavailable/partial flags are carried over.
        """
        def compute():
            report = self.get_reorder_report(store_id)
            view = {"store_id": store_id}
            view.update(build(report["items"]))
            view["unavailable"] = report["unavailable"]
            view["partial"] = report["partial"]
            return view

        return self.cache.remember(
            cache_key(name, "store", store_id),
            ttl,
            store_tags(store_id),
            compute,
            cache_if=_is_complete,
        )

    # ---------------------------------------------------------
    # Grouped by supplier
    # ---------------------------------------------------------
    def get_reorder_list_by_supplier(self, store_id: int) -> dict:
        return self._derived_view(
            "by_supplier", self.settings.REORDER_LIST_TTL, store_id,
            lambda items: {"suppliers": self._group_by_supplier(items)},
        )

    def _group_by_supplier(self, items: list) -> list:
        groups = {}
        for item in items:
            groups.setdefault(item["supplier_id"], []).append(item)

        result = []
        for supplier_id, group_items in groups.items():
            result.append({
                "supplier": group_items[0]["supplier"],
                "supplier_id": supplier_id,
                "items": group_items,
                "total_items": len(group_items),
                "total_cost": round(sum(i["estimated_cost"] for i in group_items), 2),
                "high_priority_items": sum(
                    1 for i in group_items if i["severity"] >= HIGH_PRIORITY_SEVERITY
                ),
                "avg_lead_time": self.suppliers.average_lead_time(supplier_id),
            })

        result.sort(key=lambda g: -g["high_priority_items"])
        return result

    # ---------------------------------------------------------
    # Filters
    # ---------------------------------------------------------
    def get_automatic_reorder_candidates(self, store_id: int) -> dict:
        """
        Items safe to order without review: severity >= 4, at most 3 days of
        stock left and nothing already on order for the product here.
        """
        return self._derived_view(
            "auto", self.settings.AUTO_REORDER_TTL, store_id,
            lambda items: {"items": [
                i for i in items
                if i["severity"] >= AUTO_REORDER_MIN_SEVERITY
                   and i["days_remaining"] <= AUTO_REORDER_MAX_DAYS_REMAINING
                   and i["pending_order_quantity"] <= 0
            ]},
        )

    def get_critical_items(self, store_id: int) -> dict:
        return self._derived_view(
            "critical", self.settings.REORDER_LIST_TTL, store_id,
            lambda items: {"items": [i for i in items if i["is_critical"]]},
        )

    # ---------------------------------------------------------
    # Supplier comparison
    # ---------------------------------------------------------
    def get_supplier_comparison(self, store_id: int) -> dict:
        return self._derived_view(
            "supplier_comparison", self.settings.SUPPLIER_COMPARISON_TTL, store_id,
            lambda items: {"suppliers": self._compare_suppliers(self._group_by_supplier(items))},
        )

    def _compare_suppliers(self, groups: list) -> list:
        rows = []
        for group in groups:
            supplier_id = group["supplier_id"]
            if supplier_id is None:
                continue
            card = self.suppliers.scorecard(supplier_id)
            rows.append({
                "supplier": group["supplier"],
                "supplier_id": supplier_id,
                "items_count": group["total_items"],
                "total_cost": group["total_cost"],
                "high_priority_items": group["high_priority_items"],
                "avg_lead_time": group["avg_lead_time"],
                "last_order_date": self.repository.last_order_date_for_supplier(supplier_id),
                "reliability_score": card["reliability_score"],
                "completed_orders": card["completed_orders"],
                "cancelled_orders": card["cancelled_orders"],
                "priority_score": priority_score(
                    group["high_priority_items"],
                    group["total_items"],
                    group["total_cost"],
                    group["avg_lead_time"],
                ),
            })

        rows.sort(key=lambda r: -r["priority_score"])
        return rows

    # ---------------------------------------------------------
    # Stats / history
    # ---------------------------------------------------------
    def get_reorder_stats(self, store_id: int) -> dict:
        return self._derived_view(
            "stats", self.settings.REORDER_LIST_TTL, store_id, self._compute_stats
        )

    def _compute_stats(self, items: list) -> dict:
        return {
            "total_items_to_reorder": len(items),
            "critical_items": sum(1 for i in items if i["is_critical"]),
            "total_estimated_cost": round(sum(i["estimated_cost"] for i in items), 2),
            "unique_suppliers": len({i["supplier_id"] for i in items if i["supplier_id"] is not None}),
            "out_of_stock_items": sum(1 for i in items if i["current_stock"] == 0),
            "low_stock_items": sum(1 for i in items if i["current_stock"] > 0),
        }

    def get_reorder_history(self, store_id: int, days: int = 30) -> list:
        return self.cache.remember(
            cache_key("history", "store", store_id, "days", days),
            self.settings.HISTORY_TTL,
            store_tags(store_id, "history"),
            lambda: self._compute_history(store_id, days),
        )

    def _compute_history(self, store_id: int, days: int) -> list:
        df = self.repository.purchase_order_history(store_id, days_ago(days))
        if df.empty:
            return []

        df["delivery_days"] = (df["received_at"] - df["ordered_at"]).dt.days

        history = []
        for _, r in df.iterrows():
            history.append({
                "po_number": r["po_number"],
                "supplier": r["supplier_name"],
                "status": r["status"],
                "items_count": int(r["items_count"]),
                "total_amount": float(r["total_amount"] or 0),
                "created_at": format_timestamp(r["created_at"]),
                "ordered_at": format_timestamp(r["ordered_at"]),
                "received_at": format_timestamp(r["received_at"]),
                "delivery_days": None if pd.isna(r["delivery_days"]) else int(r["delivery_days"]),
            })
        return history

    # ---------------------------------------------------------
    # Invalidation
    # ---------------------------------------------------------
    def invalidate_store_cache(self, store_id: int) -> int:
        return self.cache.invalidate_store(store_id)

    def invalidate_all_reorder_cache(self) -> int:
        return self.cache.invalidate_all()
