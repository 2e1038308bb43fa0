import logging

from models.reorder_model import optimal_threshold
from models.severity_model import classify_severity, severity_label, is_critical
from utils.cache import cache_key, store_tags
from utils.stock_constants import (
    HIGH_PRIORITY_SEVERITY, THRESHOLD_VELOCITY_WINDOW_DAYS, THRESHOLD_CHANGE_TOLERANCE
)

logger = logging.getLogger(__name__)


class LoggingNotifier:
    """Default alert sink: records what would be delivered."""

    def notify(self, recipient: str, payload: dict) -> None:
        logger.info(
            f"Low stock alert for {recipient}: "
            f"{payload['low_stock_stores']} stores low, {payload['critical_items']} critical items"
        )


class LowStockAlertService:
    def __init__(self, repository, cache, velocity_estimator, settings, notifier=None):
        self.repository = repository
        self.cache = cache
        self.velocity = velocity_estimator
        self.settings = settings
        self.notifier = notifier or LoggingNotifier()

    def low_stock_for_store(self, store_id: int) -> list:
        return self.cache.remember(
            cache_key("low_stock", "store", store_id),
            self.settings.REORDER_LIST_TTL,
            store_tags(store_id, "alerts"),
            lambda: self._compute_low_stock(store_id),
        )

    def _compute_low_stock(self, store_id: int) -> list:
        alerts = []
        for entry in self.repository.list_low_stock(store_id):
            level = entry["stock_level"]
            severity = classify_severity(level.current_stock, level.threshold)
            alerts.append({
                "product": entry["product"],
                "store_id": store_id,
                "current_stock": level.current_stock,
                "threshold": level.threshold,
                "deficit": level.deficit,
                "severity": severity,
                "severity_label": severity_label(severity),
                "is_critical": is_critical(level.current_stock, level.threshold),
                "is_out_of_stock": level.current_stock == 0,
                "last_sold_at": self.repository.last_sold_at(level.product_id, store_id),
            })
        alerts.sort(key=lambda a: (-a["severity"], a["product"]["id"]))
        return alerts

    def critical_low_stock(self) -> list:
        critical = []
        for store_id in self.repository.list_store_ids():
            critical.extend(a for a in self.low_stock_for_store(store_id) if a["is_critical"])
        return critical

    def build_alert_payload(self) -> dict:
        stores = []
        critical_items = 0
        for store_id in self.repository.list_store_ids():
            alerts = self.low_stock_for_store(store_id)
            if not alerts:
                continue
            critical = [a for a in alerts if a["is_critical"]]
            critical_items += len(critical)
            stores.append({
                "store_id": store_id,
                "low_stock_count": len(alerts),
                "high_severity_count": sum(1 for a in alerts if a["severity"] >= HIGH_PRIORITY_SEVERITY),
                "critical_count": len(critical),
            })
        return {
            "low_stock_stores": len(stores),
            "critical_items": critical_items,
            "stores": stores,
        }

    def send_low_stock_alerts(self, recipients=None) -> int:
        """
        Hand the low-stock summary to the notifier once per recipient.
        Returns how many recipients were notified; failures are logged and skipped.
        """
        recipients = recipients if recipients is not None else self.settings.ALERT_RECIPIENTS
        payload = self.build_alert_payload()
        if not payload["stores"]:
            return 0

        sent = 0
        for recipient in recipients:
            try:
                self.notifier.notify(recipient, payload)
                sent += 1
            except Exception as e:
                logger.error(f"Failed to send low stock alert to {recipient}: {e}")

        logger.info(
            f"Low stock alerts sent: {sent} (stores={payload['low_stock_stores']}, "
            f"critical={payload['critical_items']})"
        )
        return sent

    def update_optimal_thresholds(self, store_id: int) -> int:
        """
        Re-derive each product's threshold from its 60-day velocity; only
        changes of more than 20% are written.
        """
        updated = 0
        for level in self.repository.list_store_stock(store_id):
            velocity = self.velocity.units_per_day(
                level.product_id, store_id, THRESHOLD_VELOCITY_WINDOW_DAYS
            )
            target = optimal_threshold(velocity)
            current = level.threshold

            if current > 0:
                changed = abs(target - current) / current > THRESHOLD_CHANGE_TOLERANCE
            else:
                changed = target != current
            if not changed:
                continue

            self.repository.update_threshold(level.product_id, store_id, target)
            updated += 1
            logger.info(
                f"Updated low stock threshold product={level.product_id} store={store_id} "
                f"{current} -> {target} (velocity={velocity:.3f})"
            )

        if updated:
            self.cache.invalidate_store(store_id)
        return updated
