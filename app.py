import logging

import click
from flask import Flask, request, jsonify
from flask_cors import CORS
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config import config
from db.connection import engine, SessionLocal
from db.models import Base
from db.repository import InventoryRepository
from models.inventory_alert_model import LowStockAlertService
from models.purchase_order_model import PurchaseOrderAssembler
from models.reorder_aggregator import ReorderAggregator
from models.supplier_performance_model import SupplierScorer
from models.velocity_model import VelocityEstimator
from utils.cache import build_cache
from utils.exceptions import (
    MixedSupplierError, ProductNotFoundError, SupplierNotFoundError, ValidationError
)

# ✅ Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)
logger = logging.getLogger("ReorderEngine")

app = Flask(__name__)
CORS(app)

# ✅ Database initialization and health check
try:
    Base.metadata.create_all(bind=engine)
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    logger.info("✅ Database connection established successfully.")
except SQLAlchemyError as e:
    logger.error(f"❌ Database connection failed: {e}")

# ✅ Engine wiring
cache = build_cache(config)
repository = InventoryRepository(engine, SessionLocal)
velocity_estimator = VelocityEstimator(
    repository, cache, window_days=config.VELOCITY_WINDOW_DAYS, ttl=config.VELOCITY_TTL
)
supplier_scorer = SupplierScorer(
    repository, cache, lookback_months=config.SUPPLIER_LOOKBACK_MONTHS, ttl=config.SUPPLIER_SCORE_TTL
)
aggregator = ReorderAggregator(repository, cache, velocity_estimator, supplier_scorer, config)
assembler = PurchaseOrderAssembler(repository, supplier_scorer, cache)
alert_service = LowStockAlertService(repository, cache, velocity_estimator, config)

logger.info(f"🚀 Reorder engine initialized (cache backend: {config.CACHE_BACKEND}).")


def _error(message, status, **extra):
    body = {"status": "error", "message": message}
    body.update(extra)
    return jsonify(body), status


def _int_field(data: dict, field: str) -> int:
    """Positive integer id from a JSON body; raises ValidationError naming the field."""
    value = data.get(field)
    if isinstance(value, bool):
        raise ValidationError(field, "must be an integer")
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(field, "must be an integer")
    if isinstance(value, float) and value != parsed:
        raise ValidationError(field, "must be an integer")
    if parsed <= 0:
        raise ValidationError(field, "must be positive")
    return parsed


def _view_response(view: dict, list_key: str):
    return jsonify({"status": "ok", "count": len(view[list_key]), **view})


@app.errorhandler(ProductNotFoundError)
@app.errorhandler(SupplierNotFoundError)
def handle_not_found(e):
    return _error(str(e), 404)


@app.errorhandler(ValidationError)
def handle_validation_error(e):
    return _error(str(e), 422, field=e.field)


@app.errorhandler(SQLAlchemyError)
def handle_db_error(e):
    logger.error(f"❌ Database error: {e}")
    return _error("Database error", 500)


@app.route("/api/v1/health", methods=["GET"])
def health():
    return jsonify({"status": "ok"})


# ---------------------------------------------------------
# Reorder views
# ---------------------------------------------------------
@app.route("/api/v1/reorders/<int:store_id>", methods=["GET"])
def get_reorder_list(store_id):
    return _view_response(aggregator.get_reorder_report(store_id), "items")


@app.route("/api/v1/reorders/<int:store_id>/by-supplier", methods=["GET"])
def get_reorder_by_supplier(store_id):
    return _view_response(aggregator.get_reorder_list_by_supplier(store_id), "suppliers")


@app.route("/api/v1/reorders/<int:store_id>/automatic", methods=["GET"])
def get_automatic_reorders(store_id):
    return _view_response(aggregator.get_automatic_reorder_candidates(store_id), "items")


@app.route("/api/v1/reorders/<int:store_id>/critical", methods=["GET"])
def get_critical_items(store_id):
    return _view_response(aggregator.get_critical_items(store_id), "items")


@app.route("/api/v1/reorders/<int:store_id>/suppliers", methods=["GET"])
def get_supplier_comparison(store_id):
    return _view_response(aggregator.get_supplier_comparison(store_id), "suppliers")


@app.route("/api/v1/reorders/<int:store_id>/stats", methods=["GET"])
def get_reorder_stats(store_id):
    return jsonify({"status": "ok", **aggregator.get_reorder_stats(store_id)})


@app.route("/api/v1/reorders/<int:store_id>/history", methods=["GET"])
def get_reorder_history(store_id):
    days = request.args.get("days", 30, type=int)
    if days <= 0:
        return _error("days must be positive", 400, field="days")
    rows = aggregator.get_reorder_history(store_id, days)
    return jsonify({"status": "ok", "store_id": store_id, "days": days, "count": len(rows), "orders": rows})


@app.route("/api/v1/reorders/<int:store_id>/products/<int:product_id>", methods=["GET"])
def get_product_recommendation(store_id, product_id):
    return jsonify({"status": "ok", "item": aggregator.get_recommendation(store_id, product_id)})


@app.route("/api/v1/reorders/purchase-orders", methods=["POST"])
def create_purchase_order():
    """
    Body:
    {
      "store_id": 1,
      "created_by": 7,
      "notes": "weekly top-up",          # optional
      "items": [
        {"product_id": 10, "supplier_id": 3, "quantity": 50, "unit_cost": 4.2, "notes": "..."}
      ]
    }
    """
    data = request.get_json() or {}
    if not data.get("store_id") or not data.get("created_by"):
        return _error("store_id and created_by are required", 400)

    try:
        order = assembler.create_from_reorder(
            data.get("items") or [],
            _int_field(data, "store_id"),
            _int_field(data, "created_by"),
            data.get("notes"),
        )
    except MixedSupplierError as e:
        return _error(str(e), 422, field="items", supplier_ids=e.supplier_ids)

    return jsonify({"status": "success", "purchase_order": order}), 201


@app.route("/api/v1/reorders/cache/clear", methods=["POST"])
def clear_reorder_cache():
    """
    Body: {"store_id": 1}  # omit store_id to flush every reorder entry
    """
    data = request.get_json(silent=True) or {}
    if data.get("store_id"):
        store_id = _int_field(data, "store_id")
        removed = aggregator.invalidate_store_cache(store_id)
        return jsonify({"status": "success", "store_id": store_id, "removed": removed})

    removed = aggregator.invalidate_all_reorder_cache()
    return jsonify({"status": "success", "removed": removed})


# ---------------------------------------------------------
# Suppliers
# ---------------------------------------------------------
@app.route("/api/v1/suppliers/<int:supplier_id>/score", methods=["GET"])
def get_supplier_score(supplier_id):
    supplier = repository.get_supplier(supplier_id)
    card = supplier_scorer.scorecard(supplier_id)
    return jsonify({"status": "ok", "supplier": supplier, **card})


# ---------------------------------------------------------
# Low stock alerts
# ---------------------------------------------------------
@app.route("/api/v1/inventory/low-stock/<int:store_id>", methods=["GET"])
def get_low_stock(store_id):
    alerts = alert_service.low_stock_for_store(store_id)
    return jsonify({"status": "ok", "store_id": store_id, "count": len(alerts), "items": alerts})


@app.route("/api/v1/inventory/alerts", methods=["POST"])
def send_low_stock_alerts():
    """
    Body: {"recipients": ["ops@example.com"]}  # optional; defaults to ALERT_RECIPIENTS
    """
    data = request.get_json(silent=True) or {}
    sent = alert_service.send_low_stock_alerts(data.get("recipients"))
    return jsonify({"status": "success", "alerts_sent": sent})


@app.route("/api/v1/inventory/thresholds", methods=["POST"])
def update_thresholds():
    """
    Body: {"store_id": 1}
    """
    data = request.get_json() or {}
    if not data.get("store_id"):
        return _error("store_id is required", 400)

    store_id = _int_field(data, "store_id")
    updated = alert_service.update_optimal_thresholds(store_id)
    return jsonify({"status": "success", "store_id": store_id, "updated": updated})


# ---------------------------------------------------------
# CLI
# ---------------------------------------------------------
@app.cli.command("check-low-stock")
@click.option("--store", "store_id", type=int, default=None, help="Check a single store only.")
@click.option("--send-alerts", is_flag=True, help="Notify the configured alert recipients.")
@click.option("--update-thresholds", is_flag=True, help="Re-derive thresholds from sales velocity.")
def check_low_stock(store_id, send_alerts, update_thresholds):
    """Check inventory levels and optionally send alerts."""
    store_ids = [store_id] if store_id else repository.list_store_ids()

    for sid in store_ids:
        alerts = alert_service.low_stock_for_store(sid)
        critical = [a for a in alerts if a["severity"] >= 4]
        click.echo(f"Store {sid}: {len(alerts)} low stock products, {len(critical)} critical/out of stock")
        for a in critical[:10]:
            click.echo(
                f"  {a['product']['sku']:<16} {a['product']['name']:<30} "
                f"stock={a['current_stock']} threshold={a['threshold']} ({a['severity_label']})"
            )

    if send_alerts:
        sent = alert_service.send_low_stock_alerts()
        click.echo(f"Alerts sent to {sent} recipients")

    if update_thresholds:
        for sid in store_ids:
            updated = alert_service.update_optimal_thresholds(sid)
            click.echo(f"Store {sid}: {updated} thresholds updated")


if __name__ == "__main__":
    app.run(host=config.FLASK_HOST, port=config.FLASK_PORT, debug=config.FLASK_ENV == "development")
