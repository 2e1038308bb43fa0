"""Shared pytest fixtures: in-memory SQLite schema, cache and engine wiring."""

from __future__ import annotations

import os

# Must be set before config / db.connection are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CACHE_BACKEND"] = "memory"
os.environ["ALERT_RECIPIENTS"] = ""

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from config import config  # noqa: E402
from db.connection import engine, SessionLocal  # noqa: E402
from db.models import (  # noqa: E402
    Base, Store, Supplier, Product, ProductStore, Sale, SaleItem, PurchaseOrder, PurchaseOrderItem
)
from db.repository import InventoryRepository  # noqa: E402
from models.inventory_alert_model import LowStockAlertService  # noqa: E402
from models.purchase_order_model import PurchaseOrderAssembler  # noqa: E402
from models.reorder_aggregator import ReorderAggregator  # noqa: E402
from models.supplier_performance_model import SupplierScorer  # noqa: E402
from models.velocity_model import VelocityEstimator  # noqa: E402
from utils.cache import CacheLayer, MemoryCacheBackend  # noqa: E402

SeedSession = sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture(autouse=True)
def schema():
    """Fresh tables for every test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


class Seeder:
    """Small factory for test rows; every helper commits and returns the id."""

    def __init__(self):
        self._sku = 0
        self._po = 0

    def _save(self, obj):
        db = SeedSession()
        try:
            db.add(obj)
            db.commit()
            return obj.id
        finally:
            db.close()

    def store(self, name="Main Street"):
        return self._save(Store(name=name))

    def supplier(self, name="Acme Wholesale"):
        return self._save(Supplier(name=name, email=f"{name.lower().replace(' ', '.')}@example.com"))

    def product(self, store_id, stock, threshold, supplier_id=None, cost=10.0,
                min_order_quantity=None, name=None, is_active=True):
        self._sku += 1
        product_id = self._save(Product(
            name=name or f"Product {self._sku}",
            sku=f"SKU-{self._sku:04d}",
            cost=cost,
            supplier_id=supplier_id,
            is_active=is_active,
        ))
        self.stock(product_id, store_id, stock, threshold, min_order_quantity)
        return product_id

    def stock(self, product_id, store_id, stock, threshold, min_order_quantity=None):
        return self._save(ProductStore(
            product_id=product_id,
            store_id=store_id,
            stock=stock,
            low_stock_threshold=threshold,
            min_order_quantity=min_order_quantity,
        ))

    def sale(self, store_id, product_id, quantity, days_ago=1):
        sale_id = self._save(Sale(
            store_id=store_id,
            created_at=datetime.utcnow() - timedelta(days=days_ago),
        ))
        self._save(SaleItem(sale_id=sale_id, product_id=product_id, quantity=quantity))
        return sale_id

    def purchase_order(self, supplier_id, store_id, status="received", created_days_ago=10,
                       ordered_days_ago=None, received_days_ago=None, expected_days_ago=None,
                       lines=()):
        now = datetime.utcnow()
        self._po += 1

        def at(days):
            return None if days is None else now - timedelta(days=days)

        po_id = self._save(PurchaseOrder(
            po_number=f"PO-TEST-{self._po:04d}",
            supplier_id=supplier_id,
            store_id=store_id,
            status=status,
            total_amount=sum(q * c for _, q, c in lines),
            created_at=at(created_days_ago),
            ordered_at=at(ordered_days_ago),
            received_at=at(received_days_ago),
            expected_delivery_at=at(expected_days_ago),
        ))
        for product_id, quantity, unit_cost in lines:
            self._save(PurchaseOrderItem(
                purchase_order_id=po_id,
                product_id=product_id,
                quantity_ordered=quantity,
                unit_cost=unit_cost,
                total_cost=quantity * unit_cost,
                created_at=at(created_days_ago),
            ))
        return po_id


@pytest.fixture
def seed():
    return Seeder()


@pytest.fixture
def cache():
    return CacheLayer(MemoryCacheBackend())


@pytest.fixture
def repository():
    return InventoryRepository(engine, SessionLocal)


@pytest.fixture
def velocity_estimator(repository, cache):
    return VelocityEstimator(repository, cache, window_days=30)


@pytest.fixture
def supplier_scorer(repository, cache):
    return SupplierScorer(repository, cache, lookback_months=6)


@pytest.fixture
def aggregator(repository, cache, velocity_estimator, supplier_scorer):
    return ReorderAggregator(repository, cache, velocity_estimator, supplier_scorer, config)


@pytest.fixture
def assembler(repository, supplier_scorer, cache):
    return PurchaseOrderAssembler(repository, supplier_scorer, cache)


@pytest.fixture
def alert_service(repository, cache, velocity_estimator):
    return LowStockAlertService(repository, cache, velocity_estimator, config)
