from datetime import datetime

from sqlalchemy import (
    Column, String, Numeric, Integer, Boolean, TIMESTAMP, ForeignKey, Text, UniqueConstraint
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


# 1) Suppliers
class Supplier(Base):
    __tablename__ = "suppliers"
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)


# 2) Stores
class Store(Base):
    __tablename__ = "stores"
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)


# 3) Products
class Product(Base):
    __tablename__ = "products"
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=False, unique=True)
    cost = Column(Numeric(12, 2), nullable=False, default=0)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)


# 4) Stock levels (per product, per store)
class ProductStore(Base):
    __tablename__ = "product_store"
    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    low_stock_threshold = Column(Integer, nullable=False, default=10)

    # Minimum purchase batch; NULL falls back to low_stock_threshold
    min_order_quantity = Column(Integer)
    __table_args__ = (
        UniqueConstraint("product_id", "store_id", name="uq_product_store"),
    )


# 5) Sales
class Sale(Base):
    __tablename__ = "sales"
    id = Column(Integer, primary_key=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False)
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)


class SaleItem(Base):
    __tablename__ = "sale_items"
    id = Column(Integer, primary_key=True)
    sale_id = Column(Integer, ForeignKey("sales.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False, default=0)


# 6) Purchase orders
class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"
    id = Column(Integer, primary_key=True)
    po_number = Column(String(50), nullable=False, unique=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False)
    created_by = Column(Integer)
    status = Column(String(20), nullable=False, default="draft")
    notes = Column(Text)
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)
    ordered_at = Column(TIMESTAMP)
    expected_delivery_at = Column(TIMESTAMP)
    received_at = Column(TIMESTAMP)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)


class PurchaseOrderItem(Base):
    __tablename__ = "purchase_order_items"
    id = Column(Integer, primary_key=True)
    purchase_order_id = Column(Integer, ForeignKey("purchase_orders.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity_ordered = Column(Integer, nullable=False)
    quantity_received = Column(Integer, nullable=False, default=0)
    unit_cost = Column(Numeric(12, 2), nullable=False)
    total_cost = Column(Numeric(14, 2), nullable=False)
    notes = Column(Text)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)
