from sqlalchemy import text

# Purchase order statuses
PO_DRAFT = "draft"
PO_PENDING = "pending"
PO_ORDERED = "ordered"
PO_RECEIVED = "received"
PO_CANCELLED = "cancelled"

OPEN_PO_STATUSES = (PO_DRAFT, PO_PENDING, PO_ORDERED)  # counted as "on order"
SETTLED_PO_STATUSES = (PO_RECEIVED, PO_CANCELLED)  # used for reliability

# Severity (0..5) and the stock/threshold ratios that bound each bucket
SEVERITY_OUT_OF_STOCK = 5
SEVERITY_BANDS = (
    (0.2, 4),
    (0.5, 3),
    (0.8, 2),
    (1.0, 1),
)
SEVERITY_LABELS = {
    5: "out_of_stock",
    4: "critical",
    3: "high",
    2: "medium",
    1: "low",
    0: "ok",
}
HIGH_PRIORITY_SEVERITY = 4

# Separate dashboard policy, deliberately not the severity-4 cut (ratio 0.2)
CRITICAL_STOCK_RATIO = 0.25

# Reorder sizing
DEFAULT_LEAD_TIME_DAYS = 7
SAFETY_STOCK_DAYS = 3
MIN_SAFETY_STOCK = 10
DAYS_REMAINING_SENTINEL = 999  # velocity <= 0: no demand signal

# Automatic reorder filter
AUTO_REORDER_MIN_SEVERITY = 4
AUTO_REORDER_MAX_DAYS_REMAINING = 3

# Supplier scoring
NEUTRAL_RELIABILITY_SCORE = 50
COMPLETION_WEIGHT = 0.7
TIMELINESS_WEIGHT = 0.3

# Threshold optimisation
THRESHOLD_VELOCITY_WINDOW_DAYS = 60
THRESHOLD_MIN = 5
THRESHOLD_MAX = 100
THRESHOLD_CHANGE_TOLERANCE = 0.2

LOW_STOCK_SQL = """
    SELECT p.id                   AS product_id,
           p.name                 AS product_name,
           p.sku                  AS sku,
           p.cost                 AS cost,
           p.supplier_id          AS supplier_id,
           s.name                 AS supplier_name,
           ps.store_id            AS store_id,
           ps.stock               AS current_stock,
           ps.low_stock_threshold AS threshold,
           ps.min_order_quantity  AS min_order_quantity
    FROM product_store ps
             JOIN products p ON p.id = ps.product_id
             LEFT JOIN suppliers s ON s.id = p.supplier_id
"""


def build_low_stock_query():
    return text(f"""
        {LOW_STOCK_SQL}
        WHERE ps.store_id = :store_id
          AND p.is_active = :active
          AND ps.stock <= ps.low_stock_threshold
        ORDER BY p.id
    """)


def build_stock_level_query():
    return text(f"""
        {LOW_STOCK_SQL}
        WHERE ps.store_id = :store_id
          AND ps.product_id = :product_id
    """)
