from utils.stock_constants import (
    SEVERITY_BANDS, SEVERITY_OUT_OF_STOCK, SEVERITY_LABELS, CRITICAL_STOCK_RATIO
)


def classify_severity(current_stock: int, threshold: int) -> int:
    """
    Severity 0..5 for a stock level, 5 being out of stock.

    Bucket edges are inclusive, so a ratio sitting exactly on a boundary
    lands in the worse bucket. A threshold of 0 means no policy is set.
    """
    if current_stock <= 0:
        return SEVERITY_OUT_OF_STOCK
    if threshold <= 0:
        return 0

    ratio = current_stock / threshold
    for upper, severity in SEVERITY_BANDS:
        if ratio <= upper:
            return severity
    return 0


def severity_label(severity: int) -> str:
    return SEVERITY_LABELS.get(severity, "ok")


def is_critical(current_stock: int, threshold: int) -> bool:
    return current_stock <= 0 or current_stock <= threshold * CRITICAL_STOCK_RATIO
