from datetime import datetime, timedelta

import pandas as pd


def utcnow() -> datetime:
    return datetime.utcnow()


def days_ago(days: int, now: datetime | None = None) -> datetime:
    return (now or utcnow()) - timedelta(days=days)


def months_ago(months: int, now: datetime | None = None) -> datetime:
    return ((now or utcnow()) - pd.DateOffset(months=months)).to_pydatetime()


def format_date(value) -> str | None:
    """Accepts datetimes or the raw strings some drivers return."""
    if value is None:
        return None
    ts = pd.to_datetime(value, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.strftime("%Y-%m-%d")


def format_timestamp(value) -> str | None:
    if value is None:
        return None
    ts = pd.to_datetime(value, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.strftime("%Y-%m-%d %H:%M:%S")
