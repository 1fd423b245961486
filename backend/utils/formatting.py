"""Display helpers shared by exports and the dashboard summary."""
from datetime import date
from typing import Any, Optional
import logging
import math

from utils.timestamps import parse_date

logger = logging.getLogger(__name__)

TIER_LABELS = {
    "gold": "ذهبي",
    "silver": "فضي",
    "bronze": "برونزي",
}

STATUS_LABELS = {
    "active": "نشط",
    "expired": "منتهي",
}

EXPIRING_SOON_DAYS = 7


def format_currency(amount: Any) -> str:
    """Format an amount in Kuwaiti dinar (three decimal places)."""
    try:
        value = float(amount)
    except (TypeError, ValueError):
        value = math.nan
    if math.isnan(value):
        logger.error("Invalid amount provided to format_currency")
        return "0.000 د.ك"
    return f"{value:,.3f} د.ك"


def format_tier(tier: Optional[str]) -> str:
    return TIER_LABELS.get((tier or "").lower(), "عادي")


def format_status(status: Optional[str]) -> str:
    return STATUS_LABELS.get(status or "", "محذوف")


def is_expiring_soon(end_date: Any, today: Optional[date] = None) -> bool:
    """True when the end date falls within the next 7 days (inclusive)."""
    end = parse_date(end_date)
    if end is None:
        return False
    diff_days = (end - (today or date.today())).days
    return 0 <= diff_days <= EXPIRING_SOON_DAYS


def calculate_performance(completed: int, total: int) -> str:
    if total <= 0:
        return "excellent"
    percentage = completed / total * 100
    if percentage >= 90:
        return "excellent"
    if percentage >= 70:
        return "good"
    return "weak"
