"""
Caller parameter validation.

Raises ValueError with a readable message for invalid analysis
parameters; the HTTP layer turns these into 400 responses.

Time Complexity: O(1) per check, O(n) for id lists
Memory: O(1)
"""

from typing import Iterable, List, Optional

from app.config import BATCH_MAX_ALERTS, MAX_TIME_WINDOW_DAYS

CORRELATION_VIEWS = ("all", "sector", "matrix", "anomalies")


def validate_window(days, max_days: int = MAX_TIME_WINDOW_DAYS) -> int:
    """Window length in whole days, 1..max_days."""
    if isinstance(days, bool):
        raise ValueError("Time window must be an integer number of days.")
    try:
        value = int(days)
    except (TypeError, ValueError):
        raise ValueError("Time window must be an integer number of days.") from None
    if value != days and not isinstance(days, str):
        raise ValueError("Time window must be an integer number of days.")
    if value <= 0:
        raise ValueError("Time window must be positive.")
    if value > max_days:
        raise ValueError(f"Time window must not exceed {max_days} days.")
    return value


def validate_max_hops(max_hops) -> int:
    if isinstance(max_hops, bool):
        raise ValueError("max_hops must be an integer.")
    try:
        value = int(max_hops)
    except (TypeError, ValueError):
        raise ValueError("max_hops must be an integer.") from None
    if value < 1:
        raise ValueError("max_hops must be at least 1.")
    return value


def validate_alert_id(alert_id: Optional[str]) -> str:
    if alert_id is None or not str(alert_id).strip():
        raise ValueError("Alert id is required.")
    return str(alert_id).strip()


def validate_product_ids(product_ids: Optional[Iterable[str]]) -> List[str]:
    ids = [str(p).strip() for p in (product_ids or []) if str(p).strip()]
    if not ids:
        raise ValueError("At least one product id is required for a correlation matrix.")
    return list(dict.fromkeys(ids))


def validate_correlation_view(view: str) -> str:
    if view not in CORRELATION_VIEWS:
        raise ValueError(f"Unknown correlation type '{view}'. Expected one of: {', '.join(CORRELATION_VIEWS)}")
    return view


def validate_alert_ids(alert_ids: Optional[Iterable[str]], max_alerts: int = BATCH_MAX_ALERTS) -> List[str]:
    """Non-empty list of alert ids, at most max_alerts long."""
    if isinstance(alert_ids, str) or not alert_ids:
        raise ValueError("A non-empty list of alert ids is required.")
    ids = [validate_alert_id(a) for a in alert_ids]
    if len(ids) > max_alerts:
        raise ValueError(f"At most {max_alerts} alerts can be analyzed at once.")
    return ids
