"""
Seasonality Detection — periodic recurrence of an anomaly type.

For each type with enough occurrences, the gaps between consecutive
epoch-day numbers are compared against 7, 30 and 90 day periods; a gap
counts when |gap - p| < 0.3 p. The fraction of matching gaps is the
pattern strength.

Time Complexity: O(K log K)
Memory: O(K)
"""

from collections import OrderedDict
from typing import Any, Dict, List, Sequence

import numpy as np

from app.config import DEFAULT_CONFIG, EngineConfig
from core.models.records import Alert
from utils.time_utils import epoch_day


def pattern_strength(sorted_days: Sequence[int], period: int, tolerance: float) -> float:
    if len(sorted_days) < 3:
        return 0.0
    gaps = np.diff(np.asarray(sorted_days, dtype=float))
    near = np.abs(gaps - period) < period * tolerance
    return float(near.mean())


def detect_seasonality(
    related: Sequence[Alert], config: EngineConfig = DEFAULT_CONFIG
) -> List[Dict[str, Any]]:
    days_by_type: "OrderedDict[str, List[int]]" = OrderedDict()
    for alert in related:
        if alert.anomaly is None:
            continue
        days_by_type.setdefault(alert.anomaly.type, []).append(epoch_day(alert.created_at))

    patterns: List[Dict[str, Any]] = []
    for anomaly_type, days in days_by_type.items():
        if len(days) < config.seasonal_min_occurrences:
            continue
        ordered = sorted(days)
        for period in config.seasonal_periods:
            strength = pattern_strength(ordered, period, config.seasonal_tolerance)
            if strength > config.seasonal_threshold:
                patterns.append(
                    {
                        "type": anomaly_type,
                        "period_days": period,
                        "strength": round(strength * 100, 2),
                    }
                )

    return patterns[: config.seasonal_limit]
