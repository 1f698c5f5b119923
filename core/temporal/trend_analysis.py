"""
Severity Trend Analysis.

Per anomaly type, ordinary least squares of severity ordinal
(low=1 … critical=4) against time in fractional days. The rate is the
absolute slope in severity units per day.

Time Complexity: O(K)
Memory: O(K)
"""

from collections import OrderedDict
from typing import Any, Dict, List, Sequence

import numpy as np
from scipy.stats import linregress

from app.config import DEFAULT_CONFIG, SEVERITY_ORDINAL, EngineConfig
from core.models.records import Alert
from utils.time_utils import epoch_days_float


def severity_slope(days: Sequence[float], values: Sequence[float]) -> float:
    x = np.asarray(days, dtype=float)
    if len(x) < 2 or np.ptp(x) == 0:
        return 0.0
    return float(linregress(x, np.asarray(values, dtype=float)).slope)


def analyze_trends(
    related: Sequence[Alert], config: EngineConfig = DEFAULT_CONFIG
) -> List[Dict[str, Any]]:
    grouped: "OrderedDict[str, List[Alert]]" = OrderedDict()
    for alert in related:
        if alert.anomaly is None:
            continue
        grouped.setdefault(alert.anomaly.type, []).append(alert)

    trends: List[Dict[str, Any]] = []
    for anomaly_type, alerts in grouped.items():
        if len(alerts) < config.trend_min_points:
            continue
        alerts = sorted(alerts, key=lambda a: a.created_at)
        days = epoch_days_float(a.created_at for a in alerts)
        values = [SEVERITY_ORDINAL.get(a.anomaly.severity, 0) for a in alerts]

        slope = severity_slope(days, values)
        if abs(slope) < config.trend_stable_slope:
            direction = "stable"
        elif slope > 0:
            direction = "increasing"
        else:
            direction = "decreasing"

        trends.append({"type": anomaly_type, "direction": direction, "rate": round(abs(slope), 6)})

    return trends
