"""
Lead/Lag Indicators.

An alert that fires 1..90 whole days before the seed is a candidate leading
indicator; one that fires 1..90 days after is a candidate lagging
indicator. Candidates qualify when the type-pair correlation heuristic
exceeds the indicator threshold; confidence is that correlation × 100.

Time Complexity: O(K log K)
Memory: O(K)
"""

import math
from typing import Any, Dict, List, Sequence

from app.config import DEFAULT_CONFIG, EngineConfig
from core.models.records import Alert
from utils.time_utils import signed_days


def temporal_correlation(type_a: str, type_b: str, config: EngineConfig = DEFAULT_CONFIG) -> float:
    if type_a == type_b:
        return config.temporal_same_type
    return config.temporal_pattern_correlation.get(
        frozenset({type_a, type_b}), config.temporal_default
    )


def _indicators(
    seed: Alert,
    related: Sequence[Alert],
    config: EngineConfig,
    leading: bool,
) -> List[Dict[str, Any]]:
    seed_type = seed.anomaly.type
    found: List[Dict[str, Any]] = []
    for alert in related:
        if alert.anomaly is None:
            continue
        if leading:
            days = math.floor(signed_days(seed.created_at, alert.created_at))
        else:
            days = math.floor(signed_days(alert.created_at, seed.created_at))
        if not 0 < days <= config.lead_lag_max_days:
            continue

        corr = temporal_correlation(alert.anomaly.type, seed_type, config)
        if corr <= config.indicator_threshold:
            continue

        other = alert.anomaly.type
        entry: Dict[str, Any] = {
            "type": other,
            "indicator_type": f"{other} → {seed_type}" if leading else f"{seed_type} → {other}",
        }
        entry["lead_time_days" if leading else "lag_time_days"] = days
        entry["confidence"] = round(corr * 100, 2)
        found.append(entry)

    found.sort(key=lambda e: e["confidence"], reverse=True)
    return found[: config.indicator_limit]


def find_leading_indicators(
    seed: Alert, related: Sequence[Alert], config: EngineConfig = DEFAULT_CONFIG
) -> List[Dict[str, Any]]:
    return _indicators(seed, related, config, leading=True)


def find_lagging_indicators(
    seed: Alert, related: Sequence[Alert], config: EngineConfig = DEFAULT_CONFIG
) -> List[Dict[str, Any]]:
    return _indicators(seed, related, config, leading=False)
