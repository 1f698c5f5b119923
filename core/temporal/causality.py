"""
Causal Candidates — bucketed precedence between anomaly types.

The analysis window is cut into buckets of max(1, window // 5) days,
numbered chronologically from the window start. An alert in bucket k is a
candidate cause of a different-type alert in bucket k + 1 when the
directional prior for (cause, effect) exceeds the causal threshold.

This is a precedence heuristic, not a statistical causality test.

Time Complexity: O(B × m²), m = alerts per bucket
Memory: O(K)
"""

from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Sequence

from app.config import DEFAULT_CONFIG, EngineConfig
from core.models.records import Alert
from utils.time_utils import signed_days


def causal_prior(cause: str, effect: str, config: EngineConfig = DEFAULT_CONFIG) -> float:
    return config.causal_priors.get((cause, effect), config.causal_default)


def bucket_size_days(window_days: int, config: EngineConfig = DEFAULT_CONFIG) -> int:
    return max(1, window_days // config.causal_buckets)


def find_causal_relationships(
    related: Sequence[Alert],
    window_start: datetime,
    window_days: int,
    config: EngineConfig = DEFAULT_CONFIG,
) -> List[Dict[str, Any]]:
    size = bucket_size_days(window_days, config)

    buckets: Dict[int, List[str]] = defaultdict(list)
    for alert in sorted(related, key=lambda a: a.created_at):
        if alert.anomaly is None:
            continue
        index = int(signed_days(alert.created_at, window_start) // size)
        buckets[index].append(alert.anomaly.type)

    unique: Dict[tuple, Dict[str, Any]] = {}
    for k in sorted(buckets):
        effects = buckets.get(k + 1)
        if not effects:
            continue
        for cause in buckets[k]:
            for effect in effects:
                if cause == effect:
                    continue
                prior = causal_prior(cause, effect, config)
                if prior <= config.causal_threshold:
                    continue
                unique[(cause, effect)] = {
                    "cause": cause,
                    "effect": effect,
                    "confidence": round(prior * 100, 2),
                    "lag_days": size,
                }

    relationships = sorted(unique.values(), key=lambda r: r["confidence"], reverse=True)
    return relationships[: config.causal_limit]
