"""
Temporal Insights — combines lead/lag, causal, seasonal and trend views
for one seed alert.
"""

from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from app.config import DEFAULT_CONFIG, EngineConfig
from core.models.records import Alert
from core.temporal.causality import find_causal_relationships
from core.temporal.lead_lag import find_lagging_indicators, find_leading_indicators
from core.temporal.seasonality import detect_seasonality
from core.temporal.trend_analysis import analyze_trends
from utils.time_utils import window_start


def analyze_temporal(
    seed: Optional[Alert],
    related: Sequence[Alert],
    now: datetime,
    window_days: int,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Optional[Dict[str, Any]]:
    """Return TemporalInsights, or None when the seed or its anomaly is missing."""
    if seed is None or seed.anomaly is None:
        return None
    related = [a for a in related if a.id != seed.id]
    return {
        "leading_indicators": find_leading_indicators(seed, related, config),
        "lagging_indicators": find_lagging_indicators(seed, related, config),
        "causal_relationships": find_causal_relationships(
            related, window_start(now, window_days), window_days, config
        ),
        "seasonal_patterns": detect_seasonality(related, config),
        "trends": analyze_trends(related, config),
    }
