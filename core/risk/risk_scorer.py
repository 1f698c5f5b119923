"""
Composite Risk Scorer.

Scores every active (non-resolved) alert on five sub-scores, each clamped
to [0, 100]:

    price_deviation       price_spike |pct| / 2, tariff_change |pct|
    volume_surge          volume_surge × 10
    fx_exposure           fx_volatility volatility × 10, else currency_risk × 20
    supply_chain_risk     dependency_count × 5 (+20 for critical sectors)
    historical_volatility |z_score| × 15

The dependency count of an alert is the number of active alerts on the
same product. Composite = round-half-up of the weighted sum; alerts are
ranked 1..N by descending composite, ties keeping store order.

Time Complexity: O(N log N)
Memory: O(N)
"""

import logging
import math
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.stats import rankdata

from app.config import DEFAULT_CONFIG, EngineConfig
from core.models.records import Alert, Anomaly, Product

logger = logging.getLogger(__name__)

COMPONENTS = (
    "price_deviation",
    "volume_surge",
    "fx_exposure",
    "supply_chain_risk",
    "historical_volatility",
)


def clamp_score(value: Optional[float]) -> float:
    """Clamp to [0, 100]; missing, negative and non-finite values floor to 0."""
    if value is None:
        return 0.0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value) or value < 0:
        return 0.0
    return min(value, 100.0)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _finite(value: Optional[float]) -> float:
    if value is None or not math.isfinite(value):
        return 0.0
    return value


def sub_scores(
    anomaly: Anomaly,
    dependency_count: int,
    category: Optional[str],
    config: EngineConfig = DEFAULT_CONFIG,
) -> Dict[str, float]:
    details = anomaly.details
    pct = abs(_finite(details.percentage_change))

    price = 0.0
    if anomaly.type == "price_spike":
        price = pct / 2
    elif anomaly.type == "tariff_change":
        price = pct

    volume = _finite(details.volume_surge) * 10

    if anomaly.type == "fx_volatility":
        fx = _finite(getattr(details, "volatility", None)) * 10
    else:
        fx = _finite(details.currency_risk) * 20

    supply = 0.0
    if anomaly.product_id:
        supply = dependency_count * config.dependency_weight
        if category in config.critical_sectors:
            supply += config.critical_sector_bonus

    history = abs(_finite(details.z_score)) * 15

    return {
        "price_deviation": clamp_score(price),
        "volume_surge": clamp_score(volume),
        "fx_exposure": clamp_score(fx),
        "supply_chain_risk": clamp_score(supply),
        "historical_volatility": clamp_score(history),
    }


def risk_level(score: float, config: EngineConfig = DEFAULT_CONFIG) -> str:
    if score >= config.risk_level_critical:
        return "critical"
    if score >= config.risk_level_high:
        return "high"
    if score >= config.risk_level_medium:
        return "medium"
    return "low"


def prioritization_reason(
    composite: int,
    scores: Dict[str, float],
    anomaly: Anomaly,
    config: EngineConfig = DEFAULT_CONFIG,
) -> str:
    reasons: List[str] = []
    if composite >= config.risk_level_critical:
        reasons.append("CRITICAL RISK")
    elif composite >= config.risk_level_high:
        reasons.append("HIGH RISK")

    threshold = config.reason_component_threshold
    details = anomaly.details
    if scores["price_deviation"] > threshold:
        reasons.append(f"Price deviation {_finite(details.percentage_change):.1f}%")
    if scores["volume_surge"] > threshold:
        reasons.append("Significant volume surge")
    if scores["fx_exposure"] > threshold:
        reasons.append("High FX volatility exposure")
    if scores["supply_chain_risk"] > threshold:
        reasons.append("Critical supply chain dependency")
    if scores["historical_volatility"] > threshold:
        reasons.append(f"High statistical deviation (Z-score: {_finite(details.z_score):.2f})")

    return " · ".join(reasons) or "Medium priority risk"


def calculate_risk_scores(
    alerts: Sequence[Alert],
    products: Sequence[Product],
    config: EngineConfig = DEFAULT_CONFIG,
) -> List[Dict[str, Any]]:
    """Return RiskScore dicts ordered by ranking (1 = highest risk)."""
    active = [a for a in alerts if a.status != "resolved" and a.anomaly is not None]
    if not active:
        return []

    categories = {p.id: p.category for p in products}
    dependencies = Counter(a.anomaly.product_id for a in active if a.anomaly.product_id)

    breakdowns = [
        sub_scores(
            a.anomaly,
            dependencies.get(a.anomaly.product_id, 0),
            categories.get(a.anomaly.product_id),
            config,
        )
        for a in active
    ]

    frame = pd.DataFrame(breakdowns, columns=list(COMPONENTS))
    weights = pd.Series(config.risk_weights).reindex(COMPONENTS).fillna(0.0)
    weighted = frame.mul(weights, axis=1).sum(axis=1).to_numpy()
    composites = [min(100, max(0, round_half_up(v))) for v in weighted]
    rankings = rankdata(-np.asarray(composites, dtype=float), method="ordinal").astype(int)

    results: List[Dict[str, Any]] = []
    for alert, scores, composite, rank in zip(active, breakdowns, composites, rankings):
        results.append(
            {
                "alert_id": alert.id,
                "anomaly_id": alert.anomaly.id,
                "composite_risk_score": composite,
                "risk_breakdown": {k: round_half_up(v) for k, v in scores.items()},
                "risk_level": risk_level(composite, config),
                "ranking": int(rank),
                "prioritization_reason": prioritization_reason(
                    composite, scores, alert.anomaly, config
                ),
            }
        )

    results.sort(key=lambda r: r["ranking"])
    logger.debug("Scored %d active alerts", len(results))
    return results


def _recommendations(scores: List[Dict[str, Any]], distribution: Dict[str, int]) -> List[str]:
    recommendations: List[str] = []
    if distribution["critical"] > 0:
        recommendations.append(
            f"URGENT: {distribution['critical']} critical risk alerts require immediate attention"
        )
    if distribution["high"] > 3:
        recommendations.append(
            f"{distribution['high']} high-risk alerts detected - implement risk mitigation strategies"
        )

    average = sum(s["composite_risk_score"] for s in scores) / len(scores)
    if average > 60:
        recommendations.append(
            "Overall risk profile is elevated - consider hedging and contingency planning"
        )

    peak = {
        key: max(s["risk_breakdown"][key] for s in scores)
        for key in ("price_deviation", "fx_exposure", "volume_surge")
    }
    if peak["price_deviation"] > 50:
        recommendations.append(
            "Price volatility is a primary risk factor - review supplier contracts and pricing models"
        )
    if peak["fx_exposure"] > 50:
        recommendations.append("Currency volatility detected - implement FX hedging strategies")
    if peak["volume_surge"] > 50:
        recommendations.append(
            "Volume surges detected - review demand forecasting and supply chain capacity"
        )
    return recommendations


def risk_analysis(scores: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Portfolio view over ranked risk scores; None when nothing is scored."""
    if not scores:
        return None
    distribution = {level: 0 for level in ("low", "medium", "high", "critical")}
    for s in scores:
        distribution[s["risk_level"]] += 1
    overall = sum(s["composite_risk_score"] for s in scores) / len(scores)
    return {
        "overall_risk_score": round_half_up(overall),
        "risk_distribution": distribution,
        "top_risks": scores[:5],
        "recommendations": _recommendations(scores, distribution),
    }
