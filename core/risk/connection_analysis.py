"""
Interconnected Intelligence — connected factors around one alert.

Collects factors from several relation kinds, each with a configured or
pattern-derived correlation score (EngineConfig defaults shown):

    same product, different type        complementary-pair score (0.3-0.9)
    complementary pattern               detail-driven score (> 0.3)
    same category, same type            0.55
    same country / origin               0.45
    bidirectional complementary pair    0.65
    recurring historical type           0.40  (≥3 occurrences, >14 days old)

Factors are de-duplicated by alert id (later kinds overwrite earlier
scores), sorted by score and summarized into a cascading impact and a
risk assessment.

Time Complexity: O(K log K)
Memory: O(K)
"""

from collections import OrderedDict
from datetime import datetime
from itertools import combinations
from typing import Any, Dict, List, Optional, Sequence

from app.config import DEFAULT_CONFIG, EngineConfig
from core.models.records import Alert, Anomaly
from utils.time_utils import signed_days


def pair_score(a: Anomaly, b: Anomaly, config: EngineConfig = DEFAULT_CONFIG) -> float:
    if a.type != b.type:
        score = config.connection_pair_scores.get(frozenset({a.type, b.type}))
        if score is not None:
            return score
    extra_a = a.details_dict().get("product_id")
    extra_b = b.details_dict().get("product_id")
    if extra_a and extra_a == extra_b:
        return 0.6
    return 0.3


def pattern_score(primary: Anomaly, other: Anomaly) -> float:
    pct_a = primary.details.percentage_change
    pct_b = other.details.percentage_change
    if primary.type == "price_spike" and pct_a and pct_b:
        if other.type == "freight_surge" and abs(pct_a) > 20 and abs(pct_b) > 20:
            return 0.8
        if other.type == "fx_volatility" and abs(pct_a) > 15 and abs(pct_b) > 10:
            return 0.75
    if primary.type == "tariff_change" and other.type == "price_spike":
        if pct_a and abs(pct_a) > 10:
            return 0.7
    return 0.2


def _factor(alert: Alert, score: float, **extra_details: Any) -> Dict[str, Any]:
    anomaly = alert.anomaly
    return {
        "id": alert.id,
        "type": anomaly.type,
        "alert_id": alert.id,
        "timestamp": alert.created_at.isoformat(),
        "severity": anomaly.severity,
        "product_id": anomaly.product_id,
        "correlation_score": score,
        "details": {**anomaly.details_dict(), **extra_details},
    }


def _location(anomaly: Anomaly) -> Optional[str]:
    return anomaly.details.country or anomaly.details.origin


def collect_factors(
    seed: Alert,
    related: Sequence[Alert],
    now: datetime,
    config: EngineConfig = DEFAULT_CONFIG,
) -> List[Dict[str, Any]]:
    primary = seed.anomaly
    scores = config.connection_factor_scores
    limits = config.connection_factor_limits
    usable = [a for a in related if a.anomaly is not None and a.id != seed.id]
    factors: List[Dict[str, Any]] = []

    if primary.product_id:
        for alert in usable:
            anomaly = alert.anomaly
            if anomaly.product_id == primary.product_id and anomaly.type != primary.type:
                factors.append(_factor(alert, pair_score(primary, anomaly, config)))

    for alert in usable:
        if alert.anomaly.type == primary.type:
            continue
        score = pattern_score(primary, alert.anomaly)
        if score > 0.3:
            factors.append(_factor(alert, score))

    cross = []
    if primary.product_id and primary.details.category:
        for alert in usable:
            anomaly = alert.anomaly
            if (
                anomaly.product_id
                and anomaly.type == primary.type
                and anomaly.details.category == primary.details.category
            ):
                cross.append(_factor(alert, scores["cross_product"]))
    factors.extend(cross[: limits["cross_product"]])

    geographic = []
    home = _location(primary)
    if home:
        for alert in usable:
            if _location(alert.anomaly) == home:
                geographic.append(_factor(alert, scores["geographic"]))
    factors.extend(geographic[: limits["geographic"]])

    circular = [
        _factor(alert, scores["circular"], circular_dependency=True)
        for alert in usable
        if frozenset({primary.type, alert.anomaly.type}) in config.connection_pair_scores
    ]
    factors.extend(circular[: limits["circular"]])

    by_type: "OrderedDict[str, List[Alert]]" = OrderedDict()
    for alert in usable:
        by_type.setdefault(alert.anomaly.type, []).append(alert)
    historical = []
    for occurrences in by_type.values():
        if len(occurrences) < config.historical_min_occurrences:
            continue
        for alert in occurrences:
            if signed_days(now, alert.created_at) > config.historical_min_age_days:
                historical.append(
                    _factor(
                        alert,
                        scores["historical"],
                        historical_pattern=True,
                        occurrences=len(occurrences),
                    )
                )
    factors.extend(historical[: limits["historical"]])

    unique: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for factor in factors:
        unique[factor["id"]] = factor
    return sorted(unique.values(), key=lambda f: f["correlation_score"], reverse=True)


def cascading_impact(
    factors: List[Dict[str, Any]], config: EngineConfig = DEFAULT_CONFIG
) -> float:
    if not factors:
        return 0.0
    impact = float(config.connection_severity_base.get(factors[0]["severity"], 0))
    impact *= 1 + len(factors) * 0.2
    impact += 20 * sum(1 for f in factors if f["severity"] in ("high", "critical"))
    return min(impact, 100.0)


def supply_chain_affected(primary_type: str, factors: List[Dict[str, Any]]) -> bool:
    return len({primary_type, *(f["type"] for f in factors)}) >= 3


def _factor_pairs(
    primary: Anomaly, factors: List[Dict[str, Any]], config: EngineConfig
) -> List[Dict[str, Any]]:
    anomalies = [primary] + [
        Anomaly(id=f["id"], type=f["type"], severity=f["severity"], details=f["details"])
        for f in factors
    ]
    return [
        {"factor1": a.type, "factor2": b.type, "correlation": pair_score(a, b, config)}
        for a, b in combinations(anomalies, 2)
    ]


def recommended_actions(primary: Anomaly, factors: List[Dict[str, Any]], impact: float) -> List[str]:
    types = {f["type"] for f in factors}
    actions: List[str] = []

    if primary.type == "price_spike":
        actions.append("Review supplier pricing agreements for sudden changes")
        if "freight_surge" in types:
            actions.append("Investigate freight route alternatives to reduce costs")
        if "fx_volatility" in types:
            actions.append("Consider hedging currency exposure with forward contracts")
        if impact > 70:
            actions.append("URGENT: Multiple factors affecting supply - escalate to management")
    elif primary.type == "tariff_change":
        actions.append("Update customs declaration templates with new rates")
        actions.append("Notify trading partners of compliance requirements")
        if "price_spike" in types:
            actions.append("Negotiate price adjustments with suppliers to offset tariff impact")
    elif primary.type == "freight_surge":
        actions.append("Explore alternative shipping routes and carriers")
        actions.append("Consider consolidating shipments to reduce freight costs")
        if "price_spike" in types:
            actions.append("Evaluate local sourcing or regional suppliers")
    elif primary.type == "fx_volatility":
        actions.append("Review FX exposure and implement hedging strategy")
        actions.append("Monitor central bank policy changes affecting exchange rates")

    if impact > 80:
        actions.insert(0, "CRITICAL: Immediate supply chain intervention required")
    return actions[:5]


def risk_assessment(primary: Anomaly, factors: List[Dict[str, Any]], impact: float) -> Dict[str, Any]:
    overall = impact
    reasons: List[str] = []

    if primary.severity == "critical":
        overall = max(overall, 90)
        reasons.append("Critical anomaly severity")
    if len(factors) >= 5:
        overall += 15
        reasons.append("Multiple interconnected anomalies detected")
    if supply_chain_affected(primary.type, factors):
        overall += 20
        reasons.append("Multiple risk dimensions affected (price, freight, FX, tariff)")
    if any(f["severity"] == "critical" for f in factors):
        overall += 10
        reasons.append("Critical-level connected factors detected")

    if overall >= 80:
        priority = "critical"
    elif overall >= 60:
        priority = "high"
    elif overall >= 40:
        priority = "medium"
    else:
        priority = "low"

    return {
        "overall_risk": min(overall, 100),
        "risk_factors": reasons,
        "mitigation_priority": priority,
    }


def analyze_interconnected(
    seed: Optional[Alert],
    related: Sequence[Alert],
    now: datetime,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Optional[Dict[str, Any]]:
    """Return ConnectedIntelligence, or None when the seed or its anomaly is missing."""
    if seed is None or seed.anomaly is None:
        return None
    primary = seed.anomaly

    factors = collect_factors(seed, related, now, config)
    impact = cascading_impact(factors, config)

    return {
        "primary_alert": {
            "id": seed.id,
            "type": primary.type,
            "severity": primary.severity,
            "timestamp": seed.created_at.isoformat(),
            "product_id": primary.product_id,
            "details": primary.details_dict(),
        },
        "connected_factors": factors[:10],
        "impact_cascade": {
            "cascading_impact": impact,
            "total_factors": len(factors),
            "affected_supply_chain": supply_chain_affected(primary.type, factors),
        },
        "correlation_matrix": {"factor_pairs": _factor_pairs(primary, factors, config)},
        "recommended_actions": recommended_actions(primary, factors, impact),
        "risk_assessment": risk_assessment(primary, factors, impact),
    }
