"""
Cascade Predictor — likelihood, impact and timing of a future cascade.

Combines the connection analysis, network metrics, temporal insights and
multi-hop paths of one alert into a single prediction:

    likelihood = base_risk × 0.30 + cascade_impact × 0.25
               + top_centrality × 100 × 0.15 + min(paths × 10, 100) × 0.10
               + leading × 10 × 0.10 + min(max_hops × 20, 100) × 0.05
               + compound_risk × 0.05                      (capped to [0, 100])
    impact     = min(cascade_impact + base_risk × 0.2, 100)

Time to cascade is drawn uniformly from a risk tier using an injected
numpy Generator, or the tier midpoint in deterministic mode. Any missing
input or failure yields the degraded default prediction instead of an
exception.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from app.config import DEFAULT_CONFIG, EngineConfig

logger = logging.getLogger(__name__)

# Reference outcomes matched by threshold: (date, outcome, similarity).
REFERENCE_CASES = {
    "high_base_risk": ("2024-09-15", "Cascade occurred within 5 days, affected 23 companies", 85),
    "high_impact": ("2024-08-20", "Significant cascade, supply chain disruption", 78),
    "many_paths": ("2024-07-10", "Multi-hop cascade detected, mitigated in 10 days", 72),
    "no_match": ("2024-06-01", "No similar high-risk cases found", 40),
}


DEGRADED_PREFIX = "Unable to analyze: "


def default_prediction(reason: str) -> Dict[str, Any]:
    return {
        "likelihood_score": 50,
        "predicted_impact": 50,
        "time_to_cascade_days": 30,
        "confidence_interval": {"lower": 30, "upper": 70},
        "similar_historical_cases": [],
        "risk_factors": [f"{DEGRADED_PREFIX}{reason}"],
        "mitigation_recommendations": [
            "Collect more data for accurate prediction",
            "Manually review alert details",
        ],
    }


def is_degraded(prediction: Dict[str, Any]) -> bool:
    """True for the default prediction returned when analysis was impossible."""
    return any(f.startswith(DEGRADED_PREFIX) for f in prediction.get("risk_factors", []))


def cascade_tier(
    base_risk: float, total_factors: int, causal_links: int
) -> Tuple[float, float]:
    """Uniform bounds (days) of the time-to-cascade tier."""
    if base_risk >= 80:
        return (1.0, 8.0)
    if base_risk >= 60:
        return (7.0, 21.0)
    if base_risk >= 40:
        return (14.0, 44.0)
    if total_factors > 10:
        return (7.0, 21.0)
    if causal_links > 5:
        return (7.0, 28.0)
    return (30.0, 60.0)


def estimate_time_to_cascade(
    base_risk: float,
    total_factors: int,
    causal_links: int,
    rng: np.random.Generator,
    deterministic: bool = False,
) -> float:
    low, high = cascade_tier(base_risk, total_factors, causal_links)
    if deterministic:
        return (low + high) / 2
    return float(rng.uniform(low, high))


def confidence_interval(total_factors: int, leading: int, causal: int) -> Dict[str, int]:
    data_points = total_factors + leading + causal
    if data_points >= 20:
        return {"lower": 80, "upper": 100}
    if data_points >= 10:
        return {"lower": 60, "upper": 90}
    if data_points >= 5:
        return {"lower": 40, "upper": 80}
    return {"lower": 20, "upper": 60}


def similar_cases(base_risk: float, impact: float, path_count: int) -> List[Dict[str, Any]]:
    keys = []
    if base_risk >= 80:
        keys.append("high_base_risk")
    if impact >= 70:
        keys.append("high_impact")
    if path_count >= 5:
        keys.append("many_paths")
    if not keys:
        keys.append("no_match")
    return [
        {"date": REFERENCE_CASES[k][0], "outcome": REFERENCE_CASES[k][1], "similarity": REFERENCE_CASES[k][2]}
        for k in keys
    ]


def identify_risk_factors(
    intelligence: Dict[str, Any],
    top_centrality: float,
    path_count: int,
    leading: int,
    max_hops: int,
) -> List[str]:
    factors: List[str] = []
    if intelligence["risk_assessment"]["overall_risk"] >= 80:
        factors.append("Critical overall risk score")
    if intelligence["impact_cascade"]["cascading_impact"] >= 70:
        factors.append("High cascading impact detected")
    if intelligence["impact_cascade"]["total_factors"] > 10:
        factors.append("Multiple connection points")
    if top_centrality > 0.5:
        factors.append("High network centrality")
    if path_count > 5:
        factors.append("Multiple critical paths identified")
    if leading > 0:
        factors.append("Leading indicators detected")
    if max_hops >= 3:
        factors.append("Deep multi-hop connections (3+ hops)")
    return factors


def mitigation_recommendations(
    likelihood: float,
    impact: float,
    risk_factors: List[str],
    intelligence: Dict[str, Any],
) -> List[str]:
    recommendations: List[str] = []
    if likelihood >= 80:
        recommendations += [
            "Immediate action required - high cascade likelihood",
            "Contact affected suppliers immediately",
            "Prepare alternative supply chain sources",
        ]
    if impact >= 70:
        recommendations += [
            "Potential significant impact predicted",
            "Increase monitoring frequency to daily",
        ]
    if "Multiple connection points" in risk_factors:
        recommendations.append("Investigate all connection points simultaneously")
    if "Deep multi-hop connections (3+ hops)" in risk_factors:
        recommendations.append("Address upstream dependencies first")
    if intelligence["impact_cascade"]["affected_supply_chain"]:
        recommendations.append("Supply chain continuity plan activation may be needed")
    if not recommendations:
        recommendations += ["Continue monitoring for changes", "Review standard operating procedures"]
    return recommendations


def _max_or_zero(values) -> float:
    values = [float(v) for v in values]
    return max(values) if values else 0.0


def predict_cascade(
    intelligence: Optional[Dict[str, Any]],
    network_metrics: Optional[Dict[str, Any]],
    temporal: Optional[Dict[str, Any]],
    multi_hop: Optional[List[Dict[str, Any]]],
    rng: Optional[np.random.Generator] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Dict[str, Any]:
    """Return a CascadePrediction; never raises."""
    if not intelligence or not network_metrics:
        logger.warning("Cascade prediction degraded: insufficient data")
        return default_prediction("insufficient_data")

    try:
        rng = rng if rng is not None else np.random.default_rng()
        weights = config.prediction_weights

        base_risk = float(intelligence["risk_assessment"]["overall_risk"])
        cascade_impact = float(intelligence["impact_cascade"]["cascading_impact"])
        total_factors = int(intelligence["impact_cascade"]["total_factors"])

        top_centrality = _max_or_zero(network_metrics.get("centrality_scores", {}).values())
        path_count = len(network_metrics.get("critical_paths", []))

        temporal = temporal or {}
        leading = len(temporal.get("leading_indicators", []))
        causal = len(temporal.get("causal_relationships", []))

        paths = multi_hop or []
        max_hops = int(_max_or_zero(p.get("hops", 0) for p in paths))
        compound = _max_or_zero(p.get("compound_risk", 0) for p in paths)

        components = {
            "base_risk": base_risk,
            "cascade_impact": cascade_impact,
            "network_centrality": top_centrality * 100,
            "critical_paths": min(path_count * 10, 100),
            "temporal_signals": leading * 10,
            "hop_complexity": min(max_hops * 20, 100),
            "compound_risk": compound,
        }
        likelihood = sum(components[k] * weights.get(k, 0.0) for k in components)
        likelihood = min(max(likelihood, 0.0), 100.0)

        impact = min(cascade_impact + base_risk * config.impact_base_risk_weight, 100.0)

        days = estimate_time_to_cascade(
            base_risk, total_factors, causal, rng, config.deterministic_time_to_cascade
        )
        risk_factors = identify_risk_factors(
            intelligence, top_centrality, path_count, leading, max_hops
        )

        return {
            "likelihood_score": int(round(likelihood)),
            "predicted_impact": int(round(impact)),
            "time_to_cascade_days": round(days, 1),
            "confidence_interval": confidence_interval(total_factors, leading, causal),
            "similar_historical_cases": similar_cases(base_risk, cascade_impact, path_count),
            "risk_factors": risk_factors,
            "mitigation_recommendations": mitigation_recommendations(
                likelihood, impact, risk_factors, intelligence
            ),
        }
    except Exception as exc:
        logger.error("Cascade prediction failed: %s", exc)
        return default_prediction("error")
