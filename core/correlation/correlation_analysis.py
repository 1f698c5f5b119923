"""
Correlation Analysis — product, sector, matrix and breakdown views.

Works on shipments already restricted to the analysis window. Price series
are grouped per product in shipment-date order; products are compared in
order of first appearance and only one direction of each pair is kept.

Time Complexity: O(P² × n), P = products, n = series length
Memory: O(P × n)
"""

import logging
from collections import OrderedDict
from itertools import combinations
from typing import Any, Dict, List, Sequence

from app.config import DEFAULT_CONFIG, EngineConfig
from core.correlation.pearson import pearson
from core.models.records import Product, Shipment

logger = logging.getLogger(__name__)


def build_price_series(
    shipments: Sequence[Shipment], products: Sequence[Product]
) -> "OrderedDict[str, List[float]]":
    """Chronological price series for every known product with shipments."""
    known = {p.id for p in products}
    series: "OrderedDict[str, List[float]]" = OrderedDict()
    for shipment in sorted(shipments, key=lambda s: s.shipment_date):
        if shipment.product_id not in known:
            continue
        series.setdefault(shipment.product_id, []).append(float(shipment.price))
    return series


def correlation_strength(corr: float, config: EngineConfig = DEFAULT_CONFIG) -> str:
    magnitude = abs(corr)
    if magnitude < config.correlation_moderate:
        return "weak"
    if magnitude < config.correlation_strong:
        return "moderate"
    return "strong"


def correlation_type(corr: float, config: EngineConfig = DEFAULT_CONFIG) -> str:
    # Only |corr| above the threshold is ever retained, so "neutral" never
    # reaches the output under the default thresholds.
    if corr > config.correlation_threshold:
        return "positive"
    if corr < -config.correlation_threshold:
        return "negative"
    return "neutral"


def interpret(corr: float, strength: str, category_a: str, category_b: str) -> str:
    if category_a == category_b:
        if strength == "strong":
            direction = "positive" if corr > 0 else "negative"
            return (
                f"Strong {direction} correlation within {category_a} sector - "
                "products move together in price"
            )
        return f"{strength.capitalize()} correlation within {category_a} sector"

    if corr > 0.5:
        return (
            f"Products from {category_a} and {category_b} tend to move together - "
            "likely shared supply chain or market factors"
        )
    if corr < -0.5:
        return (
            f"Products from {category_a} and {category_b} move inversely - "
            "potential substitution effect"
        )
    return f"Weak correlation between {category_a} and {category_b}"


def analyze_correlations(
    products: Sequence[Product],
    shipments: Sequence[Shipment],
    config: EngineConfig = DEFAULT_CONFIG,
) -> List[Dict[str, Any]]:
    """Pairwise price correlations above the threshold, strongest first."""
    by_id = {p.id: p for p in products}
    series = build_price_series(shipments, products)

    results: List[Dict[str, Any]] = []
    for id_a, id_b in combinations(series.keys(), 2):
        corr = pearson(series[id_a], series[id_b])
        if abs(corr) <= config.correlation_threshold:
            continue
        a, b = by_id[id_a], by_id[id_b]
        strength = correlation_strength(corr, config)
        results.append(
            {
                "product_a": a.summary(),
                "product_b": b.summary(),
                "correlation_coefficient": round(corr, 6),
                "correlation_type": correlation_type(corr, config),
                "strength": strength,
                "interpretation": interpret(corr, strength, a.category, b.category),
            }
        )

    results.sort(key=lambda r: abs(r["correlation_coefficient"]), reverse=True)
    return results


def sector_correlations(
    products: Sequence[Product],
    shipments: Sequence[Shipment],
    config: EngineConfig = DEFAULT_CONFIG,
) -> List[Dict[str, Any]]:
    """Per-category summary of strong intra-sector correlations."""
    categories = list(OrderedDict.fromkeys(p.category for p in products))

    sectors: List[Dict[str, Any]] = []
    for category in categories:
        members = [p for p in products if p.category == category]
        strong = [
            c for c in analyze_correlations(members, shipments, config) if c["strength"] == "strong"
        ]
        if not strong:
            continue

        correlated = [
            {
                "product_id": c["product_b"]["id"],
                "hs_code": c["product_b"]["hs_code"],
                "correlation": c["correlation_coefficient"],
            }
            for c in strong
        ]
        avg = sum(c["correlation"] for c in correlated) / len(correlated)
        if avg > config.sector_trend_threshold:
            trend = "up"
        elif avg < -config.sector_trend_threshold:
            trend = "down"
        else:
            trend = "stable"

        if len(correlated) > config.sector_high_count:
            significance = "high"
        elif len(correlated) > config.sector_medium_count:
            significance = "medium"
        else:
            significance = "low"

        sectors.append(
            {
                "sector": category,
                "correlated_products": correlated[: config.sector_product_limit],
                "trend_direction": trend,
                "significance": significance,
            }
        )

    return sectors


def _matrix_insights(correlations: List[Dict[str, Any]], products: Sequence[Product]) -> List[str]:
    insights: List[str] = []
    strong = [c for c in correlations if c["strength"] == "strong"]
    if strong:
        insights.append(
            f"Found {len(strong)} strong product correlations - "
            "these items tend to move together in price"
        )

    negative = [c for c in strong if c["correlation_type"] == "negative"]
    if negative:
        insights.append(
            f"{len(negative)} strong negative correlations detected - "
            "potential substitution effects or inverse price relationships"
        )

    for category in OrderedDict.fromkeys(p.category for p in products):
        ids = {p.id for p in products if p.category == category}
        count = sum(
            1 for c in strong if c["product_a"]["id"] in ids or c["product_b"]["id"] in ids
        )
        if count > 2:
            insights.append(
                f"{category} sector shows {count} strong internal correlations - high sector cohesion"
            )
    return insights


def correlation_matrix(
    selected: Sequence[Product],
    correlations: List[Dict[str, Any]],
) -> Dict[str, Any]:
    """n×n matrix over the selected products with 1 on the diagonal."""
    lookup: Dict[frozenset, float] = {
        frozenset({c["product_a"]["id"], c["product_b"]["id"]}): c["correlation_coefficient"]
        for c in correlations
    }
    matrix = [
        [1.0 if i == j else lookup.get(frozenset({a.id, b.id}), 0.0) for j, b in enumerate(selected)]
        for i, a in enumerate(selected)
    ]
    return {
        "products": [p.summary() for p in selected],
        "matrix": matrix,
        "insights": _matrix_insights(correlations, selected),
    }


def cross_sector_anomalies(
    correlations: List[Dict[str, Any]],
    recent_shipments: Sequence[Shipment],
    config: EngineConfig = DEFAULT_CONFIG,
) -> List[Dict[str, Any]]:
    """Flag strong pairs whose recent correlation diverges from the window-wide one."""
    recent: Dict[str, List[float]] = {}
    for shipment in sorted(recent_shipments, key=lambda s: s.shipment_date):
        recent.setdefault(shipment.product_id, []).append(float(shipment.price))

    anomalies: List[Dict[str, Any]] = []
    for c in correlations:
        if c["strength"] != "strong":
            continue
        prices_a = recent.get(c["product_a"]["id"])
        prices_b = recent.get(c["product_b"]["id"])
        if not prices_a or not prices_b:
            continue

        recent_corr = pearson(prices_a, prices_b)
        baseline = c["correlation_coefficient"]
        if abs(recent_corr - baseline) > config.breakdown_delta:
            anomalies.append(
                {
                    "product_id": c["product_a"]["id"],
                    "anomaly_type": "correlation_breakdown",
                    "description": (
                        f"Strong correlation with {c['product_b']['hs_code']} ({baseline:.2f}) "
                        f"has broken down (recent: {recent_corr:.2f}) - potential market disruption"
                    ),
                    "severity": "high",
                }
            )
    logger.debug("Correlation breakdown check flagged %d products", len(anomalies))
    return anomalies
