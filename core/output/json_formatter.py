"""
JSON Output Formatter.

Shapes analysis results into the structures returned to callers:

    network metrics  {pagerank_scores, centrality_scores, communities,
                      critical_paths, clustering_coefficient, graph_summary}
    prediction       CascadePrediction with every score clamped to [0, 100]

Scores are rounded for display; ordering of nodes follows the graph.

Time Complexity: O(V + P)
Memory: O(V + P)
"""

from typing import Any, Dict, List

SCORE_DECIMALS = 6


def _round_scores(scores: Dict[str, float]) -> Dict[str, float]:
    return {str(node): round(float(value), SCORE_DECIMALS) for node, value in scores.items()}


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def format_network_metrics(
    pagerank: Dict[str, float],
    centrality: Dict[str, float],
    communities: List[Dict[str, Any]],
    critical_paths: List[Dict[str, Any]],
    clustering_coefficient: float,
    graph_summary: Dict[str, Any],
) -> Dict[str, Any]:
    """Build the network metrics payload."""
    return {
        "pagerank_scores": _round_scores(pagerank),
        "centrality_scores": _round_scores(centrality),
        "communities": communities,
        "critical_paths": critical_paths,
        "clustering_coefficient": clustering_coefficient,
        "graph_summary": graph_summary,
    }


def format_prediction(prediction: Dict[str, Any]) -> Dict[str, Any]:
    """Clamp prediction scores and keep the interval ordered."""
    interval = prediction.get("confidence_interval", {})
    lower = _clamp(float(interval.get("lower", 0)))
    upper = _clamp(float(interval.get("upper", 100)))
    if lower > upper:
        lower, upper = upper, lower

    formatted = dict(prediction)
    formatted["likelihood_score"] = _clamp(prediction["likelihood_score"])
    formatted["predicted_impact"] = _clamp(prediction["predicted_impact"])
    formatted["time_to_cascade_days"] = max(float(prediction["time_to_cascade_days"]), 0.1)
    formatted["confidence_interval"] = {"lower": lower, "upper": upper}
    return formatted
