"""
Unit Tests for risk scoring, interconnected intelligence and cascade
prediction.

Validates sub-score clamping against hostile detail values, ranking,
prioritization reasons, connected-factor collection and the degraded and
deterministic prediction paths.
"""

import os
import sys

# Ensure project root is on sys.path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from app.config import DEFAULT_CONFIG
from core.models.records import Alert, Product
from core.prediction.cascade_predictor import (
    cascade_tier,
    confidence_interval,
    estimate_time_to_cascade,
    is_degraded,
    predict_cascade,
)
from core.risk.connection_analysis import analyze_interconnected, cascading_impact
from core.risk.risk_scorer import (
    COMPONENTS,
    calculate_risk_scores,
    clamp_score,
    risk_analysis,
    round_half_up,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


# ── Synthetic Datasets ────────────────────────────────────────────────


def _alert(alert_id, anomaly_type, days_ago=0.0, product_id=None, severity="medium",
           status="new", **details):
    created = NOW - timedelta(days=days_ago)
    return Alert(
        id=alert_id,
        created_at=created,
        status=status,
        anomaly={
            "id": f"AN_{alert_id}",
            "type": anomaly_type,
            "severity": severity,
            "product_id": product_id,
            "detected_at": created,
            "details": details,
        },
    )


def _products():
    return [
        Product(id="P1", hs_code="8471", category="Electronics"),
        Product(id="P2", hs_code="0901", category="Agriculture"),
    ]


def _intelligence(overall=50, impact=40, factors=3, affected=False):
    return {
        "risk_assessment": {"overall_risk": overall, "risk_factors": [], "mitigation_priority": "medium"},
        "impact_cascade": {
            "cascading_impact": impact,
            "total_factors": factors,
            "affected_supply_chain": affected,
        },
    }


def _network(centrality=None, paths=2):
    return {
        "centrality_scores": centrality if centrality is not None else {"a": 1.0, "b": 0.0},
        "critical_paths": [{"from": "a", "to": "b", "impact": 0.1, "path": ["a", "b"]}] * paths,
    }


# ── Risk Scorer Tests ─────────────────────────────────────────────────


class TestRiskScorer:
    def test_composite_and_breakdown(self):
        alerts = [
            _alert("A", "price_spike", 0, "P1", percentage_change=80, volume_surge=5, z_score=3),
            _alert("B", "customs_delay", 1, "P1"),
        ]
        scores = calculate_risk_scores(alerts, _products())
        top = scores[0]
        assert top["alert_id"] == "A"
        assert top["composite_risk_score"] == 35
        assert top["risk_level"] == "medium"
        assert top["risk_breakdown"] == {
            "price_deviation": 40,
            "volume_surge": 50,
            "fx_exposure": 0,
            "supply_chain_risk": 30,
            "historical_volatility": 45,
        }
        assert top["prioritization_reason"] == (
            "Significant volume surge · High statistical deviation (Z-score: 3.00)"
        )
        assert scores[1]["prioritization_reason"] == "Medium priority risk"

    def test_critical_reason(self):
        alerts = [
            _alert("A", "tariff_change", 0, percentage_change=100, volume_surge=10,
                   z_score=10, currency_risk=5),
        ]
        score = calculate_risk_scores(alerts, _products())[0]
        assert score["composite_risk_score"] == 80
        assert score["risk_level"] == "critical"
        assert score["prioritization_reason"].startswith("CRITICAL RISK")

    def test_hostile_details_stay_bounded(self):
        alerts = [
            _alert("A", "price_spike", 0, "P1", percentage_change=float("inf"),
                   volume_surge=-5, z_score=float("nan"), currency_risk=1e308),
            _alert("B", "fx_volatility", 0, "P2", volatility=1e6, volume_surge=1e6),
            _alert("C", "tariff_change", 0, percentage_change=-1e9),
        ]
        for score in calculate_risk_scores(alerts, _products()):
            assert 0 <= score["composite_risk_score"] <= 100
            for key in COMPONENTS:
                assert 0 <= score["risk_breakdown"][key] <= 100

    def test_ranking_consistent(self):
        alerts = [
            _alert(f"A{i}", "price_spike", i, "P2", percentage_change=10 * i, z_score=i % 3)
            for i in range(8)
        ]
        scores = calculate_risk_scores(alerts, _products())
        assert [s["ranking"] for s in scores] == list(range(1, 9))
        composites = [s["composite_risk_score"] for s in scores]
        assert composites == sorted(composites, reverse=True)

    def test_ties_keep_store_order(self):
        alerts = [_alert("X", "customs_delay", 0), _alert("Y", "customs_delay", 1)]
        scores = calculate_risk_scores(alerts, _products())
        assert [s["alert_id"] for s in scores] == ["X", "Y"]

    def test_resolved_excluded(self):
        alerts = [
            _alert("A", "price_spike", 0, status="resolved", percentage_change=50),
            _alert("B", "price_spike", 0, percentage_change=10),
        ]
        scores = calculate_risk_scores(alerts, _products())
        assert [s["alert_id"] for s in scores] == ["B"]

    def test_empty(self):
        assert calculate_risk_scores([], _products()) == []

    def test_helpers(self):
        assert round_half_up(34.5) == 35
        assert round_half_up(2.5) == 3
        assert clamp_score(None) == 0.0
        assert clamp_score(float("inf")) == 0.0
        assert clamp_score(-3) == 0.0
        assert clamp_score(250) == 100.0


class TestRiskAnalysis:
    def test_none_when_empty(self):
        assert risk_analysis([]) is None

    def test_distribution(self):
        alerts = [
            _alert("A", "tariff_change", 0, percentage_change=100, volume_surge=10,
                   z_score=10, currency_risk=5),
        ] + [_alert(f"L{i}", "customs_delay", i) for i in range(6)]
        scores = calculate_risk_scores(alerts, _products())
        analysis = risk_analysis(scores)
        assert sum(analysis["risk_distribution"].values()) == 7
        assert analysis["risk_distribution"]["critical"] == 1
        assert len(analysis["top_risks"]) == 5
        assert analysis["recommendations"][0].startswith("URGENT: 1 critical")


# ── Connection Analysis Tests ─────────────────────────────────────────


class TestConnectionAnalysis:
    def _scenario(self):
        seed = _alert("S", "price_spike", 0, "P1", percentage_change=30, country="CN")
        related = [
            _alert("B", "freight_surge", 1, "P1", percentage_change=25),
            _alert("C", "fx_volatility", 2, "P7", percentage_change=12, country="CN"),
            _alert("D", "customs_delay", 3, "P8", country="DE"),
        ]
        return seed, related

    def test_missing_seed(self):
        assert analyze_interconnected(None, [], NOW) is None

    def test_factors_deduplicated(self):
        seed, related = self._scenario()
        result = analyze_interconnected(seed, related, NOW)
        ids = [f["id"] for f in result["connected_factors"]]
        assert sorted(ids) == ["B", "C"]
        assert len(ids) == len(set(ids))
        by_id = {f["id"]: f for f in result["connected_factors"]}
        assert by_id["B"]["details"]["circular_dependency"] is True
        assert by_id["B"]["correlation_score"] == 0.65

    def test_impact_and_assessment(self):
        seed, related = self._scenario()
        result = analyze_interconnected(seed, related, NOW)
        cascade = result["impact_cascade"]
        assert cascade["total_factors"] == 2
        assert cascade["affected_supply_chain"] is True
        assert cascade["cascading_impact"] == pytest.approx(42.0)
        assessment = result["risk_assessment"]
        assert assessment["overall_risk"] == pytest.approx(62.0)
        assert assessment["mitigation_priority"] == "high"

    def test_recommended_actions(self):
        seed, related = self._scenario()
        actions = analyze_interconnected(seed, related, NOW)["recommended_actions"]
        assert actions[0] == "Review supplier pricing agreements for sudden changes"
        assert "Investigate freight route alternatives to reduce costs" in actions
        assert len(actions) <= 5

    def test_critical_seed(self):
        seed = _alert("S", "tariff_change", 0, severity="critical")
        assessment = analyze_interconnected(seed, [], NOW)["risk_assessment"]
        assert assessment["overall_risk"] == 90
        assert assessment["mitigation_priority"] == "critical"

    def test_historical_pattern(self):
        seed = _alert("S", "price_spike", 0)
        related = [_alert(f"H{i}", "customs_delay", 20 + i) for i in range(3)]
        factors = analyze_interconnected(seed, related, NOW)["connected_factors"]
        assert len(factors) == 3
        assert all(f["details"]["historical_pattern"] for f in factors)
        assert all(f["details"]["occurrences"] == 3 for f in factors)

    def test_cascading_impact(self):
        assert cascading_impact([]) == 0.0
        assert cascading_impact([{"severity": "medium"}]) == pytest.approx(36.0)
        assert cascading_impact([{"severity": "high"}, {"severity": "low"}]) == 100.0

    def test_configured_factor_scores(self):
        seed, related = self._scenario()
        scores = {**DEFAULT_CONFIG.connection_factor_scores, "circular": 0.95}
        config = replace(DEFAULT_CONFIG, connection_factor_scores=scores)
        result = analyze_interconnected(seed, related, NOW, config)
        by_id = {f["id"]: f for f in result["connected_factors"]}
        assert by_id["B"]["correlation_score"] == 0.95

    def test_configured_historical_threshold(self):
        seed = _alert("S", "price_spike", 0)
        related = [_alert(f"H{i}", "customs_delay", 20 + i) for i in range(3)]
        config = replace(DEFAULT_CONFIG, historical_min_occurrences=4)
        assert analyze_interconnected(seed, related, NOW, config)["connected_factors"] == []

    def test_configured_severity_base(self):
        config = replace(DEFAULT_CONFIG, connection_severity_base={"medium": 50})
        assert cascading_impact([{"severity": "medium"}], config) == pytest.approx(60.0)


# ── Cascade Predictor Tests ───────────────────────────────────────────


class TestCascadePredictor:
    def test_default_on_missing_inputs(self):
        prediction = predict_cascade(None, None, None, None)
        assert prediction["likelihood_score"] == 50
        assert prediction["predicted_impact"] == 50
        assert prediction["time_to_cascade_days"] == 30
        assert prediction["risk_factors"] == ["Unable to analyze: insufficient_data"]

    def test_weighted_prediction(self):
        config = replace(DEFAULT_CONFIG, deterministic_time_to_cascade=True)
        temporal = {"leading_indicators": [{"type": "freight_surge"}], "causal_relationships": []}
        multi_hop = [{"hops": 3, "compound_risk": 100}, {"hops": 1, "compound_risk": 55}]
        prediction = predict_cascade(
            _intelligence(), _network(), temporal, multi_hop, config=config
        )
        assert prediction["likelihood_score"] == 51
        assert prediction["predicted_impact"] == 50
        assert prediction["time_to_cascade_days"] == 29.0
        assert prediction["confidence_interval"] == {"lower": 20, "upper": 60}
        assert prediction["risk_factors"] == [
            "High network centrality",
            "Leading indicators detected",
            "Deep multi-hop connections (3+ hops)",
        ]
        assert prediction["similar_historical_cases"][0]["similarity"] == 40
        assert prediction["mitigation_recommendations"] == ["Address upstream dependencies first"]

    def test_scores_capped(self):
        prediction = predict_cascade(
            _intelligence(overall=100, impact=100, factors=30, affected=True),
            _network(paths=20),
            {"leading_indicators": [{}] * 20, "causal_relationships": [{}] * 5},
            [{"hops": 5, "compound_risk": 100}],
            rng=np.random.default_rng(7),
        )
        assert 0 <= prediction["likelihood_score"] <= 100
        assert 0 <= prediction["predicted_impact"] <= 100
        assert prediction["confidence_interval"] == {"lower": 80, "upper": 100}
        assert 1.0 <= prediction["time_to_cascade_days"] <= 8.0

    def test_malformed_intelligence(self):
        prediction = predict_cascade({"unexpected": True}, _network(), None, None)
        assert prediction["risk_factors"] == ["Unable to analyze: error"]

    def test_unexpected_metrics_shape(self):
        network = {"centrality_scores": [0.4], "critical_paths": []}
        prediction = predict_cascade(_intelligence(), network, None, None)
        assert prediction["risk_factors"] == ["Unable to analyze: error"]
        assert is_degraded(prediction)
        assert not is_degraded(predict_cascade(_intelligence(), _network(), None, None))

    def test_tiers(self):
        assert cascade_tier(85, 0, 0) == (1.0, 8.0)
        assert cascade_tier(65, 0, 0) == (7.0, 21.0)
        assert cascade_tier(10, 11, 0) == (7.0, 21.0)
        assert cascade_tier(10, 0, 6) == (7.0, 28.0)
        assert cascade_tier(10, 0, 0) == (30.0, 60.0)

    def test_seeded_time_within_tier(self):
        rng = np.random.default_rng(42)
        for _ in range(20):
            days = estimate_time_to_cascade(85, 0, 0, rng)
            assert 1.0 <= days <= 8.0
        assert estimate_time_to_cascade(85, 0, 0, rng, deterministic=True) == 4.5

    def test_confidence_interval(self):
        assert confidence_interval(2, 1, 1) == {"lower": 20, "upper": 60}
        assert confidence_interval(5, 0, 0) == {"lower": 40, "upper": 80}
        assert confidence_interval(8, 1, 1) == {"lower": 60, "upper": 90}
        assert confidence_interval(20, 0, 0) == {"lower": 80, "upper": 100}
