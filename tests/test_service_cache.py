"""
Tests for the analysis cache, alert stores and the analysis service.

Uses a fake monotonic clock for TTL behavior and a fixed wall clock for
window-dependent service calls.
"""

import os
import sys
import threading

# Ensure project root is on sys.path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from app.config import DEFAULT_CONFIG
from core.cache.analysis_cache import AnalysisCache
from core.models.records import Alert, Product, Shipment
from core.prediction.cascade_predictor import is_degraded
from services.analysis_service import AnalysisService
from utils.alert_store import InMemoryAlertStore, SqliteAlertStore
from utils.metrics import MetricsTracker
from utils.validators import (
    validate_alert_ids,
    validate_correlation_view,
    validate_product_ids,
    validate_window,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


# ── Synthetic Datasets ────────────────────────────────────────────────


class _Clock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class _FailingStore:
    def get_alert(self, alert_id):
        raise RuntimeError("store unavailable")

    def list_alerts(self, **kwargs):
        raise RuntimeError("store unavailable")

    def list_products(self, **kwargs):
        raise RuntimeError("store unavailable")

    def list_shipments(self, **kwargs):
        raise RuntimeError("store unavailable")


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


def _scenario_store():
    alerts = [
        _alert("A", "price_spike", 1, "P1", percentage_change=30),
        _alert("B", "freight_surge", 2, "P1", percentage_change=25),
        _alert("C", "fx_volatility", 3, "P2", percentage_change=12),
        _alert("D", "customs_delay", 40, "P3"),
    ]
    products = [
        Product(id="P1", hs_code="8471", category="Electronics"),
        Product(id="P2", hs_code="8517", category="Electronics"),
        Product(id="P3", hs_code="7208", category="Steel & Metals"),
    ]
    shipments = []
    for i in range(6):
        day = NOW - timedelta(days=20 - i)
        shipments.append(Shipment(product_id="P1", price=10 + i, shipment_date=day))
        shipments.append(Shipment(product_id="P2", price=20 + 2 * i, shipment_date=day))
        shipments.append(Shipment(product_id="P3", price=30 - i, shipment_date=day))
    return InMemoryAlertStore(alerts, products, shipments)


class _FlakyStore:
    """Scenario store whose named reads fail until recover() is called."""

    def __init__(self, *failing):
        self.inner = _scenario_store()
        self.failing = set(failing)

    def recover(self):
        self.failing.clear()

    def _read(self, name, *args, **kwargs):
        if name in self.failing:
            raise RuntimeError("store unavailable")
        return getattr(self.inner, name)(*args, **kwargs)

    def get_alert(self, alert_id):
        return self._read("get_alert", alert_id)

    def list_alerts(self, **kwargs):
        return self._read("list_alerts", **kwargs)

    def list_products(self, **kwargs):
        return self._read("list_products", **kwargs)

    def list_shipments(self, **kwargs):
        return self._read("list_shipments", **kwargs)


class _RacingDict(dict):
    """Entry map where another thread always removes a key just before pop."""

    def pop(self, key, *default):
        dict.pop(self, key, None)
        return dict.pop(self, key, *default)


def _service(store=None, **kwargs):
    config = replace(DEFAULT_CONFIG, deterministic_time_to_cascade=True)
    return AnalysisService(
        store if store is not None else _scenario_store(),
        cache=AnalysisCache(),
        config=config,
        clock=lambda: NOW,
        rng=np.random.default_rng(0),
        **kwargs,
    )


# ── Cache Tests ───────────────────────────────────────────────────────


class TestAnalysisCache:
    def test_key_is_deterministic(self):
        a = AnalysisCache.make_key("graph", "A", window=30, full_network=False)
        b = AnalysisCache.make_key("graph", "A", full_network=False, window=30)
        c = AnalysisCache.make_key("graph", "A", window=60, full_network=False)
        assert a == b
        assert a != c
        assert a.startswith("graph:A:")

    def test_ttl_expiry(self):
        clock = _Clock()
        cache = AnalysisCache(default_ttl=900, clock=clock)
        cache.set("k", {"v": 1})
        clock.advance(899)
        assert cache.get("k") == {"v": 1}
        clock.advance(2)
        assert cache.get("k") is None
        assert cache.has("k") is False

    def test_custom_ttl(self):
        clock = _Clock()
        cache = AnalysisCache(default_ttl=900, clock=clock)
        cache.set("k", 1, ttl=10)
        clock.advance(11)
        assert cache.get("k") is None

    def test_returns_same_object(self):
        cache = AnalysisCache()
        value = {"nodes": []}
        cache.set("k", value)
        assert cache.get("k") is value

    def test_invalidate_by_alert(self):
        cache = AnalysisCache()
        cache.set(cache.make_key("graph", "A", window=30), 1)
        cache.set(cache.make_key("temporal", "A", window=90), 2)
        cache.set(cache.make_key("graph", "B", window=30), 3)
        cache.set(cache.make_key("risk_scores", None, limit=500), 4)
        assert cache.invalidate("A") == 2
        assert cache.stats()["size"] == 2
        assert cache.invalidate("A") == 0

    def test_invalidate_id_with_colon(self):
        cache = AnalysisCache()
        cache.set(cache.make_key("graph", "ns:42", window=30), 1)
        assert cache.invalidate("ns:42") == 1

    def test_opportunistic_sweep(self):
        clock = _Clock()
        cache = AnalysisCache(default_ttl=900, sweep_interval=300, clock=clock)
        cache.set("old", 1, ttl=10)
        clock.advance(301)
        cache.set("new", 2)
        assert cache.stats()["size"] == 1

    def test_cleanup(self):
        clock = _Clock()
        cache = AnalysisCache(default_ttl=5, sweep_interval=10_000, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2, ttl=100)
        clock.advance(6)
        assert cache.cleanup() == 1
        assert cache.has("b")

    def test_stats(self):
        cache = AnalysisCache()
        cache.set("k", 1)
        cache.get("k")
        cache.get("missing")
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5
        cache.clear()
        assert cache.stats()["size"] == 0

    def test_get_or_compute(self):
        cache = AnalysisCache()
        calls = []

        def compute():
            calls.append(1)
            return {"x": len(calls)}

        first = cache.get_or_compute("k", compute)
        second = cache.get_or_compute("k", compute)
        assert first is second
        assert len(calls) == 1

    def test_none_not_cached(self):
        cache = AnalysisCache()
        calls = []

        def compute():
            calls.append(1)
            return None

        cache.get_or_compute("k", compute)
        cache.get_or_compute("k", compute)
        assert len(calls) == 2

    def test_rejected_results_not_cached(self):
        cache = AnalysisCache()
        calls = []

        def compute():
            calls.append(1)
            return []

        cache.get_or_compute("k", compute, cacheable=lambda value: bool(value))
        cache.get_or_compute("k", compute, cacheable=lambda value: bool(value))
        assert len(calls) == 2
        assert cache.stats()["size"] == 0

    def test_expired_key_removed_by_another_thread(self):
        cache = AnalysisCache(default_ttl=10, clock=lambda: 0.0)

        def racing_clock():
            cache._entries.clear()
            return 100.0

        for lookup in (cache.get, cache.has):
            cache._clock = lambda: 0.0
            cache.set("k", 1)
            cache._clock = racing_clock
            assert not lookup("k")

    def test_removals_tolerate_missing_keys(self):
        clock = _Clock()
        cache = AnalysisCache(default_ttl=5, sweep_interval=10_000, clock=clock)
        cache._entries = _RacingDict()
        cache.set(cache.make_key("graph", "A", window=30), 1)
        cache.set(cache.make_key("graph", "B", window=30), 2)
        assert cache.invalidate("A") == 0
        clock.advance(6)
        assert cache.cleanup() == 0
        assert cache.stats()["size"] == 0

    def test_cleanup_during_concurrent_writes(self):
        cache = AnalysisCache(default_ttl=0, sweep_interval=10_000)
        errors = []

        def writer(prefix):
            try:
                for i in range(2000):
                    cache.set(f"{prefix}:{i}", i)
            except Exception as exc:
                errors.append(exc)

        def sweeper():
            try:
                for _ in range(500):
                    cache.cleanup()
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=writer, args=(n,)) for n in "abc"]
        threads.append(threading.Thread(target=sweeper))
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)
        assert errors == []

    def test_sweeper_survives_failed_sweep(self):
        cache = AnalysisCache(sweep_interval=0.01)
        calls = []

        def flaky_cleanup():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("sweep failed")
            cache.stop_periodic_cleanup()
            return 0

        cache.cleanup = flaky_cleanup
        thread = cache.start_periodic_cleanup()
        thread.join(timeout=2)
        assert not thread.is_alive()
        assert len(calls) == 2

    def test_periodic_sweeper(self):
        cache = AnalysisCache(sweep_interval=0.01)
        thread = cache.start_periodic_cleanup()
        assert thread.daemon and thread.is_alive()
        assert cache.start_periodic_cleanup() is thread
        cache.stop_periodic_cleanup()
        thread.join(timeout=2)
        assert not thread.is_alive()


# ── Validator & Metrics Tests ─────────────────────────────────────────


class TestValidators:
    def test_window(self):
        assert validate_window(30) == 30
        assert validate_window("7") == 7
        for bad in (0, -1, 366, 1.5, True, "abc", None):
            with pytest.raises(ValueError):
                validate_window(bad)

    def test_product_ids(self):
        assert validate_product_ids(["P1", " P2 ", "P1"]) == ["P1", "P2"]
        with pytest.raises(ValueError):
            validate_product_ids([])

    def test_correlation_view(self):
        assert validate_correlation_view("matrix") == "matrix"
        with pytest.raises(ValueError):
            validate_correlation_view("pairs")

    def test_alert_ids(self):
        assert validate_alert_ids([" A ", "B"]) == ["A", "B"]
        for bad in ([], None, "A", ["A", " "], [f"A{i}" for i in range(51)]):
            with pytest.raises(ValueError):
                validate_alert_ids(bad)


class TestMetricsTracker:
    def test_lifecycle(self):
        tracker = MetricsTracker()
        assert tracker.get_metrics() == {"status": "no_processing_yet", "total_runs": 0}
        tracker.record("graph", 0.5)
        tracker.record("graph", 0.1, cached=True)
        metrics = tracker.get_metrics()
        assert metrics["status"] == "ready"
        assert metrics["analyses"]["graph"] == {
            "runs": 2,
            "cache_hits": 1,
            "last_duration_seconds": 0.1,
        }


# ── Alert Store Tests ─────────────────────────────────────────────────


class TestInMemoryAlertStore:
    def test_list_alerts_filters(self):
        store = _scenario_store()
        store.add_alert(_alert("R", "price_spike", 0, status="resolved"))
        recent = store.list_alerts(since=NOW - timedelta(days=30))
        assert [a.id for a in recent] == ["R", "A", "B", "C"]
        active = store.list_alerts(exclude_id="A", include_resolved=False, limit=2)
        assert [a.id for a in active] == ["B", "C"]

    def test_shipments_by_category(self):
        store = _scenario_store()
        rows = store.list_shipments(category="Steel & Metals")
        assert {s.product_id for s in rows} == {"P3"}
        dates = [s.shipment_date for s in rows]
        assert dates == sorted(dates)


class TestSqliteAlertStore:
    def test_round_trip(self, tmp_path):
        store = SqliteAlertStore(tmp_path / "alerts.db")
        store.add_product(Product(id="P1", hs_code="8471", category="Electronics"))
        store.add_alert(_alert("A", "price_spike", 1, "P1", percentage_change=30, previous_price=9.5))
        store.add_alert(_alert("B", "freight_surge", 45, "P1"))
        store.add_shipment(Shipment(product_id="P1", price=12.0, shipment_date=NOW - timedelta(days=2)))

        alert = store.get_alert("A")
        assert alert.anomaly.type == "price_spike"
        assert alert.anomaly.details.percentage_change == 30
        assert alert.anomaly.details.previous_price == 9.5
        assert alert.created_at == NOW - timedelta(days=1)
        assert store.get_alert("missing") is None

        recent = store.list_alerts(since=NOW - timedelta(days=30))
        assert [a.id for a in recent] == ["A"]
        assert [p.id for p in store.list_products(ids=["P1", "P9"])] == ["P1"]
        assert store.list_products(ids=[]) == []
        assert len(store.list_shipments(category="Electronics")) == 1
        assert store.list_shipments(category="Agriculture") == []

    def test_service_over_sqlite(self, tmp_path):
        store = SqliteAlertStore(tmp_path / "alerts.db")
        store.add_alert(_alert("A", "price_spike", 1, "P1"))
        store.add_alert(_alert("B", "freight_surge", 2, "P1"))
        graph = _service(store).build_network_graph("A", 30)
        assert {n["id"] for n in graph["nodes"]} == {"A", "B"}


# ── Analysis Service Tests ────────────────────────────────────────────


class TestAnalysisServiceEmpty:
    def test_missing_alert(self):
        service = _service(InMemoryAlertStore())
        assert service.build_network_graph("missing") is None
        assert service.analyze_network_metrics("missing") is None
        assert service.analyze_interconnected("missing") is None
        assert service.analyze_temporal("missing") is None
        assert service.analyze_multi_hop("missing") == []
        assert service.transitive_risk("missing", "other") is None

    def test_prediction_degrades(self):
        prediction = _service(InMemoryAlertStore()).predict_cascade("missing")
        assert prediction["risk_factors"] == ["Unable to analyze: insufficient_data"]

    def test_empty_correlations(self):
        service = _service(InMemoryAlertStore())
        assert service.analyze_correlations() == []
        assert service.sector_correlations() == []
        assert service.cross_sector_anomalies() == []
        assert service.correlation_matrix(["P1"]) == {"products": [], "matrix": [], "insights": []}
        assert service.calculate_risk_scores() == []
        assert service.risk_analysis() is None

    def test_store_failure_is_no_data(self):
        service = _service(_FailingStore())
        assert service.build_network_graph("A") is None
        assert service.analyze_multi_hop("A") == []
        assert service.calculate_risk_scores() == []
        assert service.analyze_correlations() == []
        assert service.predict_cascade("A")["risk_factors"] == [
            "Unable to analyze: insufficient_data"
        ]

    def test_failed_reads_not_cached(self):
        store = _FlakyStore("get_alert", "list_alerts", "list_products", "list_shipments")
        service = _service(store)
        assert service.analyze_correlations(window=90) == []
        assert service.calculate_risk_scores() == []
        assert is_degraded(service.predict_cascade("A", 30))
        assert service.cache_stats()["size"] == 0

        store.recover()
        assert len(service.analyze_correlations(window=90)) == 3
        assert len(service.calculate_risk_scores()) == 4
        prediction = service.predict_cascade("A", 30)
        assert not is_degraded(prediction)
        assert service.predict_cascade("A", 30) is prediction

    def test_partial_failure_not_cached(self):
        store = _FlakyStore("list_alerts")
        service = _service(store)
        graph = service.build_network_graph("A", 30)
        assert [n["id"] for n in graph["nodes"]] == ["A"]
        store.recover()
        graph = service.build_network_graph("A", 30)
        assert {n["id"] for n in graph["nodes"]} == {"A", "B", "C"}

    def test_invalid_parameters(self):
        service = _service()
        with pytest.raises(ValueError):
            service.build_network_graph("A", 0)
        with pytest.raises(ValueError):
            service.analyze_multi_hop("A", max_hops=0)
        with pytest.raises(ValueError):
            service.analyze_temporal("A", 400)
        with pytest.raises(ValueError):
            service.correlation_matrix([])
        with pytest.raises(ValueError):
            service.build_network_graph("  ")


class TestAnalysisService:
    def test_graph_respects_window(self):
        graph = _service().build_network_graph("A", 30)
        assert {n["id"] for n in graph["nodes"]} == {"A", "B", "C"}

    def test_network_metrics(self):
        metrics = _service().analyze_network_metrics("A", 30)
        assert sum(metrics["pagerank_scores"].values()) == pytest.approx(1.0, abs=1e-4)
        assert metrics["centrality_scores"]["A"] == 1.0
        assert metrics["graph_summary"]["total_nodes"] == 3
        assert set(metrics) == {
            "pagerank_scores",
            "centrality_scores",
            "communities",
            "critical_paths",
            "clustering_coefficient",
            "graph_summary",
        }

    def test_single_node_metrics(self):
        store = InMemoryAlertStore([_alert("A", "price_spike", 1, "P1")])
        metrics = _service(store).analyze_network_metrics("A", 30)
        assert metrics["pagerank_scores"] == {"A": 1.0}
        assert metrics["centrality_scores"] == {"A": 0.0}
        assert metrics["communities"] == []
        assert metrics["critical_paths"] == []

    def test_results_cached_until_invalidated(self):
        service = _service()
        first = service.analyze_network_metrics("A", 30)
        assert service.analyze_network_metrics("A", 30) is first
        assert service.invalidate("A") >= 1
        again = service.analyze_network_metrics("A", 30)
        assert again is not first
        assert again == first

    def test_multi_hop_and_transitive(self):
        service = _service()
        paths = service.analyze_multi_hop("A", 3, 90)
        assert paths
        assert all(p["path"][0] == "A" and 1 <= p["hops"] <= 3 for p in paths)
        risk = service.transitive_risk("A", "C", 3, 90)
        assert risk["path"][0] == "A" and risk["path"][-1] == "C"

    def test_temporal_causal_scenario(self):
        window = 90
        alerts = [
            _alert("S", "price_spike", 1),
            _alert("T1", "tariff_change", window - 33),
            _alert("T2", "tariff_change", window - 34),
            _alert("P1", "price_spike", window - 37),
            _alert("P2", "price_spike", window - 38),
            _alert("C1", "customs_delay", window - 70),
        ]
        temporal = _service(InMemoryAlertStore(alerts)).analyze_temporal("S", window)
        assert {"cause": "tariff_change", "effect": "price_spike", "confidence": 90.0,
                "lag_days": 18} in temporal["causal_relationships"]

    def test_connections(self):
        result = _service().analyze_interconnected("A", 30)
        assert result["primary_alert"]["id"] == "A"
        assert {f["id"] for f in result["connected_factors"]} == {"B", "C"}

    def test_connections_batch(self):
        batch = _service().analyze_interconnected_batch(["A", "missing", "B"], 30)
        assert batch["total_alerts"] == 3
        assert batch["successful"] == 2
        assert [r["alert_id"] for r in batch["results"]] == ["A", "B"]
        assert batch["errors"] == [{"alert_id": "missing", "error": "Failed to analyze"}]
        single = _service().analyze_interconnected("A", 30)
        assert batch["results"][0]["overall_risk"] == single["risk_assessment"]["overall_risk"]

    def test_correlations(self):
        service = _service()
        correlations = service.analyze_correlations(window=90)
        assert len(correlations) == 3
        electronics = service.analyze_correlations(category="Electronics", window=90)
        assert len(electronics) == 1
        matrix = service.correlation_matrix(["P1", "P3", "P9"], 90)
        assert [p["id"] for p in matrix["products"]] == ["P1", "P3"]
        assert matrix["matrix"][0][1] == pytest.approx(-1.0)

    def test_risk_scores(self):
        scores = _service().calculate_risk_scores()
        assert [s["ranking"] for s in scores] == [1, 2, 3, 4]
        assert all(0 <= s["composite_risk_score"] <= 100 for s in scores)

    def test_prediction(self):
        prediction = _service().predict_cascade("A", 30)
        assert 0 <= prediction["likelihood_score"] <= 100
        assert 0 <= prediction["predicted_impact"] <= 100
        assert prediction["time_to_cascade_days"] > 0
        interval = prediction["confidence_interval"]
        assert interval["lower"] <= interval["upper"]

    def test_metrics_recorded(self):
        tracker = MetricsTracker()
        service = _service(metrics=tracker)
        service.build_network_graph("A", 30)
        service.build_network_graph("A", 30)
        stats = tracker.get_metrics()["analyses"]["graph"]
        assert stats["runs"] == 2
        assert stats["cache_hits"] == 1
