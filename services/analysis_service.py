"""
Analysis Service — caller-facing orchestrator.

Coordinates every analysis entry point:
   1. Validate caller parameters
   2. Bounded reads from the alert store (failures become "no data")
   3. Run the analysis inside a timed, cached block; results computed
      while a store read failed are returned but not cached
   4. Record run statistics

Entry points:
    build_network_graph / analyze_network_metrics
    analyze_interconnected / analyze_interconnected_batch
    analyze_multi_hop / transitive_risk
    analyze_temporal
    analyze_correlations / sector_correlations / correlation_matrix /
    cross_sector_anomalies
    calculate_risk_scores / risk_analysis
    predict_cascade

Every computation is synchronous and read-only; the cache is the only
shared state.
"""

import contextlib
import logging
import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

import networkx as nx
import numpy as np

from app.config import (
    CONNECTION_FETCH_LIMIT,
    DEFAULT_CONFIG,
    DEFAULT_CORRELATION_WINDOW_DAYS,
    DEFAULT_GRAPH_WINDOW_DAYS,
    DEFAULT_MAX_HOPS,
    DEFAULT_MULTI_HOP_WINDOW_DAYS,
    DEFAULT_PREDICTION_WINDOW_DAYS,
    DEFAULT_TEMPORAL_WINDOW_DAYS,
    GRAPH_FETCH_LIMIT,
    MULTI_HOP_FETCH_LIMIT,
    RISK_FETCH_LIMIT,
    TEMPORAL_FETCH_LIMIT,
    EngineConfig,
)
from core.cache.analysis_cache import AnalysisCache
from core.centrality.betweenness import compute_centrality
from core.centrality.pagerank import compute_pagerank
from core.correlation import correlation_analysis
from core.graph.graph_builder import build_network_graph, graph_to_dict
from core.graph.graph_metrics import compute_clustering_coefficient, compute_graph_summary
from core.models.records import Alert
from core.output.json_formatter import format_network_metrics, format_prediction
from core.prediction.cascade_predictor import default_prediction, is_degraded, predict_cascade
from core.risk.connection_analysis import analyze_interconnected
from core.risk.risk_scorer import calculate_risk_scores, risk_analysis
from core.structural.community_detection import detect_communities
from core.structural.critical_paths import find_critical_paths
from core.structural.multi_hop import build_connection_graph, find_multi_hop_paths, transitive_risk
from core.temporal.temporal_insights import analyze_temporal
from utils.alert_store import AlertStore
from utils.metrics import MetricsTracker
from utils.time_utils import utc_now, window_start
from utils.validators import (
    validate_alert_id,
    validate_alert_ids,
    validate_max_hops,
    validate_product_ids,
    validate_window,
)

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def log_timer(label: str):
    start = time.time()
    yield
    elapsed = time.time() - start
    logger.info("Analysis [%s] took %.4f seconds", label, elapsed)


class AnalysisService:
    """Runs cached analyses against an alert store."""

    def __init__(
        self,
        store: AlertStore,
        cache: Optional[AnalysisCache] = None,
        config: EngineConfig = DEFAULT_CONFIG,
        clock: Callable[[], datetime] = utc_now,
        rng: Optional[np.random.Generator] = None,
        metrics: Optional[MetricsTracker] = None,
    ):
        self.store = store
        self.cache = cache if cache is not None else AnalysisCache()
        self.config = config
        self.clock = clock
        self.rng = rng if rng is not None else np.random.default_rng()
        self.metrics = metrics if metrics is not None else MetricsTracker()
        self._local = threading.local()

    # ── Plumbing ──────────────────────────────────────────────────────

    def _read(self, label: str, call: Callable[[], Any], empty: Any) -> Any:
        """Run a store read; failures are logged and treated as no data."""
        try:
            return call()
        except Exception as exc:
            logger.error("Store read [%s] failed: %s", label, exc)
            self._local.failures = self._failures() + 1
            return empty

    def _failures(self) -> int:
        """Store read failures seen so far on this thread."""
        return getattr(self._local, "failures", 0)

    def _run(
        self,
        analysis: str,
        key: str,
        compute: Callable[[], Any],
        cacheable: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        failures = self._failures()

        def clean(value: Any) -> bool:
            if self._failures() != failures:
                return False
            return cacheable is None or cacheable(value)

        cached = self.cache.has(key)
        start = time.time()
        with log_timer(analysis):
            result = self.cache.get_or_compute(key, compute, cacheable=clean)
        self.metrics.record(analysis, time.time() - start, cached=cached)
        return result

    def _seed(self, alert_id: str) -> Optional[Alert]:
        return self._read("get_alert", lambda: self.store.get_alert(alert_id), None)

    def _recent(self, exclude_id: Optional[str], window: int, limit: int) -> List[Alert]:
        since = window_start(self.clock(), window)
        return self._read(
            "list_alerts",
            lambda: self.store.list_alerts(exclude_id=exclude_id, since=since, limit=limit),
            [],
        )

    # ── Graph & network metrics ───────────────────────────────────────

    def _network_graph(self, alert_id: str, window: int, full_network: bool) -> Optional[nx.DiGraph]:
        key = self.cache.make_key("graph", alert_id, window=window, full_network=full_network)

        def compute():
            seed = self._seed(alert_id)
            if seed is None or seed.anomaly is None:
                logger.warning("No graph for alert %s: seed or anomaly missing", alert_id)
                return None
            candidates = self._recent(alert_id, window, GRAPH_FETCH_LIMIT)
            return build_network_graph(seed, candidates, self.config, full_network=full_network)

        return self._run("graph", key, compute)

    def build_network_graph(
        self,
        alert_id: str,
        window: int = DEFAULT_GRAPH_WINDOW_DAYS,
        full_network: bool = False,
    ) -> Optional[Dict[str, Any]]:
        alert_id = validate_alert_id(alert_id)
        window = validate_window(window)
        G = self._network_graph(alert_id, window, full_network)
        return graph_to_dict(G) if G is not None else None

    def analyze_network_metrics(
        self,
        alert_id: str,
        window: int = DEFAULT_GRAPH_WINDOW_DAYS,
        full_network: bool = False,
    ) -> Optional[Dict[str, Any]]:
        alert_id = validate_alert_id(alert_id)
        window = validate_window(window)
        key = self.cache.make_key("network_metrics", alert_id, window=window, full_network=full_network)

        def compute():
            G = self._network_graph(alert_id, window, full_network)
            if G is None or G.number_of_nodes() == 0:
                return None
            pagerank = compute_pagerank(G, self.config)
            return format_network_metrics(
                pagerank,
                compute_centrality(G, self.config),
                detect_communities(G, self.config),
                find_critical_paths(G, pagerank, self.config),
                compute_clustering_coefficient(G),
                compute_graph_summary(G),
            )

        return self._run("network_metrics", key, compute)

    # ── Connections ───────────────────────────────────────────────────

    def analyze_interconnected(
        self, alert_id: str, window: int = DEFAULT_GRAPH_WINDOW_DAYS
    ) -> Optional[Dict[str, Any]]:
        alert_id = validate_alert_id(alert_id)
        window = validate_window(window)
        key = self.cache.make_key("connections", alert_id, window=window)

        def compute():
            seed = self._seed(alert_id)
            if seed is None or seed.anomaly is None:
                return None
            related = self._recent(alert_id, window, CONNECTION_FETCH_LIMIT)
            return analyze_interconnected(seed, related, self.clock(), self.config)

        return self._run("connections", key, compute)

    def analyze_interconnected_batch(
        self, alert_ids: Sequence[str], window: int = DEFAULT_GRAPH_WINDOW_DAYS
    ) -> Dict[str, Any]:
        """Connection summaries for several alerts; unanalyzable ids are listed as errors."""
        alert_ids = validate_alert_ids(alert_ids)
        window = validate_window(window)
        results: List[Dict[str, Any]] = []
        errors: List[Dict[str, str]] = []
        for alert_id in alert_ids:
            intelligence = self.analyze_interconnected(alert_id, window)
            if intelligence is None:
                errors.append({"alert_id": alert_id, "error": "Failed to analyze"})
                continue
            results.append({
                "alert_id": alert_id,
                "cascading_impact": intelligence["impact_cascade"]["cascading_impact"],
                "total_factors": intelligence["impact_cascade"]["total_factors"],
                "overall_risk": intelligence["risk_assessment"]["overall_risk"],
            })
        if errors:
            logger.warning("Batch connection analysis: %d of %d alerts failed", len(errors), len(alert_ids))
        return {
            "total_alerts": len(alert_ids),
            "successful": len(results),
            "failed": len(errors),
            "results": results,
            "errors": errors,
        }

    # ── Multi-hop ─────────────────────────────────────────────────────

    def _window_alerts_with_seed(self, alert_id: str, window: int) -> List[Alert]:
        alerts = self._recent(None, window, MULTI_HOP_FETCH_LIMIT)
        if not any(a.id == alert_id for a in alerts):
            seed = self._seed(alert_id)
            if seed is None:
                return []
            alerts = [seed] + list(alerts)
        return alerts

    def _connection_graph(self, alert_id: str, window: int) -> Optional[nx.DiGraph]:
        key = self.cache.make_key("connection_graph", alert_id, window=window)

        def compute():
            alerts = self._window_alerts_with_seed(alert_id, window)
            if not alerts:
                return None
            return build_connection_graph(alerts, self.config)

        return self._run("connection_graph", key, compute)

    def analyze_multi_hop(
        self,
        alert_id: str,
        max_hops: int = DEFAULT_MAX_HOPS,
        window: int = DEFAULT_MULTI_HOP_WINDOW_DAYS,
    ) -> List[Dict[str, Any]]:
        alert_id = validate_alert_id(alert_id)
        max_hops = validate_max_hops(max_hops)
        window = validate_window(window)
        key = self.cache.make_key("multi_hop", alert_id, max_hops=max_hops, window=window)

        def compute():
            G = self._connection_graph(alert_id, window)
            if G is None or G.number_of_nodes() == 0:
                return []
            return find_multi_hop_paths(G, alert_id, max_hops, self.config)

        return self._run("multi_hop", key, compute)

    def transitive_risk(
        self,
        alert_id: str,
        target_id: str,
        max_hops: int = DEFAULT_MAX_HOPS,
        window: int = DEFAULT_MULTI_HOP_WINDOW_DAYS,
    ) -> Optional[Dict[str, Any]]:
        alert_id = validate_alert_id(alert_id)
        target_id = validate_alert_id(target_id)
        max_hops = validate_max_hops(max_hops)
        window = validate_window(window)
        key = self.cache.make_key(
            "transitive_risk", alert_id, target=target_id, max_hops=max_hops, window=window
        )

        def compute():
            G = self._connection_graph(alert_id, window)
            return transitive_risk(G, alert_id, target_id, max_hops)

        return self._run("transitive_risk", key, compute)

    # ── Temporal ──────────────────────────────────────────────────────

    def analyze_temporal(
        self, alert_id: str, window: int = DEFAULT_TEMPORAL_WINDOW_DAYS
    ) -> Optional[Dict[str, Any]]:
        alert_id = validate_alert_id(alert_id)
        window = validate_window(window)
        key = self.cache.make_key("temporal", alert_id, window=window)

        def compute():
            seed = self._seed(alert_id)
            if seed is None or seed.anomaly is None:
                return None
            related = self._recent(alert_id, window, TEMPORAL_FETCH_LIMIT)
            return analyze_temporal(seed, related, self.clock(), window, self.config)

        return self._run("temporal", key, compute)

    # ── Correlation ───────────────────────────────────────────────────

    def _shipments(self, window: int, category: Optional[str] = None) -> List:
        now = self.clock()
        start = window_start(now, window)
        return self._read(
            "list_shipments",
            lambda: self.store.list_shipments(category=category, start=start, end=now),
            [],
        )

    def _products(self, category: Optional[str] = None, ids: Optional[Sequence[str]] = None) -> List:
        return self._read(
            "list_products", lambda: self.store.list_products(category=category, ids=ids), []
        )

    def analyze_correlations(
        self, category: Optional[str] = None, window: int = DEFAULT_CORRELATION_WINDOW_DAYS
    ) -> List[Dict[str, Any]]:
        window = validate_window(window)
        key = self.cache.make_key("correlations", None, category=category, window=window)

        def compute():
            return correlation_analysis.analyze_correlations(
                self._products(category), self._shipments(window, category), self.config
            )

        return self._run("correlations", key, compute)

    def sector_correlations(self, window: int = DEFAULT_CORRELATION_WINDOW_DAYS) -> List[Dict[str, Any]]:
        window = validate_window(window)
        key = self.cache.make_key("sector_correlations", None, window=window)

        def compute():
            return correlation_analysis.sector_correlations(
                self._products(), self._shipments(window), self.config
            )

        return self._run("sector_correlations", key, compute)

    def correlation_matrix(
        self, product_ids: Sequence[str], window: int = DEFAULT_CORRELATION_WINDOW_DAYS
    ) -> Dict[str, Any]:
        product_ids = validate_product_ids(product_ids)
        window = validate_window(window)
        key = self.cache.make_key("correlation_matrix", None, products=product_ids, window=window)

        def compute():
            found = {p.id: p for p in self._products(ids=product_ids)}
            selected = [found[pid] for pid in product_ids if pid in found]
            if not selected:
                return {"products": [], "matrix": [], "insights": []}
            correlations = self.analyze_correlations(None, window)
            return correlation_analysis.correlation_matrix(selected, correlations)

        return self._run("correlation_matrix", key, compute)

    def cross_sector_anomalies(self, window: int = DEFAULT_CORRELATION_WINDOW_DAYS) -> List[Dict[str, Any]]:
        window = validate_window(window)
        key = self.cache.make_key("cross_sector_anomalies", None, window=window)

        def compute():
            correlations = self.analyze_correlations(None, window)
            recent = self._shipments(self.config.breakdown_window_days)
            return correlation_analysis.cross_sector_anomalies(correlations, recent, self.config)

        return self._run("cross_sector_anomalies", key, compute)

    # ── Risk ──────────────────────────────────────────────────────────

    def calculate_risk_scores(self) -> List[Dict[str, Any]]:
        key = self.cache.make_key("risk_scores", None, limit=RISK_FETCH_LIMIT)

        def compute():
            alerts = self._read(
                "list_alerts",
                lambda: self.store.list_alerts(limit=RISK_FETCH_LIMIT, include_resolved=False),
                [],
            )
            product_ids = sorted(
                {a.anomaly.product_id for a in alerts if a.anomaly and a.anomaly.product_id}
            )
            products = self._products(ids=product_ids) if product_ids else []
            return calculate_risk_scores(alerts, products, self.config)

        return self._run("risk_scores", key, compute)

    def risk_analysis(self) -> Optional[Dict[str, Any]]:
        return risk_analysis(self.calculate_risk_scores())

    # ── Prediction ────────────────────────────────────────────────────

    def predict_cascade(
        self, alert_id: str, window: int = DEFAULT_PREDICTION_WINDOW_DAYS
    ) -> Dict[str, Any]:
        alert_id = validate_alert_id(alert_id)
        window = validate_window(window)
        key = self.cache.make_key("prediction", alert_id, window=window)

        def compute():
            try:
                intelligence = self.analyze_interconnected(alert_id, window)
                network = self.analyze_network_metrics(alert_id, window)
                temporal = self.analyze_temporal(alert_id, window)
                paths = self.analyze_multi_hop(alert_id, DEFAULT_MAX_HOPS, window)
            except Exception as exc:
                logger.error("Prediction inputs for alert %s failed: %s", alert_id, exc)
                return default_prediction("error")
            prediction = predict_cascade(
                intelligence, network, temporal, paths, self.rng, self.config
            )
            return format_prediction(prediction)

        return self._run("prediction", key, compute, cacheable=lambda p: not is_degraded(p))

    # ── Cache control ─────────────────────────────────────────────────

    def invalidate(self, alert_id: str) -> int:
        return self.cache.invalidate(validate_alert_id(alert_id))

    def cache_stats(self) -> Dict[str, Any]:
        return self.cache.stats()
