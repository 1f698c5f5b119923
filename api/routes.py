"""
API Routes — analytics, cache, health, and metrics endpoints.

Extracted from app/main.py for cleaner separation. Invalid parameters map
to 400, unknown alerts (or alerts without enough data) to 404.
"""

from pathlib import Path
from typing import Callable, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from app.config import (
    ALERT_DB_PATH,
    DEFAULT_CORRELATION_WINDOW_DAYS,
    DEFAULT_GRAPH_WINDOW_DAYS,
    DEFAULT_MAX_HOPS,
    DEFAULT_MULTI_HOP_WINDOW_DAYS,
    DEFAULT_PREDICTION_WINDOW_DAYS,
    DEFAULT_TEMPORAL_WINDOW_DAYS,
)
from core.cache.analysis_cache import AnalysisCache
from services.analysis_service import AnalysisService
from utils.alert_store import SqliteAlertStore
from utils.validators import validate_correlation_view

router = APIRouter()
analysis_cache = AnalysisCache()
_service: Optional[AnalysisService] = None


def get_service() -> AnalysisService:
    """Process-wide service over the SQLite store; overridable in tests."""
    global _service
    if _service is None:
        _service = AnalysisService(SqliteAlertStore(Path(ALERT_DB_PATH)), cache=analysis_cache)
    return _service


class BatchConnectionsRequest(BaseModel):
    alert_ids: List[str]
    time_window: int = DEFAULT_GRAPH_WINDOW_DAYS


def _call(fn: Callable, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _found(result, what: str):
    if result is None:
        raise HTTPException(status_code=404, detail=f"{what} not found or insufficient data.")
    return result


@router.get("/health")
async def health():
    """Return system health status."""
    return {"status": "healthy", "version": "1.0.0"}


@router.get("/metrics")
async def metrics(service: AnalysisService = Depends(get_service)):
    """Return analysis statistics."""
    return service.metrics.get_metrics()


@router.get("/analytics/network/{alert_id}")
def network(
    alert_id: str,
    time_window: int = DEFAULT_GRAPH_WINDOW_DAYS,
    full_network: bool = False,
    service: AnalysisService = Depends(get_service),
):
    """Correlation graph and network metrics around an alert."""
    graph = _call(service.build_network_graph, alert_id, time_window, full_network)
    _found(graph, "Alert")
    network_metrics = _call(service.analyze_network_metrics, alert_id, time_window, full_network)
    return {"alert_id": alert_id, "graph": graph, "metrics": network_metrics}


@router.get("/analytics/connections/{alert_id}")
def connections(
    alert_id: str,
    time_window: int = DEFAULT_GRAPH_WINDOW_DAYS,
    service: AnalysisService = Depends(get_service),
):
    result = _call(service.analyze_interconnected, alert_id, time_window)
    return _found(result, "Alert")


@router.post("/analytics/connections/batch")
def connections_batch(
    body: BatchConnectionsRequest,
    service: AnalysisService = Depends(get_service),
):
    """Connection summaries for up to 50 alerts."""
    return _call(service.analyze_interconnected_batch, body.alert_ids, body.time_window)


@router.get("/analytics/multi-hop/{alert_id}")
def multi_hop(
    alert_id: str,
    max_hops: int = DEFAULT_MAX_HOPS,
    time_window: int = DEFAULT_MULTI_HOP_WINDOW_DAYS,
    service: AnalysisService = Depends(get_service),
):
    paths = _call(service.analyze_multi_hop, alert_id, max_hops, time_window)
    return {"alert_id": alert_id, "paths": paths, "count": len(paths)}


@router.get("/analytics/transitive-risk")
def transitive(
    source: str,
    target: str,
    max_hops: int = DEFAULT_MAX_HOPS,
    time_window: int = DEFAULT_MULTI_HOP_WINDOW_DAYS,
    service: AnalysisService = Depends(get_service),
):
    result = _call(service.transitive_risk, source, target, max_hops, time_window)
    return _found(result, "Path")


@router.get("/analytics/temporal/{alert_id}")
def temporal(
    alert_id: str,
    time_window: int = DEFAULT_TEMPORAL_WINDOW_DAYS,
    service: AnalysisService = Depends(get_service),
):
    result = _call(service.analyze_temporal, alert_id, time_window)
    return _found(result, "Alert")


@router.get("/analytics/correlation")
def correlation(
    type: str = "all",
    category: Optional[str] = None,
    time_window: int = DEFAULT_CORRELATION_WINDOW_DAYS,
    product_ids: List[str] = Query(default=[]),
    service: AnalysisService = Depends(get_service),
):
    """Correlation views: all pairs, per sector, matrix, or breakdown anomalies."""
    view = _call(validate_correlation_view, type)
    if view == "sector":
        return {"type": view, "sectors": _call(service.sector_correlations, time_window)}
    if view == "matrix":
        return {"type": view, **_call(service.correlation_matrix, product_ids, time_window)}
    if view == "anomalies":
        return {"type": view, "anomalies": _call(service.cross_sector_anomalies, time_window)}
    return {
        "type": view,
        "correlations": _call(service.analyze_correlations, category, time_window),
    }


@router.get("/analytics/risk-score")
def risk_score(
    include_analysis: bool = False,
    service: AnalysisService = Depends(get_service),
):
    scores = service.calculate_risk_scores()
    response = {"scores": scores, "count": len(scores)}
    if include_analysis:
        response["analysis"] = service.risk_analysis()
    return response


@router.get("/analytics/predictions/{alert_id}")
def prediction(
    alert_id: str,
    time_window: int = DEFAULT_PREDICTION_WINDOW_DAYS,
    service: AnalysisService = Depends(get_service),
):
    return {"alert_id": alert_id, "prediction": _call(service.predict_cascade, alert_id, time_window)}


@router.delete("/cache/{alert_id}")
def invalidate_cache(alert_id: str, service: AnalysisService = Depends(get_service)):
    return {"alert_id": alert_id, "removed": _call(service.invalidate, alert_id)}


@router.get("/cache")
def cache_stats(service: AnalysisService = Depends(get_service)):
    return service.cache_stats()
