"""
FastAPI application for the Interconnected Anomaly Intelligence Engine.

Endpoints:
    GET    /analytics/network/{id}       — Correlation graph + network metrics
    GET    /analytics/connections/{id}   — Interconnected intelligence
    GET    /analytics/multi-hop/{id}     — Multi-hop cascade paths
    GET    /analytics/transitive-risk    — Shortest risk path between alerts
    GET    /analytics/temporal/{id}      — Lead/lag, causal, seasonal, trend
    GET    /analytics/correlation        — Product/sector correlations
    GET    /analytics/risk-score         — Ranked composite risk scores
    GET    /analytics/predictions/{id}   — Cascade prediction
    GET    /cache, DELETE /cache/{id}    — Cache stats and invalidation
    GET    /health, /metrics             — Health and analysis statistics
"""

import logging
import os
import sys

# Add the project root to sys.path to resolve imports like 'api', 'services', etc.
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from api.routes import analysis_cache, router

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Interconnected Anomaly Intelligence Engine",
    description="Graph, temporal and risk analytics over trade-compliance alerts.",
    version="1.0.0",
)

# CORS for the dashboard frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Compress large JSON responses (graph payloads, correlation matrices).
app.add_middleware(GZipMiddleware, minimum_size=1024)

app.include_router(router)


@app.on_event("startup")
async def _startup_cache_sweeper():
    logger.info("App starting up. Launching analysis cache sweeper...")
    analysis_cache.start_periodic_cleanup()


@app.on_event("shutdown")
async def _shutdown_cache_sweeper():
    analysis_cache.stop_periodic_cleanup()
