"""
Engine configuration — thresholds, weights and fetch limits.

Module-level constants are the single source of tuning values. Operational
limits can be overridden through environment variables; analysis
thresholds are gathered into EngineConfig, which every analyzer accepts so
scenarios can be tested without code edits.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Tuple

# ── Store / fetch limits ──────────────────────────────────────────────

ALERT_DB_PATH = os.getenv("ALERT_DB_PATH", "data/alerts.db")
GRAPH_FETCH_LIMIT = int(os.getenv("GRAPH_FETCH_LIMIT", "100"))
CONNECTION_FETCH_LIMIT = int(os.getenv("CONNECTION_FETCH_LIMIT", "50"))
TEMPORAL_FETCH_LIMIT = int(os.getenv("TEMPORAL_FETCH_LIMIT", "200"))
MULTI_HOP_FETCH_LIMIT = int(os.getenv("MULTI_HOP_FETCH_LIMIT", "500"))
RISK_FETCH_LIMIT = int(os.getenv("RISK_FETCH_LIMIT", "500"))
MAX_TIME_WINDOW_DAYS = int(os.getenv("MAX_TIME_WINDOW_DAYS", "365"))

# ── Cache ─────────────────────────────────────────────────────────────

CACHE_TTL_SECONDS = float(os.getenv("CACHE_TTL_SECONDS", str(15 * 60)))
CACHE_SWEEP_SECONDS = float(os.getenv("CACHE_SWEEP_SECONDS", str(5 * 60)))

# ── Default windows ───────────────────────────────────────────────────

DEFAULT_GRAPH_WINDOW_DAYS = 30
DEFAULT_MULTI_HOP_WINDOW_DAYS = 90
DEFAULT_TEMPORAL_WINDOW_DAYS = 90
DEFAULT_CORRELATION_WINDOW_DAYS = 90
DEFAULT_PREDICTION_WINDOW_DAYS = 30
DEFAULT_MAX_HOPS = 3

# ── Connection strength ───────────────────────────────────────────────

SIGNIFICANCE_THRESHOLD = 0.3
SAME_PRODUCT_BONUS = 0.5
SAME_TYPE_BONUS = 0.3
DEFAULT_PATTERN_BONUS = 0.1
TIME_DECAY_WEIGHT = 0.3
TIME_DECAY_DAYS = 7.0

# Unordered pairs of anomaly types that tend to move together.
COMPLEMENTARY_PATTERN_BONUS: Dict[FrozenSet[str], float] = {
    frozenset({"price_spike", "freight_surge"}): 0.8,
    frozenset({"tariff_change", "price_spike"}): 0.75,
    frozenset({"fx_volatility", "price_spike"}): 0.65,
}

# ── Network metrics ───────────────────────────────────────────────────

PAGERANK_DAMPING = 0.85
PAGERANK_MAX_ITER = 50
PAGERANK_TOLERANCE = 1e-4
BETWEENNESS_MAX_PATHS = 5
COMMUNITY_MAX_ITER = 10
COMMUNITY_MIN_SIZE = 2
COMMUNITY_LIMIT = 10
CRITICAL_PATH_TOP_NODES = 10
CRITICAL_PATH_LIMIT = 20

# ── Correlation analysis ──────────────────────────────────────────────

CORRELATION_THRESHOLD = 0.3
CORRELATION_MODERATE = 0.5
CORRELATION_STRONG = 0.7
SECTOR_TREND_THRESHOLD = 0.5
SECTOR_HIGH_COUNT = 5
SECTOR_MEDIUM_COUNT = 2
SECTOR_PRODUCT_LIMIT = 10
BREAKDOWN_DELTA = 0.5
BREAKDOWN_WINDOW_DAYS = 30

# ── Multi-hop ─────────────────────────────────────────────────────────

MULTI_HOP_MAX_PATHS = 50
MULTI_HOP_REVISIT_DEPTH = 2

# ── Temporal analysis ─────────────────────────────────────────────────

LEAD_LAG_MAX_DAYS = 90
INDICATOR_THRESHOLD = 0.5
INDICATOR_LIMIT = 10
CAUSAL_THRESHOLD = 0.6
CAUSAL_BUCKETS = 5
CAUSAL_LIMIT = 15
SEASONAL_PERIODS: Tuple[int, ...] = (7, 30, 90)
SEASONAL_TOLERANCE = 0.3
SEASONAL_THRESHOLD = 0.3
SEASONAL_MIN_OCCURRENCES = 5
SEASONAL_LIMIT = 10
TREND_MIN_POINTS = 3
TREND_STABLE_SLOPE = 0.001

# Unordered type pairs for lead/lag correlation.
TEMPORAL_PATTERN_CORRELATION: Dict[FrozenSet[str], float] = {
    frozenset({"price_spike", "freight_surge"}): 0.8,
    frozenset({"tariff_change", "price_spike"}): 0.75,
    frozenset({"fx_volatility", "price_spike"}): 0.65,
}
TEMPORAL_SAME_TYPE = 0.3
TEMPORAL_DEFAULT = 0.2

# Ordered (cause, effect) priors.
CAUSAL_PRIORS: Dict[Tuple[str, str], float] = {
    ("tariff_change", "price_spike"): 0.9,
    ("fx_volatility", "price_spike"): 0.85,
    ("freight_surge", "price_spike"): 0.8,
}
CAUSAL_DEFAULT = 0.2

SEVERITY_ORDINAL: Dict[str, int] = {"low": 1, "medium": 2, "high": 3, "critical": 4}

# ── Connected factors ─────────────────────────────────────────────────

CONNECTION_SEVERITY_BASE: Dict[str, int] = {"low": 10, "medium": 30, "high": 60, "critical": 100}
CONNECTION_PAIR_SCORES: Dict[FrozenSet[str], float] = {
    frozenset({"price_spike", "freight_surge"}): 0.9,
    frozenset({"tariff_change", "price_spike"}): 0.85,
    frozenset({"fx_volatility", "price_spike"}): 0.75,
}
CONNECTION_FACTOR_SCORES: Dict[str, float] = {
    "cross_product": 0.55,
    "geographic": 0.45,
    "circular": 0.65,
    "historical": 0.40,
}
CONNECTION_FACTOR_LIMITS: Dict[str, int] = {
    "cross_product": 10,
    "geographic": 10,
    "circular": 5,
    "historical": 10,
}
HISTORICAL_MIN_OCCURRENCES = 3
HISTORICAL_MIN_AGE_DAYS = 14
BATCH_MAX_ALERTS = 50

# ── Risk scoring ──────────────────────────────────────────────────────

RISK_WEIGHTS: Dict[str, float] = {
    "price_deviation": 0.30,
    "volume_surge": 0.20,
    "fx_exposure": 0.15,
    "supply_chain_risk": 0.20,
    "historical_volatility": 0.15,
}
RISK_LEVEL_CRITICAL = 70
RISK_LEVEL_HIGH = 50
RISK_LEVEL_MEDIUM = 30
REASON_COMPONENT_THRESHOLD = 40
CRITICAL_SECTORS: FrozenSet[str] = frozenset({"Steel & Metals", "Electronics"})
CRITICAL_SECTOR_BONUS = 20
DEPENDENCY_WEIGHT = 5

# ── Cascade prediction ────────────────────────────────────────────────

PREDICTION_WEIGHTS: Dict[str, float] = {
    "base_risk": 0.30,
    "cascade_impact": 0.25,
    "network_centrality": 0.15,
    "critical_paths": 0.10,
    "temporal_signals": 0.10,
    "hop_complexity": 0.05,
    "compound_risk": 0.05,
}
IMPACT_BASE_RISK_WEIGHT = 0.2
DETERMINISTIC_TIME_TO_CASCADE = os.getenv("DETERMINISTIC_TIME_TO_CASCADE", "0") == "1"


@dataclass(frozen=True)
class EngineConfig:
    """All analysis thresholds and weights, passed into each analyzer."""

    significance_threshold: float = SIGNIFICANCE_THRESHOLD
    same_product_bonus: float = SAME_PRODUCT_BONUS
    same_type_bonus: float = SAME_TYPE_BONUS
    default_pattern_bonus: float = DEFAULT_PATTERN_BONUS
    time_decay_weight: float = TIME_DECAY_WEIGHT
    time_decay_days: float = TIME_DECAY_DAYS
    pattern_bonus: Dict[FrozenSet[str], float] = field(
        default_factory=lambda: dict(COMPLEMENTARY_PATTERN_BONUS)
    )

    pagerank_damping: float = PAGERANK_DAMPING
    pagerank_max_iter: int = PAGERANK_MAX_ITER
    pagerank_tolerance: float = PAGERANK_TOLERANCE
    betweenness_max_paths: int = BETWEENNESS_MAX_PATHS
    community_max_iter: int = COMMUNITY_MAX_ITER
    community_min_size: int = COMMUNITY_MIN_SIZE
    community_limit: int = COMMUNITY_LIMIT
    critical_path_top_nodes: int = CRITICAL_PATH_TOP_NODES
    critical_path_limit: int = CRITICAL_PATH_LIMIT

    correlation_threshold: float = CORRELATION_THRESHOLD
    correlation_moderate: float = CORRELATION_MODERATE
    correlation_strong: float = CORRELATION_STRONG
    sector_trend_threshold: float = SECTOR_TREND_THRESHOLD
    sector_high_count: int = SECTOR_HIGH_COUNT
    sector_medium_count: int = SECTOR_MEDIUM_COUNT
    sector_product_limit: int = SECTOR_PRODUCT_LIMIT
    breakdown_delta: float = BREAKDOWN_DELTA
    breakdown_window_days: int = BREAKDOWN_WINDOW_DAYS

    multi_hop_max_paths: int = MULTI_HOP_MAX_PATHS
    multi_hop_revisit_depth: int = MULTI_HOP_REVISIT_DEPTH

    lead_lag_max_days: int = LEAD_LAG_MAX_DAYS
    indicator_threshold: float = INDICATOR_THRESHOLD
    indicator_limit: int = INDICATOR_LIMIT
    causal_threshold: float = CAUSAL_THRESHOLD
    causal_buckets: int = CAUSAL_BUCKETS
    causal_limit: int = CAUSAL_LIMIT
    seasonal_periods: Tuple[int, ...] = SEASONAL_PERIODS
    seasonal_tolerance: float = SEASONAL_TOLERANCE
    seasonal_threshold: float = SEASONAL_THRESHOLD
    seasonal_min_occurrences: int = SEASONAL_MIN_OCCURRENCES
    seasonal_limit: int = SEASONAL_LIMIT
    trend_min_points: int = TREND_MIN_POINTS
    trend_stable_slope: float = TREND_STABLE_SLOPE
    temporal_pattern_correlation: Dict[FrozenSet[str], float] = field(
        default_factory=lambda: dict(TEMPORAL_PATTERN_CORRELATION)
    )
    temporal_same_type: float = TEMPORAL_SAME_TYPE
    temporal_default: float = TEMPORAL_DEFAULT
    causal_priors: Dict[Tuple[str, str], float] = field(
        default_factory=lambda: dict(CAUSAL_PRIORS)
    )
    causal_default: float = CAUSAL_DEFAULT

    connection_severity_base: Dict[str, int] = field(
        default_factory=lambda: dict(CONNECTION_SEVERITY_BASE)
    )
    connection_pair_scores: Dict[FrozenSet[str], float] = field(
        default_factory=lambda: dict(CONNECTION_PAIR_SCORES)
    )
    connection_factor_scores: Dict[str, float] = field(
        default_factory=lambda: dict(CONNECTION_FACTOR_SCORES)
    )
    connection_factor_limits: Dict[str, int] = field(
        default_factory=lambda: dict(CONNECTION_FACTOR_LIMITS)
    )
    historical_min_occurrences: int = HISTORICAL_MIN_OCCURRENCES
    historical_min_age_days: int = HISTORICAL_MIN_AGE_DAYS

    risk_weights: Dict[str, float] = field(default_factory=lambda: dict(RISK_WEIGHTS))
    risk_level_critical: int = RISK_LEVEL_CRITICAL
    risk_level_high: int = RISK_LEVEL_HIGH
    risk_level_medium: int = RISK_LEVEL_MEDIUM
    reason_component_threshold: int = REASON_COMPONENT_THRESHOLD
    critical_sectors: FrozenSet[str] = CRITICAL_SECTORS
    critical_sector_bonus: int = CRITICAL_SECTOR_BONUS
    dependency_weight: int = DEPENDENCY_WEIGHT

    prediction_weights: Dict[str, float] = field(
        default_factory=lambda: dict(PREDICTION_WEIGHTS)
    )
    impact_base_risk_weight: float = IMPACT_BASE_RISK_WEIGHT
    deterministic_time_to_cascade: bool = DETERMINISTIC_TIME_TO_CASCADE


DEFAULT_CONFIG = EngineConfig()
