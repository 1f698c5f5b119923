"""
Analysis statistics tracker.

Counts runs per analysis and keeps the last duration for the /metrics
endpoint.

Time Complexity: O(1) per operation
Memory: O(A) for A distinct analyses
"""

from typing import Any, Dict


class MetricsTracker:
    """Tracks analysis statistics across API calls."""

    def __init__(self):
        self._total_runs: int = 0
        self._analyses: Dict[str, Dict[str, Any]] = {}

    def record(self, analysis: str, duration_seconds: float, cached: bool = False) -> None:
        """Record one analysis run."""
        self._total_runs += 1
        entry = self._analyses.setdefault(
            analysis, {"runs": 0, "cache_hits": 0, "last_duration_seconds": 0.0}
        )
        entry["runs"] += 1
        if cached:
            entry["cache_hits"] += 1
        entry["last_duration_seconds"] = round(duration_seconds, 4)

    def get_metrics(self) -> Dict[str, Any]:
        """Return the latest metrics."""
        if not self._total_runs:
            return {"status": "no_processing_yet", "total_runs": 0}
        return {
            "status": "ready",
            "total_runs": self._total_runs,
            "analyses": {name: dict(stats) for name, stats in self._analyses.items()},
        }
