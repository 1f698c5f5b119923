"""
Graph Builder — constructs the alert correlation graph.

Nodes are alerts, edges are pairwise connection strengths above the
significance threshold. Edges are inserted in both directions with the
same weight so the DiGraph behaves as an undirected weighted graph.

Time Complexity: O(K) seed-anchored, O(K²) full network, K = candidates
Memory: O(V + E)
"""

from typing import Any, Dict, List, Optional, Sequence

import networkx as nx

from app.config import DEFAULT_CONFIG, EngineConfig
from core.models.records import Alert
from utils.time_utils import days_between


def pattern_bonus(type_a: str, type_b: str, config: EngineConfig = DEFAULT_CONFIG) -> float:
    """Bonus for complementary anomaly types. Same type earns nothing here."""
    if type_a == type_b:
        return 0.0
    return config.pattern_bonus.get(frozenset({type_a, type_b}), config.default_pattern_bonus)


def connection_strength(a: Alert, b: Alert, config: EngineConfig = DEFAULT_CONFIG) -> float:
    """Heuristic relatedness of two alerts in [0, 1]."""
    if a.anomaly is None or b.anomaly is None:
        return 0.0
    strength = 0.0

    if a.anomaly.product_id and a.anomaly.product_id == b.anomaly.product_id:
        strength += config.same_product_bonus

    if a.anomaly.type == b.anomaly.type:
        strength += config.same_type_bonus

    strength += pattern_bonus(a.anomaly.type, b.anomaly.type, config)

    gap = days_between(a.created_at, b.created_at)
    if gap < config.time_decay_days:
        strength += config.time_decay_weight * (1 - gap / config.time_decay_days)

    return min(strength, 1.0)


def _node_attrs(alert: Alert) -> Dict[str, Any]:
    anomaly = alert.anomaly
    return {
        "type": anomaly.type,
        "severity": anomaly.severity,
        "timestamp": alert.created_at,
        "metadata": {
            "anomaly_id": anomaly.id,
            "product_id": anomaly.product_id,
            "status": alert.status,
            **anomaly.details_dict(),
        },
    }


def _link(G: nx.DiGraph, a: Alert, b: Alert, config: EngineConfig) -> None:
    strength = connection_strength(a, b, config)
    if strength <= config.significance_threshold:
        return
    G.add_node(a.id, **_node_attrs(a))
    G.add_node(b.id, **_node_attrs(b))
    G.add_edge(a.id, b.id, weight=strength, type="correlation")
    G.add_edge(b.id, a.id, weight=strength, type="correlation")


def build_network_graph(
    seed: Optional[Alert],
    candidates: Sequence[Alert],
    config: EngineConfig = DEFAULT_CONFIG,
    full_network: bool = False,
) -> Optional[nx.DiGraph]:
    """
    Build the correlation graph around a seed alert.

    Returns None when the seed or its anomaly is missing. The seed-anchored
    graph links only seed-candidate pairs; `full_network` also links every
    candidate pair. Candidates without an anomaly are skipped.
    """
    if seed is None or seed.anomaly is None:
        return None

    G = nx.DiGraph()
    G.add_node(seed.id, **_node_attrs(seed))

    usable: List[Alert] = [c for c in candidates if c.anomaly is not None and c.id != seed.id]
    for candidate in usable:
        _link(G, seed, candidate, config)

    if full_network:
        for i, a in enumerate(usable):
            for b in usable[i + 1:]:
                if a.id != b.id:
                    _link(G, a, b, config)

    return G


def graph_to_dict(G: Optional[nx.DiGraph]) -> Dict[str, List[Dict[str, Any]]]:
    """Serialize the graph to {nodes, edges} with ISO timestamps."""
    if G is None:
        return {"nodes": [], "edges": []}
    nodes = []
    for node, data in G.nodes(data=True):
        ts = data.get("timestamp")
        nodes.append(
            {
                "id": node,
                "type": data.get("type"),
                "severity": data.get("severity"),
                "timestamp": ts.isoformat() if ts is not None else None,
                "metadata": data.get("metadata", {}),
            }
        )
    edges = [
        {"source": u, "target": v, "weight": round(float(d["weight"]), 4), "type": d.get("type")}
        for u, v, d in G.edges(data=True)
    ]
    return {"nodes": nodes, "edges": edges}
