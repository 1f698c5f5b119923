"""
Betweenness Centrality Module.

For every unordered node pair, enumerates up to a fixed number of shortest
paths and credits each intermediate node with 1/#paths per path it lies
on. Endpoints earn nothing. Scores are normalized by the maximum so the
most central alert scores exactly 1.0 (all zeros when nothing is
intermediate).

Time Complexity: O(V² × (V + E)) with the per-pair path cap
Memory: O(V)
"""

from itertools import combinations, islice
from typing import Dict

import networkx as nx

from app.config import DEFAULT_CONFIG, EngineConfig


def compute_centrality(G: nx.DiGraph, config: EngineConfig = DEFAULT_CONFIG) -> Dict[str, float]:
    """Return normalized betweenness scores in [0, 1]."""
    if G is None or G.number_of_nodes() == 0:
        return {}

    scores: Dict[str, float] = {node: 0.0 for node in G.nodes()}

    for source, target in combinations(list(G.nodes()), 2):
        try:
            paths = list(
                islice(nx.all_shortest_paths(G, source, target), config.betweenness_max_paths)
            )
        except nx.NetworkXNoPath:
            continue
        if not paths:
            continue
        credit = 1.0 / len(paths)
        for path in paths:
            for node in path[1:-1]:
                scores[node] += credit

    top = max(scores.values())
    if top > 0:
        scores = {node: value / top for node, value in scores.items()}
    return scores
