"""
PageRank Module — structural importance of alerts in the correlation graph.

Power iteration with uniform initial rank. A dangling node's out-count is
taken as 1 and its mass is redistributed uniformly over every node, so the
scores always sum to 1 and a single-node graph ranks that node at 1.0.

Time Complexity: O(I × (V + E)), I ≤ max iterations
Memory: O(V)
"""

import logging
from typing import Dict

import networkx as nx
import numpy as np

from app.config import DEFAULT_CONFIG, EngineConfig

logger = logging.getLogger(__name__)


def compute_pagerank(G: nx.DiGraph, config: EngineConfig = DEFAULT_CONFIG) -> Dict[str, float]:
    """Return {node: score}; empty for a missing or empty graph."""
    if G is None or G.number_of_nodes() == 0:
        return {}

    nodes = list(G.nodes())
    index = {node: i for i, node in enumerate(nodes)}
    n = len(nodes)
    damping = config.pagerank_damping

    rank = np.full(n, 1.0 / n)
    for iteration in range(config.pagerank_max_iter):
        out_counts = np.array([G.out_degree(node) for node in nodes], dtype=float)
        dangling = out_counts == 0
        share = rank / np.maximum(out_counts, 1.0)

        new_rank = np.full(n, (1.0 - damping) / n)
        new_rank += damping * rank[dangling].sum() / n
        for u, v in G.edges():
            new_rank[index[v]] += damping * share[index[u]]

        delta = float(np.max(np.abs(new_rank - rank)))
        rank = new_rank
        if delta < config.pagerank_tolerance:
            logger.debug("PageRank converged after %d iterations", iteration + 1)
            break

    return {node: float(rank[index[node]]) for node in nodes}
