"""
Critical Paths — high-impact routes between the most central alerts.

For each pair of top-PageRank nodes the first path found by depth-first
search is used. This is an approximation: the path is whatever DFS reaches
first, not the shortest or the heaviest.

impact = sum(edge weights along path) × (PR[source] + PR[target])

Time Complexity: O(T² × (V + E)), T = number of top nodes
Memory: O(V)
"""

from itertools import combinations
from typing import Any, Dict, List, Optional

import networkx as nx

from app.config import DEFAULT_CONFIG, EngineConfig


def _first_dfs_path(G: nx.DiGraph, source: str, target: str) -> Optional[List[str]]:
    stack = [(source, [source])]
    visited = set()
    while stack:
        node, path = stack.pop()
        if node == target:
            return path
        if node in visited:
            continue
        visited.add(node)
        for nbr in reversed(list(G.successors(node))):
            if nbr not in visited:
                stack.append((nbr, path + [nbr]))
    return None


def find_critical_paths(
    G: nx.DiGraph,
    pagerank: Dict[str, float],
    config: EngineConfig = DEFAULT_CONFIG,
) -> List[Dict[str, Any]]:
    """Return [{from, to, impact, path}] sorted by impact, highest first."""
    if G is None or G.number_of_nodes() < 2 or not pagerank:
        return []

    top_nodes = sorted(pagerank, key=pagerank.get, reverse=True)[: config.critical_path_top_nodes]

    paths: List[Dict[str, Any]] = []
    for source, target in combinations(top_nodes, 2):
        path = _first_dfs_path(G, source, target)
        if path is None:
            continue
        weight = sum(G[u][v]["weight"] for u, v in zip(path, path[1:]))
        impact = weight * (pagerank[source] + pagerank[target])
        paths.append({"from": source, "to": target, "impact": round(impact, 6), "path": path})

    paths.sort(key=lambda p: p["impact"], reverse=True)
    return paths[: config.critical_path_limit]
