"""
Community Detection — label propagation over the correlation graph.

Every node starts with its own id as label and repeatedly adopts the most
frequent label among its neighbors (ties go to the label met first).
Updates are applied in place, node by node, and the loop stops early once
a full sweep changes nothing.

Time Complexity: O(I × (V + E))
Memory: O(V)
"""

from collections import Counter, defaultdict
from typing import Any, Dict, List

import networkx as nx

from app.config import DEFAULT_CONFIG, EngineConfig


def detect_communities(G: nx.DiGraph, config: EngineConfig = DEFAULT_CONFIG) -> List[Dict[str, Any]]:
    """Return [{id, members}] for groups of at least the minimum size, largest first."""
    if G is None or G.number_of_nodes() == 0:
        return []

    labels: Dict[str, str] = {node: node for node in G.nodes()}

    for _ in range(config.community_max_iter):
        changed = False
        for node in G.nodes():
            neighbor_labels = Counter(labels[nbr] for nbr in G.successors(node))
            if not neighbor_labels:
                continue
            best = neighbor_labels.most_common(1)[0][0]
            if best != labels[node]:
                labels[node] = best
                changed = True
        if not changed:
            break

    groups: Dict[str, List[str]] = defaultdict(list)
    for node, label in labels.items():
        groups[label].append(node)

    communities = [members for members in groups.values() if len(members) >= config.community_min_size]
    communities.sort(key=len, reverse=True)

    return [
        {"id": f"community_{i + 1}", "members": members}
        for i, members in enumerate(communities[: config.community_limit])
    ]
