"""
Graph Metrics — summary statistics for the alert correlation graph.

Time Complexity: O(V + E), clustering O(V × d²)
Memory: O(V)
"""

from typing import Any, Dict

import networkx as nx


def compute_graph_summary(G: nx.DiGraph) -> Dict[str, Any]:
    """Return basic graph-level metrics. Symmetric edge pairs count once."""
    if G is None or G.number_of_nodes() == 0:
        return {
            "total_nodes": 0,
            "total_edges": 0,
            "density": 0.0,
            "is_connected": False,
            "num_components": 0,
        }
    undirected = G.to_undirected()
    return {
        "total_nodes": G.number_of_nodes(),
        "total_edges": undirected.number_of_edges(),
        "density": round(nx.density(undirected), 4),
        "is_connected": nx.is_connected(undirected),
        "num_components": nx.number_connected_components(undirected),
    }


def compute_clustering_coefficient(G: nx.DiGraph) -> float:
    """Mean local clustering coefficient of the undirected view."""
    if G is None or G.number_of_nodes() < 3:
        return 0.0
    return round(float(nx.average_clustering(G.to_undirected())), 4)
