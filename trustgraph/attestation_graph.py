# attestation_graph.py

import logging
from typing import Dict, Hashable, Iterable, List, NamedTuple, Optional, Tuple, Union

from trustgraph.config import MAX_WEIGHT, MIN_WEIGHT

logger = logging.getLogger(__name__)


class Edge(NamedTuple):
    """A directed, weighted vouch from ``source`` to ``target``."""

    source: Hashable
    target: Hashable
    weight: float


class AttestationGraph:
    def __init__(self, allow_duplicates: bool = True,
                 min_weight: Optional[float] = MIN_WEIGHT, max_weight: Optional[float] = MAX_WEIGHT):
        """
        Directed, weighted graph of accounts built from attestation edges.

        Nodes are kept in first-seen order until ``sort()`` is called. Each node
        maps to an ordered list of ``(target, weight)`` pairs.

        Args:
            allow_duplicates (bool): If True every added edge is appended as a parallel
                edge. If False, adding an edge to an existing target overwrites its weight
                (last write wins), which lets a later attestation supersede an earlier one.
            min_weight (float, optional): Lower clamp bound applied on insertion; None disables it.
            max_weight (float, optional): Upper clamp bound applied on insertion; None disables it.
        """
        self.allow_duplicates = allow_duplicates
        self.min_weight = min_weight
        self.max_weight = max_weight
        self._nodes: List[Hashable] = []
        self._outgoing: Dict[Hashable, List[Tuple[Hashable, float]]] = {}
        self._incoming: Dict[Hashable, int] = {}

    def _register(self, node: Hashable) -> None:
        if node not in self._outgoing:
            self._outgoing[node] = []
            self._incoming[node] = 0
            self._nodes.append(node)

    def _clamp(self, weight: float) -> float:
        weight = float(weight)
        if weight != weight:  # NaN
            return self.min_weight if self.min_weight is not None else 0.0
        if self.min_weight is not None and weight < self.min_weight:
            return self.min_weight
        if self.max_weight is not None and weight > self.max_weight:
            return self.max_weight
        return weight

    def add_edge(self, source: Hashable, target: Hashable, weight: float) -> None:
        """
        Adds an edge from ``source`` to ``target``, registering both endpoints.

        The stored weight is the base weight; trust adjustments happen in the solver.
        """
        self._register(source)
        self._register(target)
        weight = self._clamp(weight)

        edges = self._outgoing[source]
        if not self.allow_duplicates:
            for index, (existing, _) in enumerate(edges):
                if existing == target:
                    edges[index] = (target, weight)
                    return
        edges.append((target, weight))
        self._incoming[target] += 1

    def sort(self) -> None:
        """Orders nodes and each adjacency list by account identity for deterministic iteration."""
        self._nodes.sort()
        for edges in self._outgoing.values():
            edges.sort(key=lambda edge: edge[0])

    def nodes(self) -> List[Hashable]:
        return list(self._nodes)

    def outgoing(self, node: Hashable) -> List[Tuple[Hashable, float]]:
        return list(self._outgoing.get(node, ()))

    def incoming_count(self, node: Hashable) -> int:
        return self._incoming.get(node, 0)

    def edge_count(self) -> int:
        return sum(len(edges) for edges in self._outgoing.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node: Hashable) -> bool:
        return node in self._outgoing

    def __repr__(self):
        return (f"AttestationGraph(nodes={len(self._nodes)}, edges={self.edge_count()}, "
                f"allow_duplicates={self.allow_duplicates})")


def build_attestation_graph(edges: Iterable[Union[Edge, Tuple[Hashable, Hashable, float]]],
                            allow_duplicates: bool = True,
                            min_weight: Optional[float] = MIN_WEIGHT,
                            max_weight: Optional[float] = MAX_WEIGHT) -> AttestationGraph:
    """
    Builds a sorted attestation graph from an ordered sequence of edges.

    Args:
        edges (Iterable): Edges or ``(source, target, weight)`` tuples, in replay order.
        allow_duplicates (bool): Duplicate policy, see ``AttestationGraph``.
        min_weight (float, optional): Lower clamp bound.
        max_weight (float, optional): Upper clamp bound.

    Returns:
        AttestationGraph: Graph with nodes and edges in canonical order.
    """
    graph = AttestationGraph(allow_duplicates=allow_duplicates,
                             min_weight=min_weight, max_weight=max_weight)
    for source, target, weight in edges:
        graph.add_edge(source, target, weight)
    graph.sort()
    logger.info("Built attestation graph: %d nodes, %d edges", len(graph), graph.edge_count())
    return graph
