# pagerank.py

import logging
from dataclasses import dataclass, field
from typing import Dict, Hashable, List, Optional, Tuple

import numpy as np
import scipy.sparse as sp
from scipy.sparse.csgraph import shortest_path

from trustgraph.attestation_graph import AttestationGraph
from trustgraph.config import PageRankConfig

logger = logging.getLogger(__name__)

UNREACHABLE = -1


@dataclass
class PageRankResult:
    """Normalized scores plus convergence details of one solver run."""

    scores: Dict[Hashable, float]
    iterations: int = 0
    converged: bool = False
    max_delta: float = 0.0


@dataclass
class TrustStatistics:
    """Breakdown of the score mass between seeds, regular and isolated nodes."""

    trusted_count: int = 0
    trusted_total_score: float = 0.0
    regular_count: int = 0
    regular_total_score: float = 0.0
    isolated_count: int = 0
    isolated_total_score: float = 0.0
    self_vouching_count: int = 0
    top_non_trusted: List[Tuple[Hashable, float, Optional[int]]] = field(default_factory=list)

    @property
    def trust_advantage(self) -> Optional[float]:
        """Average seed score divided by average regular score, if both groups are scored."""
        if self.trusted_count == 0 or self.regular_count == 0 or self.regular_total_score == 0.0:
            return None
        return (self.trusted_total_score / self.trusted_count) / (
            self.regular_total_score / self.regular_count
        )


class TrustAwarePageRank:
    def __init__(self, graph: AttestationGraph, config: Optional[PageRankConfig] = None):
        """
        Personalized power iteration over an attestation graph.

        The teleportation vector is the initial distribution, so when trusted seeds
        are configured the restart mass concentrates on them. Each iteration computes

            R(t+1) = (1 - d) * p + d * mask * (Mᵀ * R(t))

        where M holds the per-edge contributions (trust-multiplied weight divided by
        the maximum weight the attester could have issued, times the trust decay of
        the attester) and ``mask`` zeroes the propagated term of isolated nodes.

        Nodes are always processed in sorted account order so that identical graphs
        and configurations give identical scores.

        Args:
            graph (AttestationGraph): Graph to score; must not be mutated while solving.
            config (PageRankConfig, optional): Solver parameters; defaults are used if omitted.
        """
        self.graph = graph
        self.config = (config if config is not None else PageRankConfig()).validate()
        self.trust = self.config.trust_config
        self.trust_enabled = self.config.has_trust_enabled()
        self.damping = self.config.damping_factor
        self.max_iter = self.config.max_iterations
        self.tol = self.config.tolerance

        self.nodes = sorted(graph.nodes())
        self.node_to_index = {node: idx for idx, node in enumerate(self.nodes)}
        self.seed_mask = np.array(
            [self.trust_enabled and self.trust.is_trusted_seed(node) for node in self.nodes],
            dtype=bool,
        )

    def _effective_weight(self, node: Hashable, base_weight: float) -> float:
        if self.trust.is_trusted_seed(node):
            return base_weight * self.trust.trust_multiplier
        return base_weight

    def initial_distribution(self) -> np.ndarray:
        """
        Builds the initial (and teleportation) vector.

        Without trust every node starts at 1/N. With trust the seeds present in the
        graph split ``trust_share`` evenly and every other node splits the rest. If
        either group is empty the other group takes the whole mass.

        Returns:
            np.ndarray: Vector of length N summing to 1.
        """
        N = len(self.nodes)
        if not self.trust_enabled:
            return np.full(N, 1.0 / N, dtype=np.float64)

        trusted_count = int(np.count_nonzero(self.seed_mask))
        regular_count = N - trusted_count
        trusted_total = self.trust.trust_share
        regular_total = 1.0 - self.trust.trust_share
        if trusted_count == 0:
            regular_total = 1.0
        elif regular_count == 0:
            trusted_total = 1.0

        p = np.zeros(N, dtype=np.float64)
        if trusted_count > 0:
            p[self.seed_mask] = trusted_total / trusted_count
        if regular_count > 0:
            p[~self.seed_mask] = regular_total / regular_count
        return p

    def trust_distances(self) -> np.ndarray:
        """
        Breadth-first hop counts from the nearest trusted seed along directed edges.

        Edge weights are ignored: any stored edge, zero weight or self-loop included,
        counts as a single hop.

        Returns:
            np.ndarray: Integer distance per node, UNREACHABLE for isolated nodes.
        """
        N = len(self.nodes)
        distances = np.full(N, UNREACHABLE, dtype=np.int64)
        seed_indices = np.flatnonzero(self.seed_mask)
        if len(seed_indices) == 0:
            return distances

        rows, cols = [], []
        for node in self.nodes:
            i = self.node_to_index[node]
            for target, _ in self.graph.outgoing(node):
                rows.append(i)
                cols.append(self.node_to_index[target])
        adjacency = sp.csr_matrix(
            (np.ones(len(rows), dtype=np.float64), (rows, cols)), shape=(N, N)
        )
        hops = shortest_path(adjacency, directed=True, unweighted=True, indices=seed_indices)
        nearest = np.atleast_2d(hops).min(axis=0)
        reachable = np.isfinite(nearest)
        distances[reachable] = nearest[reachable].astype(np.int64)

        logger.info(
            "Trust distance analysis: %d reachable, %d unreachable from trusted seeds",
            int(np.count_nonzero(reachable)), int(N - np.count_nonzero(reachable)),
        )
        return distances

    def transition_matrix(self, distances: Optional[np.ndarray] = None) -> sp.csr_matrix:
        """
        Builds the sparse contribution matrix M (rows = attesters, columns = recipients).

        Stored weights are clamped to ``[min_weight, max_weight]`` first. For attester
        ``a`` only edges that are not self-loops and carry positive weight count. The normalization denominator is the trust-adjusted weight ``a`` would
        have issued with every such edge at ``max_weight``, so one strong vouch counts
        more than many weak ones. Parallel edges to the same recipient add up.

        Args:
            distances (np.ndarray, optional): Output of ``trust_distances``; required
                when trust is enabled.

        Returns:
            sp.csr_matrix: N x N matrix of contribution fractions.
        """
        N = len(self.nodes)
        rows, cols, data = [], [], []
        for attester in self.nodes:
            i = self.node_to_index[attester]
            if self.trust_enabled:
                distance = distances[i]
                if distance == UNREACHABLE:
                    continue
                decay = self.trust.trust_decay ** int(distance)
            else:
                decay = 1.0
            if decay == 0.0:
                continue

            # Graphs built with other bounds are clamped to this solver's range.
            edges = [(target, self.config.clamp_weight(weight))
                     for target, weight in self.graph.outgoing(attester) if target != attester]
            edges = [(target, weight) for target, weight in edges if weight > 0.0]
            if not edges:
                continue
            max_possible = self._effective_weight(attester, len(edges) * self.config.max_weight)
            if max_possible == 0.0:
                continue

            for target, weight in edges:
                rows.append(i)
                cols.append(self.node_to_index[target])
                data.append(self._effective_weight(attester, weight) / max_possible * decay)

        return sp.csr_matrix(
            (np.asarray(data, dtype=np.float64), (rows, cols)), shape=(N, N)
        )

    def compute(self) -> PageRankResult:
        """
        Runs the power iteration and normalizes the scores to sum to 1.

        Returns:
            PageRankResult: Scores keyed by account plus convergence information.
        """
        N = len(self.nodes)
        if N == 0:
            logger.info("Empty attestation graph, no scores to compute")
            return PageRankResult(scores={}, converged=True)

        if self.trust_enabled:
            logger.info(
                "Starting Trust Aware PageRank calculation for %d nodes (%d trusted seeds)",
                N, len(self.trust.trusted_seeds),
            )
            distances = self.trust_distances()
            propagate = distances != UNREACHABLE
        else:
            logger.info("Starting standard PageRank calculation for %d nodes", N)
            distances = None
            propagate = np.ones(N, dtype=bool)

        p = self.initial_distribution()
        M_transpose = self.transition_matrix(distances).T.tocsr()
        teleport = (1.0 - self.damping) * p

        R = p.copy()
        iterations = 0
        converged = False
        max_delta = 0.0
        for iteration in range(self.max_iter):
            iterations = iteration + 1
            propagated = self.damping * (M_transpose @ R)
            R_new = np.where(propagate, teleport + propagated, teleport)

            max_delta = float(np.max(np.abs(R_new - R)))
            R = R_new
            if iteration % 10 == 0:
                logger.debug("PageRank iteration %d: max delta = %.8f", iteration, max_delta)
            if max_delta < self.tol:
                converged = True
                logger.info("PageRank converged after %d iterations", iterations)
                break

        if not converged:
            logger.warning(
                "PageRank did not converge within %d iterations (max delta %.3e)",
                self.max_iter, max_delta,
            )

        total = float(np.sum(R))
        if total > 0.0:
            R = R / total

        scores = {node: float(R[idx]) for idx, node in enumerate(self.nodes)}
        if self.trust_enabled:
            log_trust_statistics(compute_trust_statistics(self.graph, scores, self.config, self.nodes,
                                                          distances))
        return PageRankResult(scores=scores, iterations=iterations,
                              converged=converged, max_delta=max_delta)


def calculate_pagerank(graph: AttestationGraph,
                       config: Optional[PageRankConfig] = None) -> Dict[Hashable, float]:
    """
    Computes Trust Aware PageRank scores for every node of ``graph``.

    Returns an empty dict for an empty graph; otherwise scores sum to 1.0.
    """
    return TrustAwarePageRank(graph, config).compute().scores


def compute_trust_statistics(graph: AttestationGraph, scores: Dict[Hashable, float],
                             config: PageRankConfig, nodes: Optional[List[Hashable]] = None,
                             distances: Optional[np.ndarray] = None,
                             top_n: int = 5) -> TrustStatistics:
    """
    Summarizes how the score mass splits between seeds, regular and isolated nodes.

    Args:
        graph (AttestationGraph): Scored graph.
        scores (Dict): Output of ``calculate_pagerank``.
        config (PageRankConfig): Configuration used for scoring.
        nodes (List, optional): Sorted node list matching ``distances``.
        distances (np.ndarray, optional): Trust distances; recomputed if omitted.
        top_n (int): Number of best non-seed nodes to report.

    Returns:
        TrustStatistics: Counts and score totals per group.
    """
    if nodes is None or distances is None:
        solver = TrustAwarePageRank(graph, config)
        nodes = solver.nodes
        distances = solver.trust_distances()
    distance_of = {node: int(distances[idx]) for idx, node in enumerate(nodes)}
    trust = config.trust_config

    stats = TrustStatistics()
    for node in nodes:
        if any(target == node for target, _ in graph.outgoing(node)):
            stats.self_vouching_count += 1

        score = scores.get(node, 0.0)
        if distance_of[node] == UNREACHABLE:
            stats.isolated_count += 1
            stats.isolated_total_score += score
        elif trust.is_trusted_seed(node):
            stats.trusted_count += 1
            stats.trusted_total_score += score
        else:
            stats.regular_count += 1
            stats.regular_total_score += score

    non_trusted = [(node, scores.get(node, 0.0)) for node in nodes if not trust.is_trusted_seed(node)]
    non_trusted.sort(key=lambda item: (-item[1], item[0]))
    for node, score in non_trusted[:top_n]:
        distance = distance_of[node]
        stats.top_non_trusted.append((node, score, None if distance == UNREACHABLE else distance))
    return stats


def log_trust_statistics(stats: TrustStatistics) -> None:
    logger.info(
        "Trusted seeds: %d addresses with %.4f total score",
        stats.trusted_count, stats.trusted_total_score,
    )
    logger.info(
        "Regular nodes: %d addresses with %.4f total score",
        stats.regular_count, stats.regular_total_score,
    )
    logger.info(
        "Isolated nodes: %d (unreachable from trusted seeds), %.6f total score",
        stats.isolated_count, stats.isolated_total_score,
    )
    logger.info("Self-vouching nodes: %d (ignored in calculation)", stats.self_vouching_count)
    if stats.trust_advantage is not None:
        logger.info("Trust advantage: %.2fx average score", stats.trust_advantage)
    for rank, (node, score, distance) in enumerate(stats.top_non_trusted, start=1):
        where = "isolated" if distance is None else f"distance {distance}"
        logger.debug("  %d. %s: %.6f (%s)", rank, node, score, where)
