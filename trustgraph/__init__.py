# __init__.py

from trustgraph.attestation_graph import AttestationGraph, Edge, build_attestation_graph
from trustgraph.config import PageRankConfig, PageRankSourceConfig, TrustConfig
from trustgraph.pagerank import TrustAwarePageRank, calculate_pagerank
from trustgraph.reward_allocation import RewardAllocator, allocate_rewards

__all__ = [
    "AttestationGraph",
    "Edge",
    "build_attestation_graph",
    "PageRankConfig",
    "PageRankSourceConfig",
    "TrustConfig",
    "TrustAwarePageRank",
    "calculate_pagerank",
    "RewardAllocator",
    "allocate_rewards",
]
