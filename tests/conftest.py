"""Shared fixtures for trustgraph tests."""

import pytest

from trustgraph.attestation_graph import AttestationGraph


def address(n: int) -> str:
    """Deterministic lowercase address whose 20 bytes all equal ``n``."""
    return "0x" + f"{n:02x}" * 20


@pytest.fixture
def accounts():
    """Seven addresses in ascending order."""
    names = ["alice", "bob", "charlie", "diana", "grace", "henry", "ivy"]
    return {name: address(0x11 * (i + 1)) for i, name in enumerate(names)}


@pytest.fixture
def spam_graph(accounts):
    """One trusted authority vouching into a small community plus three self-vouching spammers."""
    graph = AttestationGraph()
    graph.add_edge(accounts["alice"], accounts["bob"], 95.0)
    graph.add_edge(accounts["grace"], accounts["grace"], 100.0)
    graph.add_edge(accounts["henry"], accounts["henry"], 100.0)
    graph.add_edge(accounts["ivy"], accounts["ivy"], 100.0)
    graph.add_edge(accounts["bob"], accounts["charlie"], 70.0)
    graph.add_edge(accounts["charlie"], accounts["diana"], 65.0)
    graph.add_edge(accounts["diana"], accounts["bob"], 40.0)
    graph.sort()
    return graph
