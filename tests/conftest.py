"""
Pytest configuration and shared fixtures for the citegraph test suite.
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset the global mutation logger before and after each test."""
    from citegraph.infrastructure.logger import reset_logger

    reset_logger()
    yield
    reset_logger()


@pytest.fixture
def mutation_logger():
    """A private, enabled mutation logger."""
    from citegraph.infrastructure.logger import MutationLogger
    return MutationLogger()


@pytest.fixture
def fresh_graph(mutation_logger):
    """A graph holding only the root "R"."""
    from citegraph.citation_graph import CitationGraph
    return CitationGraph("R", mutation_logger=mutation_logger)


@pytest.fixture
def diamond_graph(fresh_graph):
    """
    R <- A, R <- B, A <- C, B <- C  (C cites A and B)
    """
    fresh_graph.create("A", "R")
    fresh_graph.create("B", "R")
    fresh_graph.create("C", ["A", "B"])
    return fresh_graph


@pytest.fixture
def flaky_arena():
    """Factory: install a FlakyArena into a graph and return it."""
    from tests.helpers import FlakyArena

    def install(graph, method, fail_on_call=1, error=None):
        proxy = FlakyArena(graph._graph, method, fail_on_call, error)
        graph._graph = proxy
        return proxy
    return install
