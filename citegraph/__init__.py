"""
CITEGRAPH - A rooted citation graph with strong exception safety.

This package provides:
- CitationGraph: the container (create, add_citation, remove, queries)
- Publication: the default payload, and the PublicationLike contract
- The exception hierarchy rooted at CitationGraphError
- GraphConfig / load_config: configuration from citegraph.toml
"""

from citegraph.citation_graph import (
    CitationGraph,
    CitationGraphError,
    PublicationNotFound,
    PublicationAlreadyCreated,
    TriedToRemoveRoot,
    GraphInvariantError,
    CitationCycleError,
    GraphMovedError,
)
from citegraph.schemas import Publication, PublicationLike, PublicationFactory
from citegraph.transaction import RollbackError
from citegraph.graph_invariants import InvariantReport, InvariantViolation, InvariantSeverity
from citegraph.infrastructure.config import GraphConfig, load_config

__version__ = "0.1.0"

__all__ = [
    # Container
    "CitationGraph",
    # Errors
    "CitationGraphError",
    "PublicationNotFound",
    "PublicationAlreadyCreated",
    "TriedToRemoveRoot",
    "GraphInvariantError",
    "CitationCycleError",
    "GraphMovedError",
    "RollbackError",
    # Payloads
    "Publication",
    "PublicationLike",
    "PublicationFactory",
    # Validation
    "InvariantReport",
    "InvariantViolation",
    "InvariantSeverity",
    # Configuration
    "GraphConfig",
    "load_config",
]
