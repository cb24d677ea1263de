"""
CITEGRAPH GRAPH INVARIANTS - Checking the Arena Against the Index

The citation graph keeps its topology in a rustworkx arena and its
identifiers in a PublicationIndex. The two must agree at all times.
This module checks that they do.

Invariants Implemented:
1. Handshaking Lemma: sum(in_degree) == sum(out_degree) == |E|
2. Root Integrity: the root is registered and cites nothing
3. Index Consistency: every arena node is registered exactly once under
   the identifier its payload reports, and nothing else is registered
4. Reachability: every node is owned, directly or transitively, by the root
5. Acyclicity: no publication transitively cites itself

All checks are O(V+E) using rustworkx primitives. CitationGraph.validate()
wraps them; tests call it after every scenario.
"""
import rustworkx as rx
from typing import Any, Dict, Hashable, List, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum

from citegraph.index import PublicationIndex


# =============================================================================
# INVARIANT RESULTS
# =============================================================================

class InvariantSeverity(Enum):
    """Severity levels for invariant violations."""
    ERROR = "error"      # The graph is corrupt
    WARNING = "warning"  # Suspicious, not necessarily corrupt


@dataclass
class InvariantViolation:
    """A specific invariant violation."""
    invariant: str
    severity: InvariantSeverity
    message: str
    publications_involved: List[Hashable] = field(default_factory=list)


@dataclass
class InvariantReport:
    """Complete invariant validation report."""
    valid: bool
    violations: List[InvariantViolation]
    metrics: Dict[str, Any]

    @property
    def errors(self) -> List[InvariantViolation]:
        return [v for v in self.violations if v.severity == InvariantSeverity.ERROR]

    @property
    def warnings(self) -> List[InvariantViolation]:
        return [v for v in self.violations if v.severity == InvariantSeverity.WARNING]


CheckResult = Tuple[bool, Optional[InvariantViolation]]


# =============================================================================
# GRAPH INVARIANTS (Rustworkx-Native)
# =============================================================================

class GraphInvariants:
    """
    Invariant validators over a citation arena and its identifier index.

    All methods are static. `root` is the arena handle of the root node,
    or None for a moved-from container.
    """

    @staticmethod
    def validate_handshaking_lemma(graph: rx.PyDiGraph) -> CheckResult:
        """
        Handshaking Lemma: sum(in_degree) == sum(out_degree) == |E|

        Every citation is one arena edge, seen once as an owning edge from
        the cited publication and once as a back-reference from the citing
        one. A mismatch means the two views disagree.
        """
        num_edges = graph.num_edges()
        node_indices = list(graph.node_indices())

        total_in = sum(graph.in_degree(idx) for idx in node_indices)
        total_out = sum(graph.out_degree(idx) for idx in node_indices)

        if total_in != total_out or total_in != num_edges:
            return False, InvariantViolation(
                invariant="handshaking_lemma",
                severity=InvariantSeverity.ERROR,
                message=(
                    f"sum(in_degree)={total_in}, sum(out_degree)={total_out}, "
                    f"|E|={num_edges}"
                ),
            )

        return True, None

    @staticmethod
    def validate_root(
        graph: rx.PyDiGraph,
        index: PublicationIndex,
        root: Optional[int],
    ) -> CheckResult:
        """Root Integrity: registered, present in the arena, cites nothing."""
        if root is None:
            if len(index) or graph.num_nodes():
                return False, InvariantViolation(
                    invariant="root_integrity",
                    severity=InvariantSeverity.ERROR,
                    message="Graph has publications but no root",
                )
            return True, None

        if root not in set(graph.node_indices()) or root not in index.handles():
            return False, InvariantViolation(
                invariant="root_integrity",
                severity=InvariantSeverity.ERROR,
                message=f"Root handle {root} is not registered",
            )

        if graph.in_degree(root) != 0:
            root_id = index.id_of(root)
            return False, InvariantViolation(
                invariant="root_integrity",
                severity=InvariantSeverity.ERROR,
                message=f"Root {root_id!r} cites {graph.in_degree(root)} publication(s)",
                publications_involved=[root_id],
            )

        return True, None

    @staticmethod
    def validate_index_consistency(
        graph: rx.PyDiGraph,
        index: PublicationIndex,
    ) -> CheckResult:
        """
        Index Consistency: the index and the arena describe the same nodes.

        Also catches callers that changed a payload's identifier through
        CitationGraph.access().
        """
        arena_handles = set(graph.node_indices())
        index_handles = set(index.handles())

        if len(index) != len(index_handles):
            return False, InvariantViolation(
                invariant="index_consistency",
                severity=InvariantSeverity.ERROR,
                message="Identifier and handle maps have different sizes",
            )

        unregistered = arena_handles - index_handles
        stale = index_handles - arena_handles
        if unregistered or stale:
            return False, InvariantViolation(
                invariant="index_consistency",
                severity=InvariantSeverity.ERROR,
                message=(
                    f"{len(unregistered)} unregistered node(s), "
                    f"{len(stale)} stale index entr(ies)"
                ),
                publications_involved=[index.id_of(h) for h in sorted(stale)][:10],
            )

        renamed = [
            index.id_of(h) for h in arena_handles
            if graph[h].get_id() != index.id_of(h)
        ]
        if renamed:
            return False, InvariantViolation(
                invariant="index_consistency",
                severity=InvariantSeverity.ERROR,
                message=f"{len(renamed)} payload(s) report a different identifier",
                publications_involved=renamed[:10],
            )

        return True, None

    @staticmethod
    def validate_reachability(
        graph: rx.PyDiGraph,
        index: PublicationIndex,
        root: Optional[int],
    ) -> CheckResult:
        """Reachability: nothing survives without an ownership chain to the root."""
        if root is None or root not in set(graph.node_indices()):
            return True, None

        reachable = set(rx.descendants(graph, root))
        reachable.add(root)

        orphans = [h for h in graph.node_indices() if h not in reachable]
        if orphans:
            return False, InvariantViolation(
                invariant="reachability",
                severity=InvariantSeverity.ERROR,
                message=f"{len(orphans)} publication(s) unreachable from the root",
                publications_involved=[index.id_of(h) for h in orphans if h in index.handles()][:10],
            )

        return True, None

    @staticmethod
    def validate_acyclicity(graph: rx.PyDiGraph, index: PublicationIndex) -> CheckResult:
        """Acyclicity: uses rx.is_directed_acyclic_graph for an O(V+E) check."""
        if rx.is_directed_acyclic_graph(graph):
            return True, None

        cycle = GraphInvariants._find_cycle(graph)
        return False, InvariantViolation(
            invariant="acyclicity",
            severity=InvariantSeverity.ERROR,
            message=f"Citation cycle detected involving {len(cycle)} publication(s)",
            publications_involved=[index.id_of(h) for h in cycle if h in index.handles()][:10],
        )

    @staticmethod
    def _find_cycle(graph: rx.PyDiGraph) -> List[int]:
        """Handles of one cycle, for error reporting (iterative DFS)."""
        WHITE, GRAY, BLACK = 0, 1, 2
        color = {idx: WHITE for idx in graph.node_indices()}

        for start in graph.node_indices():
            if color[start] != WHITE:
                continue
            path = [start]
            stack = [iter(graph.successor_indices(start))]
            color[start] = GRAY
            while stack:
                advanced = False
                for succ in stack[-1]:
                    if color[succ] == GRAY:
                        return path[path.index(succ):]
                    if color[succ] == WHITE:
                        color[succ] = GRAY
                        path.append(succ)
                        stack.append(iter(graph.successor_indices(succ)))
                        advanced = True
                        break
                if not advanced:
                    color[path.pop()] = BLACK
                    stack.pop()

        return []

    @staticmethod
    def validate_all(
        graph: rx.PyDiGraph,
        index: PublicationIndex,
        root: Optional[int],
        raise_on_error: bool = False,
    ) -> InvariantReport:
        """
        Run all invariant validations and return a comprehensive report.

        Args:
            graph: The citation arena
            index: The identifier index
            root: Root handle (None for a moved-from container)
            raise_on_error: If True, raise GraphInvariantError on the first ERROR

        Returns:
            InvariantReport with all results and metrics
        """
        checks = [
            lambda: GraphInvariants.validate_handshaking_lemma(graph),
            lambda: GraphInvariants.validate_root(graph, index, root),
            lambda: GraphInvariants.validate_index_consistency(graph, index),
            lambda: GraphInvariants.validate_reachability(graph, index, root),
            lambda: GraphInvariants.validate_acyclicity(graph, index),
        ]

        violations: List[InvariantViolation] = []
        for check in checks:
            _, violation = check()
            if violation is None:
                continue
            violations.append(violation)
            if raise_on_error and violation.severity == InvariantSeverity.ERROR:
                from citegraph.citation_graph import GraphInvariantError
                raise GraphInvariantError(violation.message)

        metrics = get_graph_metrics(graph)

        return InvariantReport(
            valid=all(v.severity != InvariantSeverity.ERROR for v in violations),
            violations=violations,
            metrics=metrics,
        )


# =============================================================================
# INCREMENTAL VALIDATORS (For Pre-Insert Checks)
# =============================================================================

class IncrementalValidator:
    """
    Checks run BEFORE a mutation, looking only at the affected neighborhood.
    """

    @staticmethod
    def would_create_cycle(graph: rx.PyDiGraph, parent_idx: int, child_idx: int) -> bool:
        """
        Check if adding the owning edge parent->child would create a cycle.

        It would iff the parent is the child itself or is already owned,
        directly or transitively, by the child.
        """
        if parent_idx == child_idx:
            return True
        return parent_idx in rx.descendants(graph, child_idx)


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def get_graph_metrics(graph: rx.PyDiGraph) -> Dict[str, Any]:
    """Basic graph metrics without full validation."""
    return {
        "publication_count": graph.num_nodes(),
        "citation_count": graph.num_edges(),
        "is_dag": rx.is_directed_acyclic_graph(graph),
        "weakly_connected_components": (
            rx.number_weakly_connected_components(graph) if graph.num_nodes() else 0
        ),
    }
