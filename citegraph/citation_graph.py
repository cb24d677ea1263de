"""
CITEGRAPH CITATION GRAPH - The Ownership Engine

A rooted citation graph stored in a rustworkx arena. An edge P -> C means
"publication C cites publication P". Edges are ownership: a publication
lives exactly as long as something owns it, where owners are the
publications it cites plus, for the root, the container itself.

Architecture (Arena + Handles):
  Caller Layer
  - Uses publication identifiers: "R", "A", ("doi", "10.1/x"), ...
  - Calls: graph.create("C", ["A", "B"]), graph.remove("A")

  Index Layer (citegraph.index.PublicationIndex)
  - identifier <-> arena handle, the only answer to "does it exist"

  Arena Layer (rustworkx.PyDiGraph)
  - node slot = publication payload, slot index = handle
  - successor_indices(N)   = citing successors (owned by N)
  - predecessor_indices(N) = cited predecessors (back-references)

Ownership count of a node = in_degree + 1 if it is the root. When it
drops to zero the node is released: deregistered from the index, removed
from the arena, and every successor left without owners is released in
turn. Back-references never dangle because the arena drops a released
node's edges together with the node.

Every mutation is all-or-nothing. Multi-step mutations record their
sub-steps in an UndoLog and unwind it on failure.

The graph is kept acyclic: a citation that would close a cycle is
rejected. Unreachable cycles would keep each other's ownership counts
above zero forever.
"""
import logging
from collections.abc import Set as AbstractSet
from typing import Hashable, Iterable, Iterator, List, Optional, Tuple, Union

import rustworkx as rx

from citegraph.index import PublicationIndex
from citegraph.schemas import Publication, PublicationFactory, PublicationLike
from citegraph.transaction import UndoLog
from citegraph.graph_invariants import GraphInvariants, IncrementalValidator, InvariantReport
from citegraph.infrastructure.config import GraphConfig
from citegraph.infrastructure.logger import MutationLogger, get_logger as get_mutation_logger


logger = logging.getLogger("citegraph.graph")


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================

class CitationGraphError(Exception):
    """Base exception for citation graph operations."""
    pass


class PublicationNotFound(CitationGraphError):
    """Raised when an identifier is not in the graph."""
    def __init__(self, publication_id: Hashable):
        self.publication_id = publication_id
        super().__init__(f"Publication not found: {publication_id!r}")


class PublicationAlreadyCreated(CitationGraphError):
    """Raised when creating a publication whose identifier already exists."""
    def __init__(self, publication_id: Hashable):
        self.publication_id = publication_id
        super().__init__(f"Publication already created: {publication_id!r}")


class TriedToRemoveRoot(CitationGraphError):
    """Raised when remove() targets the root publication."""
    def __init__(self, publication_id: Hashable):
        self.publication_id = publication_id
        super().__init__(f"Cannot remove the root publication: {publication_id!r}")


class GraphInvariantError(CitationGraphError):
    """Raised when a graph invariant is or would be violated."""
    pass


class CitationCycleError(GraphInvariantError):
    """Raised when a citation would make a publication transitively cite itself."""
    def __init__(self, child_id: Hashable, parent_id: Hashable):
        self.child_id = child_id
        self.parent_id = parent_id
        super().__init__(
            f"Cannot add citation {child_id!r} -> {parent_id!r}: "
            f"{parent_id!r} already cites {child_id!r} directly or transitively"
        )


class GraphMovedError(CitationGraphError):
    """Raised when the root of a moved-from graph is requested."""
    pass


ParentIds = Union[Hashable, List[Hashable], AbstractSet]


# =============================================================================
# CITATION GRAPH (The Container)
# =============================================================================

class CitationGraph:
    """
    Rooted citation graph with strong exception safety.

    Usage:
        graph = CitationGraph("R")
        graph.create("A", "R")
        graph.create("B", "R")
        graph.create("C", ["A", "B"])

        graph.get_parents("C")    # ["A", "B"]
        graph.remove("A")         # "C" survives: "B" still owns it

    Thread Safety:
        NOT thread-safe. Use external locking if needed for concurrent access.
    """

    def __init__(
        self,
        root_id: Hashable,
        publication_factory: Optional[PublicationFactory] = None,
        config: Optional[GraphConfig] = None,
        mutation_logger: Optional[MutationLogger] = None,
    ):
        """
        Create a graph holding only the root publication.

        Args:
            root_id: Identifier of the root publication
            publication_factory: Builds a payload from an identifier.
                                 Defaults to Publication.from_id.
            config: Graph configuration. Defaults to GraphConfig().
            mutation_logger: Where committed mutations are recorded. Defaults
                             to a logger built from `config`, or the global one.
                             Only a logger built from `config` is owned, and
                             closed by close().
        """
        self.config = config or GraphConfig()
        self._factory: PublicationFactory = publication_factory or Publication.from_id
        self._owns_logger = False

        if mutation_logger is not None:
            self._mutation_logger = mutation_logger
        elif config is not None:
            self._mutation_logger = MutationLogger(config.logger_config())
            self._owns_logger = True
        else:
            self._mutation_logger = get_mutation_logger()

        self._graph: rx.PyDiGraph = rx.PyDiGraph(multigraph=False)
        self._index = PublicationIndex()
        self._root: Optional[int] = None

        payload = self._build_payload(root_id)
        with UndoLog("construct") as undo:
            handle = self._graph.add_node(payload)
            undo.record("add root node", lambda: self._graph.remove_node(handle))
            self._index.register(root_id, handle)
        self._root = handle

        logger.debug(f"Created citation graph rooted at {root_id!r}")
        self._mutation_logger.log_publication_created(root_id)

    # =========================================================================
    # MOVE / COPY
    # =========================================================================

    @classmethod
    def moved(cls, other: "CitationGraph") -> "CitationGraph":
        """
        Build a graph that takes over `other`'s publications.

        `other` is left empty (moved-from). Never raises.
        """
        graph = cls.__new__(cls)
        graph.config = other.config
        graph._mutation_logger = other._mutation_logger
        graph._owns_logger, other._owns_logger = other._owns_logger, False
        graph._factory = other._factory
        graph._graph = rx.PyDiGraph(multigraph=False)
        graph._index = PublicationIndex()
        graph._root = None
        graph.move_from(other)
        return graph

    def move_from(self, other: "CitationGraph") -> "CitationGraph":
        """
        Move-assign: replace this graph's publications with `other`'s.

        This graph's previous publications are dropped, `other` is left
        empty. Moving a graph into itself does nothing. Never raises.
        """
        if other is self:
            return self

        self._graph, self._index, self._root = other._graph, other._index, other._root
        self._factory = other._factory

        other._graph = rx.PyDiGraph(multigraph=False)
        other._index = PublicationIndex()
        other._root = None
        return self

    def __copy__(self):
        raise TypeError("CitationGraph cannot be copied; use CitationGraph.moved() to transfer it")

    def __deepcopy__(self, memo):
        raise TypeError("CitationGraph cannot be copied; use CitationGraph.moved() to transfer it")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def close(self) -> None:
        """Close the mutation logger if this graph built it from its config."""
        if self._owns_logger:
            self._mutation_logger.close()

    def __enter__(self) -> "CitationGraph":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def publication_count(self) -> int:
        """Number of publications in the graph."""
        return len(self._index)

    @property
    def citation_count(self) -> int:
        """Number of citation edges in the graph."""
        return self._graph.num_edges()

    @property
    def is_moved_from(self) -> bool:
        return self._root is None

    # =========================================================================
    # QUERY OPERATIONS
    # =========================================================================

    def get_root_id(self) -> Hashable:
        """
        Identifier of the root publication.

        Raises:
            GraphMovedError: If this graph has been moved from
        """
        if self._root is None:
            raise GraphMovedError("Graph has been moved from and has no root")
        return self._index.id_of(self._root)

    def exists(self, publication_id: Hashable) -> bool:
        """Check if a publication exists."""
        return publication_id in self._index

    def get_children(self, publication_id: Hashable) -> List[Hashable]:
        """
        Identifiers of the publications that cite this one.

        Raises:
            PublicationNotFound: If the publication doesn't exist
        """
        handle = self._get_handle(publication_id)
        return self._index.ids_of(self._graph.successor_indices(handle))

    def get_parents(self, publication_id: Hashable) -> List[Hashable]:
        """
        Identifiers of the publications this one cites.

        Raises:
            PublicationNotFound: If the publication doesn't exist
        """
        handle = self._get_handle(publication_id)
        return self._index.ids_of(self._graph.predecessor_indices(handle))

    def access(self, publication_id: Hashable) -> PublicationLike:
        """
        The stored payload, for reading or in-place modification.

        The payload's identifier must not be changed: the index is keyed on it.

        Raises:
            PublicationNotFound: If the publication doesn't exist
        """
        return self._graph[self._get_handle(publication_id)]

    def get_descendants(self, publication_id: Hashable) -> List[Hashable]:
        """
        Identifiers of every publication that cites this one, directly or
        transitively. Uses rx.descendants() for O(V+E) traversal.

        Raises:
            PublicationNotFound: If the publication doesn't exist
        """
        handle = self._get_handle(publication_id)
        return self._index.ids_of(rx.descendants(self._graph, handle))

    def get_ancestors(self, publication_id: Hashable) -> List[Hashable]:
        """
        Identifiers of every publication this one cites, directly or
        transitively. The root is an ancestor of every other publication.

        Raises:
            PublicationNotFound: If the publication doesn't exist
        """
        handle = self._get_handle(publication_id)
        return self._index.ids_of(rx.ancestors(self._graph, handle))

    def iter_ids(self) -> Iterator[Hashable]:
        """Iterate over all publication identifiers."""
        return iter(self._index)

    def validate(self, raise_on_error: bool = False) -> InvariantReport:
        """Check the arena and the index against each other."""
        return GraphInvariants.validate_all(
            self._graph, self._index, self._root, raise_on_error=raise_on_error
        )

    # =========================================================================
    # MUTATION OPERATIONS
    # =========================================================================

    def create(self, publication_id: Hashable, parent_ids: ParentIds) -> None:
        """
        Add a publication that cites one or more existing publications.

        Args:
            publication_id: Identifier of the new publication
            parent_ids: Identifier of the single publication it cites, or a
                        list/set of them. Tuples are single identifiers.

        Raises:
            PublicationAlreadyCreated: If publication_id already exists
            PublicationNotFound: If any parent doesn't exist
            ValueError: If parent_ids is empty, or the factory's payload
                        reports a different identifier
        """
        parents = self._as_parent_list(parent_ids)

        if self.exists(publication_id):
            raise PublicationAlreadyCreated(publication_id)
        if not parents:
            raise ValueError("A publication must cite at least one existing publication")

        # Resolve every parent before touching anything
        parent_handles = [self._get_handle(p) for p in parents]
        parent_handles = list(dict.fromkeys(parent_handles))

        payload = self._build_payload(publication_id)

        with UndoLog("create") as undo:
            handle = self._graph.add_node(payload)
            undo.record("add node", lambda: self._graph.remove_node(handle))

            self._index.register(publication_id, handle)
            undo.record("register", lambda: self._index.deregister_handle(handle))

            for parent_handle in parent_handles:
                self._graph.add_edge(parent_handle, handle, None)
                undo.record(
                    f"link from {parent_handle}",
                    lambda p=parent_handle: self._graph.remove_edge(p, handle),
                )

        parent_list = self._index.ids_of(parent_handles)
        logger.debug(f"Created {publication_id!r} citing {parent_list!r}")
        self._mutation_logger.log_publication_created(publication_id, parent_list)

    def add_citation(self, child_id: Hashable, parent_id: Hashable) -> None:
        """
        Record that an existing publication cites another existing one.

        Adding a citation that already exists does nothing.

        Raises:
            PublicationNotFound: If either publication doesn't exist
                                 (the child is checked first)
            CitationCycleError: If the parent already cites the child,
                                directly or transitively, or child == parent
        """
        child_handle = self._get_handle(child_id)
        parent_handle = self._get_handle(parent_id)

        if self._graph.has_edge(parent_handle, child_handle):
            return

        if IncrementalValidator.would_create_cycle(self._graph, parent_handle, child_handle):
            logger.debug(f"Rejected citation {child_id!r} -> {parent_id!r}: would create a cycle")
            raise CitationCycleError(child_id, parent_id)

        with UndoLog("add_citation") as undo:
            self._graph.add_edge(parent_handle, child_handle, None)
            undo.record(
                "link",
                lambda: self._graph.remove_edge(parent_handle, child_handle),
            )

        logger.debug(f"Added citation {child_id!r} -> {parent_id!r}")
        self._mutation_logger.log_citation_created(child_id, parent_id)

    def create_many(self, entries: Iterable) -> List[Hashable]:
        """
        Create several publications in order, all or nothing.

        Args:
            entries: (publication_id, parent_ids) pairs. Later entries may
                     cite earlier ones.

        Returns:
            The created identifiers, in order

        Raises:
            Whatever the failing create() raised. Publications created
            earlier in the same call are removed again first, and no
            mutation events are recorded for any of them.
        """
        created: List[Hashable] = []
        with self._mutation_logger.deferred():
            with UndoLog("create_many") as undo:
                for publication_id, parent_ids in entries:
                    self.create(publication_id, parent_ids)
                    created.append(publication_id)
                    undo.record(
                        f"create {publication_id!r}",
                        lambda pid=publication_id: self.remove(pid),
                    )
        return created

    def remove(self, publication_id: Hashable) -> List[Hashable]:
        """
        Detach a publication from every publication it cites.

        The publication is released, and with it every publication that
        is left without an ownership chain to the root. Publications still
        cited through another path survive.

        Returns:
            Identifiers of every released publication, the removed one first

        Raises:
            PublicationNotFound: If the publication doesn't exist
            TriedToRemoveRoot: If the publication is the root
        """
        handle = self._get_handle(publication_id)
        if handle == self._root:
            raise TriedToRemoveRoot(publication_id)

        parent_handles = list(self._graph.predecessor_indices(handle))
        parent_ids = self._index.ids_of(parent_handles)

        with UndoLog("remove") as undo:
            for parent_handle in parent_handles:
                self._graph.remove_edge(parent_handle, handle)
                undo.record(
                    f"unlink from {parent_handle}",
                    lambda p=parent_handle: self._graph.add_edge(p, handle, None),
                )

        # Finish the teardown before anything is reported
        released = self._release(handle)
        logger.debug(
            f"Removed {publication_id!r}; released {len(released)} publication(s)"
        )

        for parent_id in parent_ids:
            self._mutation_logger.log_citation_deleted(publication_id, parent_id)
        for position, (released_id, dropped) in enumerate(released):
            self._mutation_logger.log_publication_released(released_id, cascaded=position > 0)
            for child_id, parent_id in dropped:
                self._mutation_logger.log_citation_deleted(child_id, parent_id)

        return [released_id for released_id, _ in released]

    # =========================================================================
    # OWNERSHIP
    # =========================================================================

    def _owner_count(self, handle: int) -> int:
        """Owning edges into a node, plus the container's pin on the root."""
        return self._graph.in_degree(handle) + (1 if handle == self._root else 0)

    def _release(self, handle: int) -> List[Tuple[Hashable, List[Tuple[Hashable, Hashable]]]]:
        """
        Tear down a node whose owner count has reached zero.

        Deregisters the node, drops it and its owning edges from the arena,
        and releases every successor left without owners. Uses only
        operations that cannot fail on a consistent arena.

        Returns:
            (released id, dropped (child, parent) citations) per released
            node, in release order
        """
        released: List[Tuple[Hashable, List[Tuple[Hashable, Hashable]]]] = []
        pending = [handle]

        while pending:
            current = pending.pop()
            successors = list(self._graph.successor_indices(current))
            current_id = self._index.id_of(current)

            dropped = [(self._index.id_of(s), current_id) for s in successors]

            self._graph.remove_node(current)
            self._index.deregister_handle(current)
            released.append((current_id, dropped))

            for successor in successors:
                if self._owner_count(successor) == 0:
                    pending.append(successor)

        return released

    # =========================================================================
    # INTERNAL UTILITIES
    # =========================================================================

    def _get_handle(self, publication_id: Hashable) -> int:
        """Internal: arena handle for an identifier."""
        if publication_id not in self._index:
            raise PublicationNotFound(publication_id)
        return self._index.lookup(publication_id)

    def _build_payload(self, publication_id: Hashable) -> PublicationLike:
        """Internal: run the factory and check the payload's identifier."""
        payload = self._factory(publication_id)
        if payload.get_id() != publication_id:
            raise ValueError(
                f"Publication factory returned a payload with id "
                f"{payload.get_id()!r} for {publication_id!r}"
            )
        return payload

    @staticmethod
    def _as_parent_list(parent_ids: ParentIds) -> List[Hashable]:
        """Internal: a list or set means several parents, anything else one."""
        if isinstance(parent_ids, (list, AbstractSet)):
            return list(parent_ids)
        return [parent_ids]

    def __getitem__(self, publication_id: Hashable) -> PublicationLike:
        return self.access(publication_id)

    def __len__(self) -> int:
        return self.publication_count

    def __contains__(self, publication_id: object) -> bool:
        return self.exists(publication_id)

    def __iter__(self) -> Iterator[Hashable]:
        return self.iter_ids()

    def __repr__(self) -> str:
        if self._root is None:
            return "CitationGraph(moved-from)"
        return (
            f"CitationGraph(root={self.get_root_id()!r}, "
            f"publications={self.publication_count}, citations={self.citation_count})"
        )
