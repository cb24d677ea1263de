"""
CITEGRAPH IDENTIFIER INDEX - The Bridge Between IDs and Arena Handles

The identifier index is the single source of truth for "does this
publication exist". It bridges caller identifiers with rustworkx's
integer node indices (the arena handles):

  _id_map:     Dict[id, int]   (identifier -> handle)
  _handle_map: Dict[int, id]   (handle -> identifier)

Entries are added when a node is constructed and removed when the node
is released. Nothing else writes to the index, so an entry can never
outlive its node: rustworkx reuses freed indices, and a handle is always
deregistered before it can be handed out again.
"""
from typing import Dict, Hashable, Iterator, List


class PublicationIndex:
    """
    Bidirectional identifier <-> handle map.

    Raises KeyError on misuse; CitationGraph checks preconditions first and
    translates absence into PublicationNotFound.
    """

    def __init__(self):
        self._id_map: Dict[Hashable, int] = {}
        self._handle_map: Dict[int, Hashable] = {}

    def register(self, publication_id: Hashable, handle: int) -> None:
        """
        Add an entry for a newly constructed node.

        Raises:
            KeyError: If the identifier or the handle is already registered
            TypeError: If the identifier is unhashable
        """
        if publication_id in self._id_map:
            raise KeyError(f"Identifier already registered: {publication_id!r}")
        if handle in self._handle_map:
            raise KeyError(f"Handle already registered: {handle}")

        self._id_map[publication_id] = handle
        self._handle_map[handle] = publication_id

    def deregister_handle(self, handle: int) -> Hashable:
        """Remove the entry for a released node and return its identifier."""
        publication_id = self._handle_map.pop(handle)
        del self._id_map[publication_id]
        return publication_id

    def lookup(self, publication_id: Hashable) -> int:
        """Handle for an identifier. Raises KeyError if absent."""
        return self._id_map[publication_id]

    def id_of(self, handle: int) -> Hashable:
        """Identifier for a handle. Raises KeyError if absent."""
        return self._handle_map[handle]

    def ids_of(self, handles) -> List[Hashable]:
        """Identifiers for an iterable of handles, in the same order."""
        return [self._handle_map[h] for h in handles]

    def handles(self) -> List[int]:
        return list(self._handle_map)

    def __contains__(self, publication_id: object) -> bool:
        try:
            return publication_id in self._id_map
        except TypeError:
            # Unhashable identifiers can never have been registered
            return False

    def __len__(self) -> int:
        return len(self._id_map)

    def __iter__(self) -> Iterator[Hashable]:
        return iter(list(self._id_map))

    def __repr__(self) -> str:
        return f"PublicationIndex(entries={len(self)})"
