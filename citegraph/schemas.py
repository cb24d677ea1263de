"""
CITEGRAPH SCHEMAS - What a Publication Looks Like to the Graph

The graph treats publications as opaque payloads. The only thing it ever
asks of one is its identifier. This module defines:
- PublicationLike: the structural contract a payload must satisfy
- PublicationFactory: how the graph builds a payload from an identifier
- Publication: the default msgspec payload, carrying a few bibliographic fields

Design Principles:
1. OPAQUE PAYLOADS: the graph never compares payload contents
2. HASHABLE IDS: identifiers are dict keys in the identifier index
3. IMMUTABLE IDS: an identifier is set once by the factory and never changes
"""
import msgspec
from typing import Any, Callable, Dict, Hashable, List, Optional, Protocol, runtime_checkable
from datetime import datetime, timezone


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def now_utc() -> str:
    """Fast UTC timestamp as ISO8601 string."""
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# PAYLOAD CONTRACT
# =============================================================================

@runtime_checkable
class PublicationLike(Protocol):
    """Anything that can report its own identifier."""

    def get_id(self) -> Hashable:
        ...


# Builds a payload for a freshly created node. May raise; the graph
# treats a raising factory as a failed create and changes nothing.
PublicationFactory = Callable[[Hashable], PublicationLike]


# =============================================================================
# DEFAULT PUBLICATION PAYLOAD
# =============================================================================

class Publication(msgspec.Struct, kw_only=True, frozen=False):
    """
    Default payload stored in every graph node.

    Only `id` matters to the graph. The bibliographic fields are there
    for callers who want to hang data off a node via CitationGraph.access().
    """
    # === Identity ===
    id: Any                                    # Hashable identifier (str, int, tuple...)

    # === Bibliographic Data ===
    title: str = ""
    authors: List[str] = msgspec.field(default_factory=list)
    year: Optional[int] = None

    # === Extension Point ===
    extra: Dict[str, Any] = msgspec.field(default_factory=dict)

    # === Provenance ===
    created_at: str = msgspec.field(default_factory=now_utc)

    @classmethod
    def from_id(cls, publication_id: Hashable) -> "Publication":
        """Default publication factory."""
        return cls(id=publication_id)

    def get_id(self) -> Hashable:
        return self.id
