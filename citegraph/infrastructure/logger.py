"""
CITEGRAPH MUTATION LOGGER - An Audit Trail of Graph Mutations

Records every committed graph mutation with a timestamp and a sequence
number. Cascading releases show up as one PUBLICATION_RELEASED event per
released node, so the trail explains where a publication went even when
it was never removed explicitly.

Architecture:
- MutationLogger: Core logging interface
- EventBuffer: In-memory ring buffer for recent events
- FileLogger: Optional newline-delimited JSON sink

Usage:
    logger = MutationLogger()
    logger.log_publication_created("A", parent_ids=["R"])
    logger.log_citation_created("C", "B")

    events = logger.get_events_for_publication("A")

Design:
- Events are emitted only after a mutation has committed
- Sink and subscriber errors are logged and never reach the graph
- deferred() holds events back until a batch of mutations commits
"""
import msgspec
from typing import Any, BinaryIO, Callable, Dict, Iterator, List, Optional, Tuple
from datetime import datetime, timezone
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from collections import deque
import threading
import logging
from contextlib import contextmanager


log = logging.getLogger("citegraph.mutations")


# =============================================================================
# EVENT TYPES
# =============================================================================

class MutationType(str, Enum):
    """Types of graph mutations for event tracking."""
    PUBLICATION_CREATED = "PUBLICATION_CREATED"
    PUBLICATION_RELEASED = "PUBLICATION_RELEASED"
    CITATION_CREATED = "CITATION_CREATED"
    CITATION_DELETED = "CITATION_DELETED"


class MutationEvent(msgspec.Struct, kw_only=True):
    """A single committed graph mutation."""
    timestamp: str
    sequence: int
    mutation_type: str                  # MutationType value
    publication_id: Any = None

    # Citation endpoints: child cites parent
    child_id: Any = None
    parent_id: Any = None

    # For creates: the publications the new one cites
    parent_ids: List[Any] = msgspec.field(default_factory=list)

    # For releases: True when released by cascade rather than by remove()
    cascaded: bool = False


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class LoggerConfig:
    """Configuration for the mutation logger."""
    enabled: bool = True                # Record events at all
    buffer_size: int = 10000            # In-memory buffer size
    log_path: Optional[Path] = None     # Directory for JSONL logs; None disables


# =============================================================================
# EVENT BUFFER
# =============================================================================

class EventBuffer:
    """Bounded, locked history of recent events. Oldest events fall off first."""

    def __init__(self, max_size: int = 10000):
        self._events: deque[MutationEvent] = deque(maxlen=max_size)
        self._lock = threading.RLock()
        self._sequence = 0

    def append(self, event: MutationEvent) -> None:
        with self._lock:
            self._events.append(event)

    def last(self, n: int) -> List[MutationEvent]:
        with self._lock:
            return list(self._events)[-n:] if n > 0 else []

    def select(self, predicate: Callable[[MutationEvent], bool]) -> List[MutationEvent]:
        """Events matching a predicate, oldest first."""
        with self._lock:
            return [e for e in self._events if predicate(e)]

    def next_sequence(self) -> int:
        with self._lock:
            self._sequence += 1
            return self._sequence

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        return len(self._events)


# =============================================================================
# FILE LOGGER
# =============================================================================

class FileLogger:
    """
    Appends events to one JSONL file per UTC day.

    The day is taken from the event's own timestamp. Write failures are
    logged and reported through the return value; they never propagate,
    because by the time an event is written the mutation it describes has
    already happened.
    """

    def __init__(self, directory: Path):
        self.directory = directory
        self._encoder = msgspec.json.Encoder()
        self._handle: Optional[BinaryIO] = None
        self._handle_date: Optional[str] = None

        directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, date: str) -> Path:
        return self.directory / f"mutations_{date}.jsonl"

    def write(self, event: MutationEvent) -> bool:
        try:
            handle = self._handle_for(event.timestamp[:10])
            handle.write(self._encoder.encode(event) + b"\n")
            handle.flush()
        except OSError as e:
            log.error(f"Could not write mutation #{event.sequence} to {self.directory}: {e}")
            return False
        return True

    def _handle_for(self, date: str) -> BinaryIO:
        if self._handle is None or self._handle_date != date:
            self.close()
            self._handle = open(self.path_for(date), "ab")
            self._handle_date = date
        return self._handle

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
            self._handle_date = None

    def read_log(self, date: str) -> List[MutationEvent]:
        """Events written on a given day (YYYY-MM-DD). Malformed lines are skipped."""
        path = self.path_for(date)
        if not path.exists():
            return []

        decoder = msgspec.json.Decoder(MutationEvent)
        events = []
        with open(path, "rb") as f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    events.append(decoder.decode(line))
                except msgspec.DecodeError:
                    log.warning(f"Skipping malformed line in {path.name}")
        return events


# =============================================================================
# MUTATION LOGGER (Main Interface)
# =============================================================================

class MutationLogger:
    """
    Main logging interface for graph mutations.

    Sends every event to:
    - In-memory buffer (always, when enabled)
    - File-based log (when log_path is configured)
    - Subscribers

    No sink failure reaches the caller. Inside a `deferred()` block events
    are held back and only published when the block exits cleanly.
    """

    def __init__(self, config: Optional[LoggerConfig] = None):
        self.config = config or LoggerConfig()

        self._buffer = EventBuffer(self.config.buffer_size)
        self._file_logger: Optional[FileLogger] = None
        if self.config.log_path:
            self._file_logger = FileLogger(Path(self.config.log_path))

        self._subscribers: List[Callable[[MutationEvent], None]] = []
        self._held: List[List[Tuple[MutationType, Dict[str, Any]]]] = []

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def _make(self, mutation_type: MutationType, **fields) -> Optional[MutationEvent]:
        if not self.config.enabled:
            return None
        if self._held:
            self._held[-1].append((mutation_type, fields))
            return None
        return self._publish(mutation_type, fields)

    def _publish(self, mutation_type: MutationType, fields: Dict[str, Any]) -> MutationEvent:
        event = MutationEvent(
            timestamp=datetime.now(timezone.utc).isoformat(),
            sequence=self._buffer.next_sequence(),
            mutation_type=mutation_type.value,
            **fields,
        )
        self._buffer.append(event)

        if self._file_logger:
            self._file_logger.write(event)

        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                log.error(f"Mutation subscriber error: {e}", exc_info=True)

        return event

    @contextmanager
    def deferred(self) -> Iterator[None]:
        """
        Hold back events made inside the block.

        On a clean exit they are published in order (or handed to an
        enclosing deferred block). If the block raises they are dropped.
        """
        held: List[Tuple[MutationType, Dict[str, Any]]] = []
        self._held.append(held)
        try:
            yield
        except BaseException:
            self._held.pop()
            raise
        self._held.pop()

        if self._held:
            self._held[-1].extend(held)
        else:
            for mutation_type, fields in held:
                self._publish(mutation_type, fields)

    # =========================================================================
    # LOGGING METHODS
    # =========================================================================

    def log_publication_created(
        self,
        publication_id: Any,
        parent_ids: Optional[List[Any]] = None,
    ) -> Optional[MutationEvent]:
        """Log a publication creation (root creation has no parents)."""
        return self._make(
            MutationType.PUBLICATION_CREATED,
            publication_id=publication_id,
            parent_ids=list(parent_ids or []),
        )

    def log_publication_released(
        self,
        publication_id: Any,
        cascaded: bool = False,
    ) -> Optional[MutationEvent]:
        """Log a publication leaving the graph."""
        return self._make(
            MutationType.PUBLICATION_RELEASED,
            publication_id=publication_id,
            cascaded=cascaded,
        )

    def log_citation_created(self, child_id: Any, parent_id: Any) -> Optional[MutationEvent]:
        return self._make(MutationType.CITATION_CREATED, child_id=child_id, parent_id=parent_id)

    def log_citation_deleted(self, child_id: Any, parent_id: Any) -> Optional[MutationEvent]:
        return self._make(MutationType.CITATION_DELETED, child_id=child_id, parent_id=parent_id)

    # =========================================================================
    # QUERY METHODS
    # =========================================================================

    def get_recent_events(self, n: int = 100) -> List[MutationEvent]:
        return self._buffer.last(n)

    def get_events_for_publication(self, publication_id: Any) -> List[MutationEvent]:
        """Every event that mentions a publication, as subject or citation endpoint."""
        return self._buffer.select(
            lambda e: publication_id in (e.publication_id, e.child_id, e.parent_id)
        )

    def get_events_by_type(self, mutation_type: str) -> List[MutationEvent]:
        return self._buffer.select(lambda e: e.mutation_type == mutation_type)

    def get_publication_timeline(self, publication_id: Any) -> List[Dict[str, Any]]:
        """Simplified view of get_events_for_publication(), for debugging."""
        return [
            {
                "time": e.timestamp,
                "type": e.mutation_type,
                "child": e.child_id,
                "parent": e.parent_id,
                "cascaded": e.cascaded,
            }
            for e in self.get_events_for_publication(publication_id)
        ]

    def clear(self) -> None:
        self._buffer.clear()

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================

    def subscribe(self, callback: Callable[[MutationEvent], None]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[MutationEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def close(self) -> None:
        if self._file_logger:
            self._file_logger.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

_global_logger: Optional[MutationLogger] = None


def get_logger() -> MutationLogger:
    """Get or create the global logger instance."""
    global _global_logger
    if _global_logger is None:
        _global_logger = MutationLogger()
    return _global_logger


def configure_logger(config: LoggerConfig) -> MutationLogger:
    """Configure and return a new global logger."""
    global _global_logger
    if _global_logger:
        _global_logger.close()
    _global_logger = MutationLogger(config)
    return _global_logger


def reset_logger() -> None:
    """Drop the global logger (tests use this for isolation)."""
    global _global_logger
    if _global_logger:
        _global_logger.close()
    _global_logger = None
