"""
Unit tests for citegraph/infrastructure/logger.py - MutationLogger

Covers the logger on its own and the events CitationGraph emits through it.
"""
import logging
import shutil
from datetime import datetime, timezone

import pytest

from citegraph.citation_graph import CitationGraph
from citegraph.infrastructure.config import GraphConfig
from citegraph.infrastructure.logger import (
    EventBuffer,
    FileLogger,
    LoggerConfig,
    MutationEvent,
    MutationLogger,
    MutationType,
    configure_logger,
    get_logger,
)


def _types(events):
    return [e.mutation_type for e in events]


# =============================================================================
# LOGGER
# =============================================================================

def test_sequence_numbers_increase(mutation_logger):
    first = mutation_logger.log_publication_created("A", ["R"])
    second = mutation_logger.log_citation_created("B", "A")

    assert second.sequence == first.sequence + 1
    assert first.parent_ids == ["R"]


def test_disabled_logger_records_nothing():
    logger = MutationLogger(LoggerConfig(enabled=False))

    assert logger.log_publication_created("A") is None
    assert logger.get_recent_events() == []


def test_events_for_publication_match_any_role(mutation_logger):
    mutation_logger.log_publication_created("A", ["R"])
    mutation_logger.log_citation_created("B", "A")
    mutation_logger.log_publication_released("C")

    events = mutation_logger.get_events_for_publication("A")

    assert _types(events) == ["PUBLICATION_CREATED", "CITATION_CREATED"]
    timeline = mutation_logger.get_publication_timeline("A")
    assert timeline[1]["child"] == "B"


def test_ring_buffer_drops_oldest():
    buffer = EventBuffer(max_size=2)
    for i in range(3):
        buffer.append(MutationEvent(timestamp=str(i), sequence=i, mutation_type="X"))

    assert len(buffer) == 2
    assert [e.sequence for e in buffer.last(5)] == [1, 2]
    assert [e.sequence for e in buffer.select(lambda e: e.sequence > 1)] == [2]
    assert buffer.last(0) == []


def test_subscriber_errors_do_not_propagate(mutation_logger):
    seen = []

    def broken(event):
        raise RuntimeError("subscriber broke")

    mutation_logger.subscribe(broken)
    mutation_logger.subscribe(seen.append)

    mutation_logger.log_publication_released("A")

    assert len(seen) == 1
    mutation_logger.unsubscribe(seen.append)
    mutation_logger.log_publication_released("B")
    assert len(seen) == 1


def test_file_logger_round_trip(tmp_path):
    with MutationLogger(LoggerConfig(log_path=tmp_path)) as logger:
        logger.log_publication_created(("doi", "1"), ["R"])
        logger.log_citation_deleted("C", "A")
        file_logger = logger._file_logger

    today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    events = file_logger.read_log(today)

    assert _types(events) == ["PUBLICATION_CREATED", "CITATION_DELETED"]
    assert events[1].child_id == "C"
    assert file_logger.read_log("1999-01-01") == []


def test_global_logger_singleton():
    assert get_logger() is get_logger()
    configured = configure_logger(LoggerConfig(buffer_size=5))
    assert get_logger() is configured
    assert configured.config.buffer_size == 5


# =============================================================================
# EVENTS EMITTED BY THE GRAPH
# =============================================================================

def test_graph_logs_creation_and_citations(diamond_graph, mutation_logger):
    diamond_graph.add_citation("B", "A")

    events = mutation_logger.get_recent_events(100)

    assert _types(events) == [
        "PUBLICATION_CREATED",   # R
        "PUBLICATION_CREATED",   # A
        "PUBLICATION_CREATED",   # B
        "PUBLICATION_CREATED",   # C
        "CITATION_CREATED",
    ]
    assert events[3].parent_ids == ["A", "B"]
    assert (events[4].child_id, events[4].parent_id) == ("B", "A")


def test_duplicate_citation_not_logged(diamond_graph, mutation_logger):
    diamond_graph.add_citation("C", "A")
    assert mutation_logger.get_events_by_type(MutationType.CITATION_CREATED.value) == []


def test_cascade_logs_one_release_per_publication(fresh_graph, mutation_logger):
    """
    Validate that a cascading removal explains every released publication.

    Verifies:
    - The removed publication is released with cascaded=False
    - Every publication released by the cascade has cascaded=True
    - The detached citation edges are logged as deleted
    """
    fresh_graph.create("A", "R")
    fresh_graph.create("B", "A")
    fresh_graph.create("C", "B")
    mutation_logger.clear()

    fresh_graph.remove("A")

    released = mutation_logger.get_events_by_type(MutationType.PUBLICATION_RELEASED.value)
    assert [(e.publication_id, e.cascaded) for e in released] == [
        ("A", False),
        ("B", True),
        ("C", True),
    ]
    deleted = mutation_logger.get_events_by_type(MutationType.CITATION_DELETED.value)
    assert {(e.child_id, e.parent_id) for e in deleted} == {("A", "R"), ("B", "A"), ("C", "B")}


def test_graph_uses_global_logger_by_default():
    graph = CitationGraph("R")
    graph.create("A", "R")

    assert len(get_logger().get_events_for_publication("A")) == 1


def test_rejected_mutations_not_logged(diamond_graph, mutation_logger):
    mutation_logger.clear()

    with pytest.raises(Exception):
        diamond_graph.add_citation("A", "C")
    with pytest.raises(Exception):
        diamond_graph.remove("R")

    assert mutation_logger.get_recent_events() == []


def test_failed_batch_records_nothing(fresh_graph, mutation_logger):
    """
    Validate that a rolled-back create_many leaves no events behind.

    Verifies:
    - Neither the creates nor the undoing removes are recorded
    - A committed batch publishes its creates in order
    """
    before = len(mutation_logger.get_recent_events(1000))

    with pytest.raises(Exception):
        fresh_graph.create_many([("A", "R"), ("B", "A"), ("C", "ghost")])

    assert len(mutation_logger.get_recent_events(1000)) == before

    fresh_graph.create_many([("A", "R"), ("B", "A")])

    created = mutation_logger.get_events_by_type(MutationType.PUBLICATION_CREATED.value)
    assert [e.publication_id for e in created[-2:]] == ["A", "B"]
    assert created[-1].sequence == created[-2].sequence + 1


def test_deferred_blocks_nest(mutation_logger):
    with mutation_logger.deferred():
        mutation_logger.log_publication_created("A", ["R"])
        with pytest.raises(RuntimeError):
            with mutation_logger.deferred():
                mutation_logger.log_publication_created("B", ["A"])
                raise RuntimeError("inner batch failed")
        with mutation_logger.deferred():
            mutation_logger.log_publication_created("C", ["A"])
        assert mutation_logger.get_recent_events() == []

    events = mutation_logger.get_recent_events()
    assert [e.publication_id for e in events] == ["A", "C"]


# =============================================================================
# FILE SINK FAILURES
# =============================================================================

def _break_file_sink(logger: MutationLogger, directory) -> None:
    """Force the next write to reopen the day's file in a directory that is gone."""
    logger._file_logger._handle_date = "1999-01-01"
    shutil.rmtree(directory)


def test_file_logger_write_failure_is_reported(tmp_path, caplog):
    directory = tmp_path / "logs"
    file_logger = FileLogger(directory)
    event = MutationEvent(
        timestamp="2026-01-01T00:00:00+00:00", sequence=1, mutation_type="PUBLICATION_CREATED"
    )
    assert file_logger.write(event) is True

    file_logger.close()
    shutil.rmtree(directory)

    with caplog.at_level(logging.ERROR, logger="citegraph.mutations"):
        assert file_logger.write(event) is False

    assert "Could not write mutation #1" in caplog.text


def test_remove_completes_when_file_sink_fails(tmp_path):
    """
    Validate that an unwritable log directory cannot interrupt a removal.

    Verifies:
    - remove() returns the released publications instead of raising
    - No released publication stays registered
    - Events still reach the in-memory buffer
    """
    directory = tmp_path / "logs"
    logger = MutationLogger(LoggerConfig(log_path=directory))
    graph = CitationGraph("R", mutation_logger=logger)
    graph.create("A", "R")
    graph.create("B", "A")
    _break_file_sink(logger, directory)

    assert graph.remove("A") == ["A", "B"]

    assert not graph.exists("A")
    assert not graph.exists("B")
    assert graph.validate().valid
    released = logger.get_events_by_type(MutationType.PUBLICATION_RELEASED.value)
    assert [e.publication_id for e in released] == ["A", "B"]


def test_create_succeeds_when_file_sink_fails(tmp_path):
    directory = tmp_path / "logs"
    logger = MutationLogger(LoggerConfig(log_path=directory))
    graph = CitationGraph("R", mutation_logger=logger)
    _break_file_sink(logger, directory)

    graph.create("A", "R")

    assert graph.get_parents("A") == ["R"]
    assert graph.validate().valid
    assert len(logger.get_events_for_publication("A")) == 1


# =============================================================================
# GRAPH LIFECYCLE
# =============================================================================

def test_graph_closes_only_a_logger_it_built(tmp_path):
    with CitationGraph("R", config=GraphConfig(log_path=str(tmp_path / "own"))) as graph:
        graph.create("A", "R")
        own_sink = graph._mutation_logger._file_logger
        assert own_sink._handle is not None
    assert own_sink._handle is None

    shared = MutationLogger(LoggerConfig(log_path=tmp_path / "shared"))
    with CitationGraph("R", mutation_logger=shared):
        pass
    assert shared._file_logger._handle is not None
    shared.close()


def test_moved_graph_takes_over_logger_ownership(tmp_path):
    source = CitationGraph("R", config=GraphConfig(log_path=str(tmp_path)))
    sink = source._mutation_logger._file_logger
    target = CitationGraph.moved(source)

    source.close()
    assert sink._handle is not None

    target.close()
    assert sink._handle is None
