"""
Unit tests for citegraph/index.py - PublicationIndex
"""
import pytest

from citegraph.index import PublicationIndex


@pytest.fixture
def index():
    idx = PublicationIndex()
    idx.register("R", 0)
    idx.register("A", 1)
    return idx


def test_register_and_lookup(index):
    assert index.lookup("A") == 1
    assert index.id_of(1) == "A"
    assert "A" in index
    assert len(index) == 2
    assert set(index) == {"R", "A"}
    assert sorted(index.handles()) == [0, 1]


def test_register_duplicate_id_rejected(index):
    with pytest.raises(KeyError):
        index.register("A", 7)
    assert index.lookup("A") == 1


def test_register_duplicate_handle_rejected(index):
    with pytest.raises(KeyError):
        index.register("B", 1)
    assert "B" not in index


def test_deregister_handle_removes_both_directions(index):
    assert index.deregister_handle(1) == "A"

    assert "A" not in index
    with pytest.raises(KeyError):
        index.id_of(1)
    with pytest.raises(KeyError):
        index.lookup("A")


def test_handle_can_be_reused_after_deregistration(index):
    index.deregister_handle(1)
    index.register("B", 1)
    assert index.id_of(1) == "B"


def test_ids_of_preserves_order(index):
    assert index.ids_of([1, 0, 1]) == ["A", "R", "A"]


def test_unhashable_lookup_is_absent_but_register_raises(index):
    assert ["x"] not in index
    with pytest.raises(TypeError):
        index.register(["x"], 5)
    assert len(index) == 2


def test_iteration_is_a_snapshot(index):
    """Iterating while mutating does not raise."""
    for pid in index:
        if pid == "A":
            index.deregister_handle(1)
    assert set(index) == {"R"}


def test_repr(index):
    assert repr(index) == "PublicationIndex(entries=2)"
