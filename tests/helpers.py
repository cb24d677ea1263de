"""
Shared test helpers for the citegraph test suite.
"""
from collections import deque


class FlakyArena:
    """
    Delegating proxy around a rustworkx arena that raises on the N-th call
    of a chosen method. Used to inject failures into multi-step mutations.

    rustworkx free functions (rx.descendants, ...) only accept real
    graphs, so tests put `inner` back before validating.
    """

    def __init__(self, inner, method: str, fail_on_call: int, error: Exception = None):
        self.inner = inner
        self.method = method
        self.fail_on_call = fail_on_call
        self.error = error or MemoryError(f"injected failure in {method}")
        self.calls = 0

    def __getattr__(self, name):
        attr = getattr(self.inner, name)
        if name != self.method:
            return attr

        def wrapper(*args, **kwargs):
            self.calls += 1
            if self.calls == self.fail_on_call:
                raise self.error
            return attr(*args, **kwargs)

        return wrapper

    def __getitem__(self, idx):
        return self.inner[idx]


def snapshot(graph):
    """
    Full traversal of the public API from the root.

    Returns (reachable ids, citation edges as (child, parent) pairs).
    """
    root = graph.get_root_id()
    seen = {root}
    edges = set()
    queue = deque([root])
    while queue:
        current = queue.popleft()
        for child in graph.get_children(current):
            edges.add((child, current))
            if child not in seen:
                seen.add(child)
                queue.append(child)
    return frozenset(seen), frozenset(edges)
