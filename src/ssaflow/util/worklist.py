"""Integer worklists that always hand out the smallest pending element."""

import heapq


class MinPrioritySet(object):
    """A set of non-negative integers popped in increasing order.

    Every element is stored at most once; re-adding a pending element is a
    no-op. Membership queries see both pending elements and, when
    ``remember`` is set, everything that was ever added.

    Attributes:
        heap: Pending elements in heap order.
        pending: Elements currently queued.
        seen: Every element ever added (only maintained with ``remember``).
    """

    __slots__ = "heap", "pending", "seen", "remember"

    def __init__(self, elements=(), remember=False):
        self.heap = []
        self.pending = set()
        self.remember = remember
        self.seen = set()
        for e in elements:
            self.add(e)

    def add(self, e):
        if self.remember:
            self.seen.add(e)
        if e not in self.pending:
            self.pending.add(e)
            heapq.heappush(self.heap, e)

    def update(self, elements):
        for e in elements:
            self.add(e)

    def popfirst(self):
        e = heapq.heappop(self.heap)
        self.pending.discard(e)
        return e

    def __contains__(self, e):
        if self.remember:
            return e in self.seen
        return e in self.pending

    def __len__(self):
        return len(self.heap)

    def __bool__(self):
        return bool(self.heap)

    def __iter__(self):
        # Snapshot in priority order; callers may mutate while iterating.
        return iter(sorted(self.seen if self.remember else self.pending))
