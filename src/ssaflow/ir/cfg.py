"""
Basic blocks and the control flow graph over an instruction stream.

Block statement ranges partition the stream contiguously and in increasing
order. Every edge appears twice: in the source block's ``succs`` and in the
destination block's ``preds``.
"""

import bisect

from .nodes import Expr, GotoIfNot, GotoNode, ReturnNode, isexpr


class StmtRange(object):
    """Inclusive statement index range ``first..last``; empty if last < first."""

    __slots__ = "first", "last"

    def __init__(self, first, last):
        self.first = first
        self.last = last

    def __iter__(self):
        return iter(range(self.first, self.last + 1))

    def __reversed__(self):
        return iter(range(self.last, self.first - 1, -1))

    def __len__(self):
        return max(0, self.last - self.first + 1)

    def __contains__(self, idx):
        return self.first <= idx <= self.last

    def __eq__(self, other):
        return (
            isinstance(other, StmtRange)
            and self.first == other.first
            and self.last == other.last
        )

    def __hash__(self):
        return hash((self.first, self.last))

    def __repr__(self):
        return "%d:%d" % (self.first, self.last)


class BasicBlock(object):
    __slots__ = "stmts", "preds", "succs"

    def __init__(self, stmts, preds=None, succs=None):
        self.stmts = stmts
        self.preds = preds if preds is not None else []
        self.succs = succs if succs is not None else []

    def copy(self):
        return BasicBlock(StmtRange(self.stmts.first, self.stmts.last), list(self.preds), list(self.succs))

    def __repr__(self):
        return "BasicBlock(%r, preds=%r, succs=%r)" % (self.stmts, self.preds, self.succs)


class CFG(object):
    """Control flow graph.

    Attributes:
        blocks: Basic blocks in stream order.
        index: ``index[i]`` is the first statement of block ``i + 1``.
    """

    __slots__ = "blocks", "index"

    def __init__(self, blocks, index):
        self.blocks = blocks
        self.index = index

    def copy(self):
        return CFG([b.copy() for b in self.blocks], list(self.index))

    def __len__(self):
        return len(self.blocks)

    def __repr__(self):
        return "CFG(%r)" % (self.blocks,)


def block_for_inst(cfg, inst):
    """Index of the block containing statement ``inst``."""
    index = cfg.index if isinstance(cfg, CFG) else cfg
    return bisect.bisect_right(index, inst)


def basic_blocks_starts(stmts):
    starts = set((0,))
    n = len(stmts)
    for idx, stmt in enumerate(stmts):
        if isinstance(stmt, GotoIfNot):
            starts.add(idx + 1)
            starts.add(stmt.dest)
        elif isinstance(stmt, ReturnNode):
            starts.add(idx + 1)
        elif isinstance(stmt, GotoNode):
            starts.add(idx + 1)
            starts.add(stmt.label)
        elif isinstance(stmt, Expr):
            if stmt.head == "leave":
                starts.add(idx + 1)
            elif stmt.head == "enter":
                starts.add(idx)
                starts.add(idx + 1)
                starts.add(stmt.args[0])
    starts.discard(n)
    return sorted(starts)


def compute_basic_blocks(stmts):
    """Split a statement list (with statement-index labels) into a CFG."""
    starts = basic_blocks_starts(stmts)
    index = starts[1:]
    ends = [s - 1 for s in index] + [len(stmts) - 1]
    blocks = [BasicBlock(StmtRange(first, last)) for first, last in zip(starts, ends)]

    for num, b in enumerate(blocks):
        terminator = stmts[b.stmts.last]
        if isinstance(terminator, ReturnNode):
            continue
        if isinstance(terminator, GotoNode):
            dest = block_for_inst(index, terminator.label)
            blocks[dest].preds.append(num)
            b.succs.append(dest)
            continue
        if isinstance(terminator, GotoIfNot):
            dest = block_for_inst(index, terminator.dest)
            # A branch to the fallthrough block degenerates into a no-op.
            if dest != num + 1:
                blocks[dest].preds.append(num)
                b.succs.append(dest)
        elif isexpr(terminator, "enter"):
            dest = block_for_inst(index, terminator.args[0])
            blocks[dest].preds.append(num)
            b.succs.append(dest)
        if num + 1 < len(blocks):
            blocks[num + 1].preds.append(num)
            b.succs.append(num + 1)

    return CFG(blocks, index)


def cfg_insert_edge(cfg, a, b):
    cfg.blocks[a].succs.append(b)
    cfg.blocks[b].preds.append(a)


def cfg_delete_edge(cfg, a, b):
    cfg.blocks[a].succs.remove(b)
    cfg.blocks[b].preds.remove(a)
