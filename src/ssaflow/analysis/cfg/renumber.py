"""
Statement and block renumbering after structural edits.

A pass that inserts or deletes statements records, per old statement index,
a delta: ``+k`` when ``k`` statements were inserted in front of it, ``-1``
when it was deleted, ``0`` otherwise. ``cumsum_ssamap`` turns the deltas
into cumulative offsets (deleted entries become ``DELETED``) and
``renumber_ir_elements`` applies them to every reference in a body in one
linear sweep. Block ranges are shifted separately by ``renumber_cfg_stmts``.

A changemap must be applied exactly once. Composing two edits means
building a fresh changemap over the already renumbered indices.
"""

import itertools

from ssaflow.application.errors import InternalError
from ssaflow.ir.cfg import BasicBlock, StmtRange
from ssaflow.ir.nodes import (
    Expr,
    GotoIfNot,
    GotoNode,
    PhiNode,
    PiNode,
    ReturnNode,
    SSAValue,
    is_meta_expr_head,
)
from ssaflow.util.typedispatch import TypeDispatcher, defaultdispatch, dispatch

# Distinct from any offset a body of realistic size can produce.
DELETED = -(1 << 63)


def cumsum_ssamap(changemap):
    """Convert per-index deltas into cumulative offsets, in place.

    Returns:
        True if any delta was non-zero.
    """
    any_change = False
    rel_change = 0
    for i, val in enumerate(changemap):
        any_change |= val != 0
        rel_change += val
        if val == -1:
            changemap[i] = DELETED
        else:
            changemap[i] = rel_change
    return any_change


class RenumberElements(TypeDispatcher):
    """Rewrites one statement under cumulative ssa/label offset maps."""

    def __init__(self, ssachangemap, labelchangemap):
        self.ssachangemap = ssachangemap
        self.labelchangemap = labelchangemap

    def ssa(self, value):
        offset = self.ssachangemap[value.id]
        if offset == DELETED:
            raise InternalError("reference to deleted statement %d" % value.id)
        return SSAValue(value.id + offset)

    def value(self, value):
        if isinstance(value, SSAValue):
            return self.ssa(value)
        return value

    def label(self, label):
        offset = self.labelchangemap[label]
        if offset == DELETED:
            return None
        return label + offset

    @dispatch(GotoNode)
    def visitGotoNode(self, node):
        label = self.label(node.label)
        if label is None:
            raise InternalError("goto targets deleted statement %d" % node.label)
        return GotoNode(label)

    @dispatch(GotoIfNot)
    def visitGotoIfNot(self, node):
        cond = self.value(node.cond)
        dest = self.label(node.dest)
        if dest is None:
            # The branch degenerates to its condition.
            return cond
        return GotoIfNot(cond, dest)

    @dispatch(ReturnNode)
    def visitReturnNode(self, node):
        if node.has_val:
            return ReturnNode(self.value(node.val))
        return node

    @dispatch(SSAValue)
    def visitSSAValue(self, node):
        return self.ssa(node)

    @dispatch(PhiNode)
    def visitPhiNode(self, node):
        edges = []
        values = []
        for edge, val in zip(node.edges, node.values):
            edge = self.label(edge)
            if edge is None:
                continue
            edges.append(edge)
            values.append(self.value(val))
        node.edges = edges
        node.values = values
        return node

    @dispatch(PiNode)
    def visitPiNode(self, node):
        return PiNode(self.value(node.val), node.typ)

    @dispatch(Expr)
    def visitExpr(self, node):
        el = node
        if el.head == "=" and isinstance(el.args[1], Expr):
            el = el.args[1]
        if el.head == "enter":
            label = self.label(el.args[0])
            if label is None:
                raise InternalError("enter targets deleted statement %d" % el.args[0])
            el.args[0] = label
        elif not is_meta_expr_head(el.head):
            el.args = [self.value(arg) for arg in el.args]
        return node

    @defaultdispatch
    def visitOther(self, node):
        return node


def renumber_ir_elements(body, ssachangemap, labelchangemap=None):
    """Apply per-index deltas to every reference in ``body``, in place.

    Args:
        body: Statement list.
        ssachangemap: Deltas for value references.
        labelchangemap: Deltas for branch labels and phi edges; defaults to
            ``ssachangemap`` (statement-indexed labels).

    Both maps are converted to cumulative offsets in place.
    """
    if labelchangemap is None:
        labelchangemap = ssachangemap
    any_change = cumsum_ssamap(labelchangemap)
    if ssachangemap is not labelchangemap:
        any_change |= cumsum_ssamap(ssachangemap)
    if not any_change:
        return False

    renumber = RenumberElements(ssachangemap, labelchangemap)
    for i, el in enumerate(body):
        body[i] = renumber(el)
    return True


def renumber_cfg_stmts(cfg, blockchangemap):
    """Shift block statement ranges by each block's net statement delta."""
    if not any(blockchangemap):
        return False
    offsets = list(itertools.accumulate(blockchangemap))
    for i, block in enumerate(cfg.blocks):
        old = block.stmts
        first = old.first + (offsets[i - 1] if i > 0 else 0)
        block.stmts = StmtRange(first, old.last + offsets[i])
        if i < len(cfg.index):
            cfg.index[i] += offsets[i]
    return True


def renumber_cfg_blocks(cfg, blockmap):
    """Drop and renumber whole blocks.

    ``blockmap[b]`` is the new index of block ``b`` or ``DELETED``. Statement
    ranges of the surviving blocks must already be final.
    """
    blocks = []
    for old, block in enumerate(cfg.blocks):
        if blockmap[old] == DELETED:
            continue
        preds = [blockmap[p] for p in block.preds if blockmap[p] != DELETED]
        succs = [blockmap[s] for s in block.succs if blockmap[s] != DELETED]
        blocks.append(BasicBlock(block.stmts, preds, succs))
    cfg.blocks = blocks
    cfg.index = [b.stmts.first for b in blocks[1:]]
    return cfg
