"""
Structural verification of SSA bodies.

Only run in debug mode. Every check raises ``IRVerificationError`` with a
message naming the offending block or statement:

- block ranges partition the stream contiguously, in order
- every edge is recorded on both of its ends
- block successors agree with the block terminator
- phis sit at the top of their block and only name predecessors
- every SSA use is dominated by its definition
- line references point into the line table

Dominance is computed with ``networkx`` over the reachable blocks.
"""

from collections import Counter

import networkx as nx

from ssaflow.application.errors import IRVerificationError

from .ircode import operands
from .nodes import (
    GotoIfNot,
    GotoNode,
    PhiNode,
    ReturnNode,
    SlotNumber,
    SSAValue,
    isexpr,
    is_valid_phiblock_stmt,
)


def _fail(msg, *args):
    raise IRVerificationError(msg % args)


def cfg_graph(cfg):
    G = nx.DiGraph()
    G.add_nodes_from(range(len(cfg.blocks)))
    for b, block in enumerate(cfg.blocks):
        for s in block.succs:
            G.add_edge(b, s)
    return G


def verify_ranges(ir):
    blocks = ir.cfg.blocks
    n = len(ir.stmts)
    if not blocks:
        _fail("body has no blocks")
    expect = 0
    for b, block in enumerate(blocks):
        if block.stmts.first != expect:
            _fail("block %d starts at %d, expected %d", b, block.stmts.first, expect)
        expect = block.stmts.last + 1
    if expect != n:
        _fail("blocks cover %d statements, stream has %d", expect, n)
    index = [block.stmts.first for block in blocks[1:]]
    if list(ir.cfg.index) != index:
        _fail("cfg index %r does not match block starts %r", ir.cfg.index, index)


def verify_edges(ir):
    blocks = ir.cfg.blocks
    nblocks = len(blocks)
    succ_edges = Counter()
    pred_edges = Counter()
    for b, block in enumerate(blocks):
        for s in block.succs:
            if not 0 <= s < nblocks:
                _fail("block %d has out of range successor %d", b, s)
            succ_edges[(b, s)] += 1
        for p in block.preds:
            if not 0 <= p < nblocks:
                _fail("block %d has out of range predecessor %d", b, p)
            pred_edges[(p, b)] += 1
    if succ_edges != pred_edges:
        diff = (succ_edges - pred_edges) + (pred_edges - succ_edges)
        _fail("edges recorded on only one end: %r", sorted(diff))


def verify_terminators(ir):
    blocks = ir.cfg.blocks
    stmts = ir.stmts.stmt
    for b, block in enumerate(blocks):
        if not len(block.stmts):
            continue
        term = stmts[block.stmts.last]
        succs = set(block.succs)
        if isinstance(term, GotoNode):
            if succs != {term.label}:
                _fail("block %d ends in goto #%d but has successors %r", b, term.label, block.succs)
        elif isinstance(term, GotoIfNot):
            if not succs <= {b + 1, term.dest} or term.dest not in succs:
                _fail("block %d branches to #%d but has successors %r", b, term.dest, block.succs)
        elif isinstance(term, ReturnNode):
            if succs:
                _fail("block %d returns but has successors %r", b, block.succs)
        elif isexpr(term, "enter"):
            if term.args[0] not in succs:
                _fail("block %d enters handler #%d but has successors %r", b, term.args[0], block.succs)
        elif not succs <= {b + 1}:
            _fail("block %d falls through but has successors %r", b, block.succs)


def verify_phis(ir):
    stmts = ir.stmts.stmt
    for b, block in enumerate(ir.cfg.blocks):
        in_phi_block = True
        preds = set(block.preds)
        for idx in block.stmts:
            stmt = stmts[idx]
            if isinstance(stmt, PhiNode):
                if not in_phi_block:
                    _fail("phi %d is not at the top of block %d", idx, b)
                if len(stmt.edges) != len(stmt.values):
                    _fail("phi %d has %d edges but %d values", idx, len(stmt.edges), len(stmt.values))
                for e in stmt.edges:
                    if e not in preds:
                        _fail("phi %d names #%d, which is not a predecessor of #%d", idx, e, b)
            elif not is_valid_phiblock_stmt(stmt):
                in_phi_block = False


def _dominates(idoms, a, b):
    while True:
        if a == b:
            return True
        parent = idoms.get(b)
        if parent is None or parent == b:
            return False
        b = parent


def verify_dominance(ir):
    cfg = ir.cfg
    stmts = ir.stmts.stmt
    n = len(stmts)
    G = cfg_graph(cfg)
    idoms = nx.immediate_dominators(G, 0)
    reachable = nx.descendants(G, 0) | {0}
    for b, block in enumerate(cfg.blocks):
        if b not in reachable:
            continue
        for idx in block.stmts:
            stmt = stmts[idx]
            if isinstance(stmt, PhiNode):
                for e, val in zip(stmt.edges, stmt.values):
                    if not isinstance(val, SSAValue) or e not in reachable:
                        continue
                    if not 0 <= val.id < n:
                        _fail("phi %d uses out of range %r", idx, val)
                    if not _dominates(idoms, ir.block_for_inst(val.id), e):
                        _fail("phi %d: %r does not dominate edge from #%d", idx, val, e)
                continue
            for val in operands(stmt):
                if isinstance(val, SlotNumber):
                    _fail("slot %r at statement %d", val, idx)
                if not isinstance(val, SSAValue):
                    continue
                if not 0 <= val.id < n:
                    _fail("statement %d uses out of range %r", idx, val)
                defblock = ir.block_for_inst(val.id)
                if defblock == b:
                    if val.id >= idx:
                        _fail("statement %d uses %r before its definition", idx, val)
                elif not _dominates(idoms, defblock, b):
                    _fail("statement %d: definition of %r does not dominate its use", idx, val)


def verify_ir(ir):
    """Check the structural invariants of ``ir``.

    Raises:
        IRVerificationError: On the first violated invariant.
    """
    verify_ranges(ir)
    verify_edges(ir)
    verify_terminators(ir)
    verify_phis(ir)
    verify_dominance(ir)
    nlines = len(ir.linetable)
    for idx, line in enumerate(ir.stmts.line):
        if not 0 <= line <= nlines:
            _fail("statement %d refers to line %d of %d", idx, line, nlines)


def verify_linetable(linetable):
    """Check that every entry is inlined at an earlier entry (or nowhere).

    Line references are 1-based; 0 means no location.
    """
    for i, entry in enumerate(linetable):
        if not 0 <= entry.inlined_at <= i:
            _fail("line %d is inlined at %d, which is not an earlier line", i + 1, entry.inlined_at)
