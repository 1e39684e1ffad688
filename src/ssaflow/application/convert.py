"""
Conversion of an inferred ``CodeInfo`` into SSA form.

``convert_to_ircode`` turns the slot-based body into an ``IRCode`` whose
control flow reflects what inference proved:

- a live conditional branch that must throw becomes a ``typeassert`` of its
  condition and loses both of its edges
- one whose fallthrough is unreachable becomes an unconditional goto
- one whose destination is unreachable becomes a no-op
- every statement typed ``Bottom`` is followed by an explicit unreachable
  return, and its block loses all successors

Optionally a coverage marker is inserted in front of every statement that
starts a new source line. All insertions are renumbered in a single sweep.
``slot2reg`` then replaces slots with SSA values.
"""

import logging

from ssaflow.analysis.cfg.dom import construct_domtree
from ssaflow.analysis.cfg.renumber import renumber_cfg_stmts, renumber_ir_elements
from ssaflow.analysis.cfg.ssa import construct_ssa
from ssaflow.analysis.defuse import scan_slot_def_use
from ssaflow.application.errors import InternalError
from ssaflow.ir import builtins
from ssaflow.ir.cfg import StmtRange, block_for_inst, cfg_delete_edge
from ssaflow.ir.flags import IR_FLAG_NULL, StmtFlag, has_flag
from ssaflow.ir.ircode import NO_CALL_INFO, InstructionStream, IRCode
from ssaflow.ir.nodes import (
    Expr,
    GotoIfNot,
    GotoNode,
    PhiNode,
    PiNode,
    ReturnNode,
    isexpr,
    isterminator,
)
from ssaflow.ir.types import Bool, Bottom, Nothing

LOG = logging.getLogger(__name__)


def copy_exprargs(code):
    """Copy the mutable statements of ``code`` so the source stays intact."""
    def copy(stmt):
        if isinstance(stmt, Expr):
            return Expr(stmt.head, [copy(a) if isinstance(a, Expr) else a for a in stmt.args])
        if isinstance(stmt, PhiNode):
            return PhiNode(list(stmt.edges), list(stmt.values))
        if isinstance(stmt, GotoIfNot):
            return GotoIfNot(stmt.cond, stmt.dest)
        if isinstance(stmt, GotoNode):
            return GotoNode(stmt.label)
        if isinstance(stmt, ReturnNode):
            return ReturnNode(stmt.val)
        if isinstance(stmt, PiNode):
            return PiNode(stmt.val, stmt.typ)
        return stmt
    return [copy(stmt) for stmt in code]


def process_meta(meta, stmt):
    """Move a ``meta`` statement with arguments into ``meta``."""
    if isexpr(stmt, "meta") and len(stmt.args) >= 1:
        meta.append(stmt)
        return None
    return stmt


def strip_trailing_junk(cfg, code, types, info, codelocs, flags):
    """Drop trailing no-ops of the last block and make sure it ends in a terminator.

    The last block always keeps at least one statement.
    """
    last = cfg.blocks[-1]
    n = len(code)
    while n - 1 > last.stmts.first and code[n - 1] is None:
        n -= 1
    if n != len(code):
        for column in (code, types, info, codelocs, flags):
            del column[n:]
        last.stmts = StmtRange(last.stmts.first, n - 1)

    # An implicit return on a dead branch leaves the body without one.
    term = code[-1]
    if not isinstance(term, (GotoIfNot, GotoNode, ReturnNode)):
        code.append(ReturnNode())
        types.append(Bottom)
        codelocs.append(0)
        info.append(NO_CALL_INFO)
        flags.append(StmtFlag.NOTHROW)
        last.stmts = StmtRange(last.stmts.first, last.stmts.last + 1)


def rewrite_live_branches(code, ssavaluetypes, ssaflags, sv):
    cfg = sv.cfg
    for i, expr in enumerate(code):
        if i in sv.unreachable or not isinstance(expr, GotoIfNot):
            continue
        block = block_for_inst(cfg, i)
        if ssavaluetypes[i] is Bottom:
            destblock = block_for_inst(cfg, expr.dest)
            cfg_delete_edge(cfg, block, block + 1)
            if block + 1 != destblock:
                cfg_delete_edge(cfg, block, destblock)
            expr = Expr("call", [builtins.typeassert, expr.cond, Bool])
        elif i + 1 in sv.unreachable:
            if not has_flag(ssaflags[i], StmtFlag.NOTHROW):
                raise InternalError("branch %d with a dead fallthrough may throw" % i)
            cfg_delete_edge(cfg, block, block + 1)
            expr = GotoNode(expr.dest)
        elif expr.dest in sv.unreachable:
            if not has_flag(ssaflags[i], StmtFlag.NOTHROW):
                raise InternalError("branch %d with a dead destination may throw" % i)
            cfg_delete_edge(cfg, block, block_for_inst(cfg, expr.dest))
            expr = None
        code[i] = expr


def convert_to_ircode(ci, sv):
    """Build the (still slot-based) ``IRCode`` of ``ci``.

    Args:
        ci: The inferred ``CodeInfo``; left unmodified.
        sv: The ``OptimizationState``; its ``cfg`` becomes the IR's CFG.

    Returns:
        An ``IRCode`` whose labels are statement indices and whose
        ``argtypes`` are still the slot types.
    """
    cfg = sv.cfg
    code = copy_exprargs(ci.code)
    ssavaluetypes = list(ci.ssavaluetypes)
    ssaflags = [StmtFlag(f) for f in ci.ssaflags]
    codelocs = list(ci.codelocs)
    stmtinfo = list(sv.stmt_info)

    rewrite_live_branches(code, ssavaluetypes, ssaflags, sv)

    def insert(at, stmt, typ, codeloc, flag):
        code.insert(at, stmt)
        ssavaluetypes.insert(at, typ)
        stmtinfo.insert(at, NO_CALL_INFO)
        codelocs.insert(at, codeloc)
        ssaflags.insert(at, flag)

    meta = []
    idx = 0
    oldidx = 0
    nstmts = len(code)
    ssachangemap = labelchangemap = blockchangemap = None
    prevloc = 0
    while idx < len(code):
        codeloc = codelocs[idx]
        if sv.insert_coverage and codeloc != prevloc and codeloc != 0:
            # The marker joins the block of the statement it precedes.
            insert(idx, Expr("code_coverage_effect"), Nothing, codeloc, IR_FLAG_NULL)
            if ssachangemap is None:
                ssachangemap = [0] * nstmts
            if labelchangemap is None:
                labelchangemap = [0] * nstmts
            ssachangemap[oldidx] += 1
            if oldidx + 1 < len(labelchangemap):
                labelchangemap[oldidx + 1] += 1
            if blockchangemap is None:
                blockchangemap = [0] * len(cfg.blocks)
            blockchangemap[block_for_inst(cfg, oldidx)] += 1
            idx += 1
            prevloc = codeloc

        if ssavaluetypes[idx] is Bottom and oldidx not in sv.unreachable:
            # Must-throw terminators were rewritten above.
            if isterminator(code[idx]):
                raise InternalError("terminator %d is typed Union{}" % oldidx)

            block = block_for_inst(cfg, oldidx)
            block_end = cfg.blocks[block].stmts.last + (idx - oldidx)

            for succ in cfg.blocks[block].succs:
                cfg.blocks[succ].preds.remove(block)
            cfg.blocks[block].succs = []

            nxt = code[idx + 1] if idx + 1 < len(code) else None
            if not (isinstance(nxt, ReturnNode) and not nxt.has_val):
                if block_end > idx:
                    # The rest of the block is dead; only its terminator is
                    # replaced.
                    code[block_end] = ReturnNode()
                    codelocs[block_end] = codelocs[idx]
                    ssavaluetypes[block_end] = Bottom
                    stmtinfo[block_end] = NO_CALL_INFO
                    ssaflags[block_end] = StmtFlag.NOTHROW
                    idx = block_end
                else:
                    insert(idx + 1, ReturnNode(), Bottom, codelocs[idx], StmtFlag.NOTHROW)
                    if ssachangemap is None:
                        ssachangemap = [0] * nstmts
                    if labelchangemap is None:
                        labelchangemap = [0] * nstmts if sv.insert_coverage else ssachangemap
                    if oldidx + 1 < len(ssachangemap):
                        ssachangemap[oldidx + 1] += 1
                        if sv.insert_coverage:
                            labelchangemap[oldidx + 1] += 1
                    if blockchangemap is None:
                        blockchangemap = [0] * len(cfg.blocks)
                    blockchangemap[block] += 1
                    idx += 1
                oldidx = cfg.blocks[block].stmts.last
        idx += 1
        oldidx += 1

    if ssachangemap is not None and labelchangemap is not None:
        renumber_ir_elements(code, ssachangemap, labelchangemap)
    if blockchangemap is not None:
        renumber_cfg_stmts(cfg, blockchangemap)

    for i in range(len(code)):
        code[i] = process_meta(meta, code[i])
    strip_trailing_junk(cfg, code, ssavaluetypes, stmtinfo, codelocs, ssaflags)

    stmts = InstructionStream(code, ssavaluetypes, stmtinfo, codelocs, ssaflags)
    LOG.debug("converted %r: %d statements, %d blocks", sv.linfo, len(code), len(cfg.blocks))
    # argtypes still holds the slot types; slot2reg trims it to the arguments.
    return IRCode(stmts, cfg, list(ci.linetable), list(sv.slottypes), meta, list(sv.sptypes))


def slot2reg(ir, ci, sv):
    """Replace the slots of ``ir`` with SSA values.

    Returns:
        The SSA ``IRCode``; ``argtypes`` holds only the arguments.
    """
    nargs = sv.nargs
    domtree = construct_domtree(ir.cfg.blocks)
    defuse = scan_slot_def_use(nargs, ci, ir.stmts.stmt)
    ir = construct_ssa(ci, ir, domtree, defuse, sv.slottypes, nargs)
    del ir.argtypes[nargs:]
    return ir
