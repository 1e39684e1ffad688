"""
Post-optimization effect refinement.

Inference summarizes a function's effects from the statements it saw before
optimization. Once the pipeline has run, the flags of the surviving
statements often prove more. This module scans the optimized body and
upgrades the ``ipo_effects`` of the ``InferenceResult``:

- ``nothrow`` / ``effect_free`` / ``noub`` hold when every statement carries
  the corresponding flag. Statements flagged as effect free only when their
  argument memory does not escape are checked with escape analysis first.
- ``consistent`` holds when no inconsistent value reaches a return. An
  inconsistent value taints all its transitive uses; an inconsistent branch
  condition taints the phis at the merge points it controls.

The scan visits blocks in increasing order from the entry and stops at the
first loop back edge. Everything seen after that point is handled by a
backward closure over the def-use map, which is only built when needed.
The accumulators only ever go from true to false.

Exception regions are not modelled: a body containing one is left alone.
"""

import logging

from ssaflow.analysis.cfg.dom import (
    BlockLiveness,
    construct_domtree,
    construct_postdomtree,
    iterated_dominance_frontier,
    postdominates,
)
from ssaflow.analysis.defuse import DefUseMap
from ssaflow.analysis.escape import (
    ArgEscapeCache,
    GetNativeEscapeCache,
    analyze_escapes,
    has_no_escape,
    ignore_argescape,
)
from ssaflow.analysis.tools import argextype, is_known_call
from ssaflow.ir import builtins
from ssaflow.ir.cfg import BasicBlock, StmtRange, cfg_insert_edge
from ssaflow.ir.effects import (
    ALWAYS_TRUE,
    EFFECT_FREE_IF_INACCESSIBLEMEMONLY,
    NOUB_IF_NOINBOUNDS,
    is_consistent,
    is_effect_free,
    is_nothrow,
    is_noub,
)
from ssaflow.ir.flags import IR_FLAGS_NEEDS_EA_REFINEMENT, StmtFlag, has_flag
from ssaflow.ir.ircode import operands
from ssaflow.ir.nodes import (
    Argument,
    Expr,
    GotoIfNot,
    GotoNode,
    PhiNode,
    ReturnNode,
    SSAValue,
    is_valid_phiblock_stmt,
    isexpr,
    isterminator,
)
from ssaflow.ir.types import Bool, is_mutation_free_argtype
from ssaflow.util.tvl import TVLFalse, TVLMaybe, TVLTrue
from ssaflow.util.worklist import MinPrioritySet

LOG = logging.getLogger(__name__)


def visit_bb_phis(ir, bb, callback):
    """Call ``callback(idx)`` for every phi at the top of block ``bb``."""
    stmts = ir.stmts.stmt
    for idx in ir.cfg.blocks[bb].stmts:
        stmt = stmts[idx]
        if isinstance(stmt, PhiNode):
            callback(idx)
        elif not is_valid_phiblock_stmt(stmt):
            return


def any_stmt_may_throw(ir, bb):
    flags = ir.stmts.flag
    for idx in ir.cfg.blocks[bb].stmts:
        if not has_flag(flags[idx], StmtFlag.NOTHROW):
            return True
    return False


class LazyPostDomtree(object):
    def __init__(self, ir):
        self.ir = ir
        self.postdomtree = None

    def get(self):
        if self.postdomtree is None:
            self.postdomtree = construct_postdomtree(self.ir.cfg.blocks)
        return self.postdomtree


class LazyAugmentedDomtree(object):
    """Dominator tree of the CFG extended with a virtual exit block.

    Every block ending in a value-returning ``ReturnNode`` gets an edge to
    the exit, so a phi "in the exit" stands for a return whose value depends
    on the path taken.
    """

    def __init__(self, ir):
        self.ir = ir
        self.cfg = None
        self.domtree = None

    def get(self):
        if self.domtree is None:
            ir = self.ir
            cfg = ir.cfg.copy()
            cfg.blocks.append(BasicBlock(StmtRange(0, -1)))
            exit = len(cfg.blocks) - 1
            for bb in range(exit):
                terminator = ir.stmts.stmt[cfg.blocks[bb].stmts.last]
                if isinstance(terminator, ReturnNode) and terminator.has_val:
                    cfg_insert_edge(cfg, bb, exit)
            self.cfg = cfg
            self.domtree = construct_domtree(cfg.blocks)
        return self.cfg, self.domtree


def conditional_successors_may_throw(lazypostdomtree, ir, bb):
    """True if a block reached conditionally from ``bb`` may throw.

    Successors that post-dominate their predecessor run regardless of the
    branch and are not considered.
    """
    visited = set((bb,))
    worklist = [bb]
    while worklist:
        thisbb = worklist.pop()
        for succ in ir.cfg.blocks[thisbb].succs:
            if succ in visited:
                continue
            visited.add(succ)
            if postdominates(lazypostdomtree.get(), succ, thisbb):
                continue
            if any_stmt_may_throw(ir, succ):
                return True
            worklist.append(succ)
    return False


class PostOptAnalysisState(object):
    """Accumulators of the refinement scan.

    Attributes:
        result: The ``InferenceResult`` whose effects are refined.
        ir: The optimized body.
        inconsistent: Statements known to produce inconsistent values.
        tpdum: Def-use map, filled only when the backward closure runs.
        ea_analysis_pending: Statements awaiting escape validation.
        effect_free_if_argmem_only: ``TVLMaybe`` until escape validation
            settles it.
        any_conditional_ub: Set when a bounds check guards a ``getfield``.
    """

    def __init__(self, result, ir):
        self.result = result
        self.ir = ir
        self.inconsistent = MinPrioritySet(remember=True)
        self.tpdum = DefUseMap(len(ir.stmts))
        self.lazypostdomtree = LazyPostDomtree(ir)
        self.lazyagdomtree = LazyAugmentedDomtree(ir)
        self.ea_analysis_pending = []
        self.all_retpaths_consistent = True
        self.all_effect_free = True
        self.effect_free_if_argmem_only = TVLMaybe
        self.all_nothrow = True
        self.all_noub = True
        self.any_conditional_ub = False

    def give_up_refinements(self):
        self.all_retpaths_consistent = False
        self.all_effect_free = False
        self.all_nothrow = False
        self.all_noub = False

    def any_refinable(self):
        effects = self.result.ipo_effects
        return (
            (not is_consistent(effects) and self.all_retpaths_consistent)
            or (not is_effect_free(effects) and self.all_effect_free)
            or (not is_nothrow(effects) and self.all_nothrow)
            or (not is_noub(effects) and self.all_noub)
        )


class BBScanner(object):
    """Visits the statements of reachable blocks in increasing block order.

    The pending block set persists across ``scan`` calls, so a scan that
    stopped at a back edge can be resumed.
    """

    def __init__(self, ir):
        self.ir = ir
        self.bb_ip = MinPrioritySet((0,))

    def process_terminator(self, stmt, idx, bb):
        """Queue the successors of ``stmt``; True if it is a back edge."""
        bb_ip = self.bb_ip
        if isinstance(stmt, GotoIfNot):
            backedge = stmt.dest <= bb
            if not backedge:
                bb_ip.add(stmt.dest)
            bb_ip.add(bb + 1)
            return backedge
        elif isinstance(stmt, GotoNode):
            backedge = stmt.label <= bb
            if not backedge:
                bb_ip.add(stmt.label)
            return backedge
        elif isexpr(stmt, "enter"):
            bb_ip.add(stmt.args[0])
            bb_ip.add(bb + 1)
            return False
        elif isinstance(stmt, ReturnNode):
            return False
        elif idx == self.ir.cfg.blocks[bb].stmts.last and bb + 1 < len(self.ir.cfg.blocks):
            bb_ip.add(bb + 1)
        return False

    def scan(self, callback, forwards_only):
        """Run ``callback(inst, idx, lstmt, bb)`` over pending blocks.

        The callback returns None to stop the whole scan, or True to go on.

        Returns:
            True if the scan ran to completion (or was stopped by the
            callback), False if it stopped at a back edge.
        """
        blocks = self.ir.cfg.blocks
        stmts = self.ir.stmts
        while self.bb_ip:
            bb = self.bb_ip.popfirst()
            lstmt = blocks[bb].stmts.last
            for idx in blocks[bb].stmts:
                inst = stmts[idx]
                ret = callback(inst, idx, lstmt, bb)
                if ret is None:
                    return True
                if ret and self.process_terminator(inst.stmt, idx, bb) and forwards_only:
                    return False
        return True


def is_ipo_dataflow_analysis_profitable(effects):
    return not (
        is_consistent(effects)
        and is_effect_free(effects)
        and is_nothrow(effects)
        and is_noub(effects)
    )


def is_getfield_with_boundscheck_arg(stmt, ir):
    """A ``getfield`` whose trailing bounds-check flag is an SSA value."""
    if not is_known_call(stmt, builtins.getfield, ir):
        return False
    if len(stmt.args) < 4:
        return False
    boundscheck = stmt.args[-1]
    if argextype(boundscheck, ir) is not Bool:
        return False
    return isinstance(boundscheck, SSAValue)


def check_all_args_noescape(sv, ir, stmt, estate):
    """True if no mutable memory passed to ``stmt`` escapes the function.

    Arguments are allowed only as ``effect_free_if_argmem_only``; fresh
    allocations are followed through their own fields.
    """
    worklist = [stmt]
    while worklist:
        stmt = worklist.pop()
        if isexpr(stmt, "invoke"):
            args = stmt.args[1:]
        elif isexpr(stmt, "new"):
            args = stmt.args
        else:
            return False
        for arg in args:
            if is_mutation_free_argtype(argextype(arg, ir)):
                continue
            if isinstance(arg, Argument):
                if has_no_escape(ignore_argescape(estate[arg])):
                    # The best we can then say is effect free if argmem only.
                    if sv.effect_free_if_argmem_only is TVLMaybe:
                        sv.effect_free_if_argmem_only = TVLTrue
                else:
                    sv.effect_free_if_argmem_only = TVLFalse
                return False
            elif isinstance(arg, SSAValue):
                argstmt = ir.stmts.stmt[arg.id]
                if not isexpr(argstmt, "new"):
                    return False
                if not has_no_escape(estate[arg]):
                    return False
                worklist.append(argstmt)
            else:
                return False
    return True


def validate_mutable_arg_escapes(estate, sv):
    ir = sv.ir
    for idx in sv.ea_analysis_pending:
        stmt = ir.stmts.stmt[idx]
        if not (isinstance(stmt, Expr) and check_all_args_noescape(sv, ir, stmt, estate)):
            sv.all_effect_free = False
            return False
    return True


def is_conditional_noub(inst, sv):
    """Recognize a ``boundscheck`` feeding a ``getfield``.

    Such an access is free of undefined behavior unless bounds checking is
    disabled at the call site.
    """
    stmt = inst.stmt
    if not is_getfield_with_boundscheck_arg(stmt, sv.ir):
        return False
    bstmt = sv.ir.stmts.stmt[stmt.args[-1].id]
    if not isexpr(bstmt, "boundscheck"):
        return False
    # Already inbounds: nothing conditional left.
    if bstmt.args and bstmt.args[0] is False:
        return False
    sv.any_conditional_ub = True
    return True


def scan_non_dataflow_flags(inst, sv):
    flag = inst.flag
    # Argument memory that does not escape can be refined to effect free.
    needs_ea_validation = has_flag(flag, IR_FLAGS_NEEDS_EA_REFINEMENT)
    if not needs_ea_validation:
        stmt = inst.stmt
        # Control flow is never removable but does not taint effect freedom.
        if not isterminator(stmt) and stmt is not None:
            sv.all_effect_free &= has_flag(flag, StmtFlag.EFFECT_FREE)
    elif sv.all_effect_free:
        sv.ea_analysis_pending.append(inst.idx)
    sv.all_nothrow &= has_flag(flag, StmtFlag.NOTHROW)
    if not has_flag(flag, StmtFlag.NOUB):
        if not is_conditional_noub(inst, sv):
            sv.all_noub = False


def _ssa_operands(stmt, ir):
    if is_getfield_with_boundscheck_arg(stmt, ir):
        # The bounds-check flag may be inconsistent without tainting the load.
        vals = stmt.args[:-1]
    else:
        vals = operands(stmt)
    return [v for v in vals if isinstance(v, SSAValue)]


def scan_inconsistency(inst, idx, sv):
    stmt_inconsistent = not has_flag(inst.flag, StmtFlag.CONSISTENT)
    for val in _ssa_operands(inst.stmt, sv.ir):
        stmt_inconsistent |= val.id in sv.inconsistent
    if stmt_inconsistent:
        sv.inconsistent.add(idx)
    return stmt_inconsistent


def taint_inconsistent_branch(sv, bb, on_phi):
    """Account for a branch in ``bb`` on an inconsistent condition."""
    if not sv.result.ipo_effects.terminates:
        # Consistency includes consistent termination.
        sv.all_retpaths_consistent = False
    elif conditional_successors_may_throw(sv.lazypostdomtree, sv.ir, bb):
        sv.all_retpaths_consistent = False
    else:
        cfg, domtree = sv.lazyagdomtree.get()
        exit = len(cfg.blocks) - 1
        liveness = BlockLiveness(sv.ir.cfg.blocks[bb].succs, None)
        for succ in iterated_dominance_frontier(cfg, liveness, domtree):
            if succ == exit:
                # The returned value depends on the branch taken.
                sv.all_retpaths_consistent = False
            else:
                visit_bb_phis(sv.ir, succ, on_phi)


class ScanStmt(object):
    """Forward scan callback accumulating every fact of the analysis."""

    def __init__(self, sv):
        self.sv = sv

    def __call__(self, inst, idx, lstmt, bb):
        sv = self.sv
        stmt = inst.stmt

        if isexpr(stmt, "enter"):
            # Exception regions are not modelled.
            sv.give_up_refinements()
            return None

        scan_non_dataflow_flags(inst, sv)

        stmt_inconsistent = scan_inconsistency(inst, idx, sv)

        if stmt_inconsistent and idx == lstmt:
            if isinstance(stmt, ReturnNode) and stmt.has_val:
                sv.all_retpaths_consistent = False
            elif isinstance(stmt, GotoIfNot):
                taint_inconsistent_branch(sv, bb, sv.inconsistent.add)

        if not sv.any_refinable():
            return None
        return True


class ScanNonDataflowFlags(object):
    """Scan callback used once consistency is already lost."""

    def __init__(self, sv):
        self.sv = sv

    def __call__(self, inst, idx, lstmt, bb):
        scan_non_dataflow_flags(inst, self.sv)
        if not self.sv.any_refinable():
            return None
        return True


def populate_def_use_map(tpdum, scanner):
    def record(inst, idx, lstmt, bb):
        tpdum.add(idx, inst.stmt)
        return True

    scanner.scan(record, False)


def check_inconsistency(sv, scanner):
    """Finish the scan, then close the inconsistent set over all uses."""
    scanner.scan(ScanStmt(sv), False)
    sv.tpdum.complete()
    scanner.bb_ip.add(0)
    populate_def_use_map(sv.tpdum, scanner)

    ir = sv.ir
    inconsistent = sv.inconsistent
    tpdum = sv.tpdum
    stmt_ip = MinPrioritySet()

    def taint(idx):
        # Each statement is marked, and its uses queued, at most once.
        if idx not in inconsistent:
            stmt_ip.add(idx)

    for def_ in list(inconsistent):
        for use in tpdum[def_]:
            taint(use)

    while stmt_ip:
        idx = stmt_ip.popfirst()
        if idx in inconsistent:
            continue
        stmt = ir.stmts.stmt[idx]
        if is_getfield_with_boundscheck_arg(stmt, ir):
            if not any(val.id in inconsistent for val in _ssa_operands(stmt, ir)):
                continue
        inconsistent.add(idx)
        if isinstance(stmt, ReturnNode):
            sv.all_retpaths_consistent = False
        elif isinstance(stmt, GotoIfNot):
            taint_inconsistent_branch(sv, ir.block_for_inst(idx), taint)
        if not sv.all_retpaths_consistent:
            break
        for use in tpdum[idx]:
            taint(use)


def refine_effects(compiler, sv):
    """Write the surviving accumulators back into ``sv.result``.

    Returns:
        True if the effects were updated.
    """
    if sv.all_effect_free and sv.ea_analysis_pending:
        ir = sv.ir
        nargs = len(ir.argtypes)
        analyzer = compiler.escape_analyzer if compiler is not None else analyze_escapes
        code_cache = compiler.code_cache if compiler is not None else None
        estate = analyzer(ir, nargs, GetNativeEscapeCache(code_cache))
        sv.result.stack_analysis_result(ArgEscapeCache(estate))
        validate_mutable_arg_escapes(estate, sv)

    if not sv.any_refinable():
        return False

    effects = sv.result.ipo_effects
    if sv.all_effect_free:
        effect_free = ALWAYS_TRUE
    elif sv.effect_free_if_argmem_only is TVLTrue:
        effect_free = EFFECT_FREE_IF_INACCESSIBLEMEMONLY
    else:
        effect_free = effects.effect_free
    if sv.all_noub:
        noub = NOUB_IF_NOINBOUNDS if sv.any_conditional_ub else ALWAYS_TRUE
    else:
        noub = effects.noub

    sv.result.ipo_effects = effects.replace(
        consistent=ALWAYS_TRUE if sv.all_retpaths_consistent else effects.consistent,
        effect_free=effect_free,
        nothrow=True if sv.all_nothrow else effects.nothrow,
        noub=noub,
    )
    LOG.debug("refined effects of %r: %r -> %r", sv.result.linfo, effects, sv.result.ipo_effects)
    return True


def ipo_dataflow_analysis(compiler, ir, result):
    """Refine ``result.ipo_effects`` from the optimized body ``ir``.

    Args:
        compiler: The ``CompilerContext``; supplies the escape analyzer and
            the code cache. May be None to use the defaults.
        ir: The optimized ``IRCode``.
        result: The ``InferenceResult`` to update.

    Returns:
        True if the effects were updated.
    """
    if not is_ipo_dataflow_analysis_profitable(result.ipo_effects):
        return False

    sv = PostOptAnalysisState(result, ir)
    scanner = BBScanner(ir)

    completed_scan = scanner.scan(ScanStmt(sv), True)

    if not completed_scan:
        if sv.all_retpaths_consistent:
            check_inconsistency(sv, scanner)
        else:
            # Only the flags matter any more.
            scanner.scan(ScanNonDataflowFlags(sv), False)

    return refine_effects(compiler, sv)
