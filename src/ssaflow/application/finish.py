"""
Final inlining decision and packaging of the optimized body.
"""

import logging

from ssaflow.ir.flags import IR_FLAG_NULL
from ssaflow.ir.method import Method
from ssaflow.ir.nodes import Expr, GotoIfNot, GotoNode, PhiNode, PiNode, isexpr
from ssaflow.ir.types import ANY, Bottom, TupleType, isconcretetype, isdispatchtuple, istupletype, widenconst
from ssaflow.optimization.cost import (
    inline_cost,
    is_declared_inline,
    is_declared_noinline,
    set_inlineable,
)

LOG = logging.getLogger(__name__)

# Base library functions whose inlining unlocks further optimization.
_favored_names = frozenset(("iterate", "unsafe_convert", "cconvert"))


def finish(compiler, opt, ir, caller):
    """Decide whether ``opt.src`` is inlineable and record its cost.

    Args:
        compiler: The ``CompilerContext``; supplies ``params``.
        opt: The ``OptimizationState``.
        ir: The optimized ``IRCode``; stored in ``opt.ir``.
        caller: The ``InferenceResult``; its ``result`` is the return type.
    """
    src = opt.src
    linfo = opt.linfo
    def_ = linfo.def_
    params = compiler.params

    force_noinline = is_declared_noinline(src)
    result = caller.result
    opt.ir = ir

    if not force_noinline:
        if not isinstance(linfo.spec_types, TupleType):
            force_noinline = True
        if not is_declared_inline(src) and result is Bottom:
            force_noinline = True

    if force_noinline:
        set_inlineable(src, False)
    elif isinstance(def_, Method):
        if is_declared_inline(src) and isdispatchtuple(linfo.spec_types):
            # A dispatch barrier would not help; obey the declaration.
            set_inlineable(src, True)
        else:
            cost_threshold = default = params.inline_cost_threshold
            if istupletype(result) and not isconcretetype(widenconst(result)):
                cost_threshold += params.inline_tupleret_bonus
            if is_declared_inline(src):
                cost_threshold += 19 * default
            if def_.module.istopmod and def_.name in _favored_names:
                cost_threshold += 4 * default
            src.inlining_cost = inline_cost(ir, params, cost_threshold)
    LOG.debug("%r: inlining cost %d", linfo, src.inlining_cost)
    return None


def replace_code_newstyle(src, ir):
    """Store ``ir`` into ``src`` with branch labels back in statement indices."""
    nargs = len(ir.argtypes)
    del src.slotnames[nargs:]
    del src.slotflags[nargs:]
    if src.slottypes is not None:
        del src.slottypes[nargs:]

    stmts = ir.stmts
    code = src.code = list(stmts.stmt)
    ssavaluetypes = src.ssavaluetypes = list(stmts.type)
    codelocs = src.codelocs = list(stmts.line)
    ssaflags = src.ssaflags = list(stmts.flag)
    src.linetable = list(ir.linetable)
    for metanode in ir.meta:
        code.append(metanode)
        codelocs.append(1 if src.linetable else 0)
        ssavaluetypes.append(ANY)
        ssaflags.append(IR_FLAG_NULL)

    blocks = ir.cfg.blocks
    for i, stmt in enumerate(code):
        if isinstance(stmt, GotoNode):
            code[i] = GotoNode(blocks[stmt.label].stmts.first)
        elif isinstance(stmt, GotoIfNot):
            code[i] = GotoIfNot(stmt.cond, blocks[stmt.dest].stmts.first)
        elif isinstance(stmt, PhiNode):
            code[i] = PhiNode([blocks[e].stmts.last for e in stmt.edges], list(stmt.values))
        elif isexpr(stmt, "enter"):
            code[i] = Expr("enter", [blocks[stmt.args[0]].stmts.first] + stmt.args[1:])
    return src


def widen_all_consts(src):
    """Widen every ``Const`` in the type annotations of ``src``."""
    src.ssavaluetypes = [widenconst(t) for t in src.ssavaluetypes]
    for i, x in enumerate(src.code):
        if isinstance(x, PiNode):
            src.code[i] = PiNode(x.val, widenconst(x.typ))
    src.rettype = widenconst(src.rettype)
    return src


def ir_to_codeinf(src, ir):
    """Package the optimized ``ir`` into ``src`` and mark it inferred."""
    replace_code_newstyle(src, ir)
    widen_all_consts(src)
    src.inferred = True
    return src


def optimized_source(opt):
    """``ir_to_codeinf`` on an ``OptimizationState``; releases ``opt.ir``."""
    src = ir_to_codeinf(opt.src, opt.ir)
    opt.ir = None
    return src
