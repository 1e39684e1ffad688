"""
Inlining cost model.

Every statement gets a small non-negative integer approximating the native
code it turns into. The body cost is the saturating sum of the statement
costs; once it exceeds the caller's threshold the body is never inlined and
the scan stops early.

Costs are stored in ``CodeInfo.inlining_cost`` clamped to
``[MIN_INLINE_COST, MAX_INLINE_COST]``, where ``MAX_INLINE_COST`` means
"never inline".
"""

import sys

from ssaflow.analysis.tools import argextype
from ssaflow.ir import builtins
from ssaflow.ir.builtins import Builtin, IntrinsicFunction
from ssaflow.ir.flags import is_stmt_throw_block
from ssaflow.ir.ircode import IRCode
from ssaflow.ir.nodes import (
    Expr,
    GlobalRef,
    GotoIfNot,
    GotoNode,
    QuoteNode,
    SSAValue,
    isexpr,
)
from ssaflow.ir.types import (
    ANY,
    Bottom,
    IntrinsicType,
    isconstType,
    isknowntype,
    singleton_type,
    widenconst,
)

MAX_INLINE_COST = 0xFFFF
MIN_INLINE_COST = 10

# Cost of a backward branch; loops are assumed expensive.
BACKEDGE_COST = 40

# Intrinsics by name. Missing entries cost the non-leaf penalty.
T_IFUNC_COST = {
    "add_int": 1,
    "sub_int": 1,
    "mul_int": 4,
    "sdiv_int": 30,
    "neg_int": 1,
    "slt_int": 1,
    "sle_int": 1,
    "eq_int": 1,
    "and_int": 1,
    "or_int": 1,
    "not_int": 1,
    "add_float": 1,
    "mul_float": 4,
    "div_float": 20,
    "sqrt_llvm": 20,
    "bitcast": 0,
    "pointerref": 4,
    "pointerset": 5,
}

# Builtins. Missing entries cost a direct function call.
T_FFUNC_COST = {
    builtins.egal: 1,
    builtins.isa_: 1,
    builtins.typeof_: 0,
    builtins.issubtype: 10,
    builtins.nfields: 1,
    builtins.fieldtype: 0,
    builtins.apply_type: 10,
    builtins.sizeof: 1,
    builtins.setfield_: 3,
    builtins.setglobal_: 3,
    builtins.isdefined: 1,
    builtins.svec: 20,
    builtins.ifelse: 1,
    builtins.typeassert: 4,
    builtins.arraysize: 4,
    builtins.throw: 0,
    builtins.UnionAll: 1,
}

DIRECT_CALL_COST = 20


def is_inlineable(src):
    return src.inlining_cost != MAX_INLINE_COST


def set_inlineable(src, val):
    src.inlining_cost = MIN_INLINE_COST if val else MAX_INLINE_COST


def inline_cost_clamp(x):
    if x > MAX_INLINE_COST:
        return MAX_INLINE_COST
    if x < MIN_INLINE_COST:
        return MIN_INLINE_COST
    return x


def is_declared_inline(src):
    return src.inlining == 1


def is_declared_noinline(src):
    return src.inlining == 2


def plus_saturate(x, y):
    """``max(x, y, x + y)``; never less than either input."""
    return max(x, y, x + y)


def _result_type(line, src, sptypes):
    if line is None:
        return ANY
    return argextype(SSAValue(line), src, sptypes)


def _callee_type(farg, src, sptypes):
    ftyp = argextype(farg, src, sptypes)
    if ftyp is IntrinsicType and isinstance(farg, SSAValue):
        # Constants are widened in code inlined from elsewhere; look through
        # the defining statement in the simple cases.
        if isinstance(src, IRCode):
            def_ = src.stmts.stmt[farg.id]
        else:
            def_ = src.code[farg.id]
        if isinstance(def_, (GlobalRef, QuoteNode, IntrinsicFunction)) or isexpr(
            def_, "static_parameter"
        ):
            ftyp = argextype(def_, src, sptypes)
    return ftyp


def call_cost(ex, line, src, sptypes, params, error_path):
    f = singleton_type(_callee_type(ex.args[0], src, sptypes))
    if isinstance(f, IntrinsicFunction):
        return T_IFUNC_COST.get(f.name, params.inline_nonleaf_penalty)

    if isinstance(f, Builtin) and f is not builtins.invoke:
        # Accesses are cheap only when the result can be inferred.
        if f is builtins.getfield or f is builtins.tuple_ or f is builtins.getglobal:
            return 0
        if f in (builtins.arrayref, builtins.const_arrayref, builtins.arrayset) and len(ex.args) >= 3:
            atyp = argextype(ex.args[2], src, sptypes)
            if isknowntype(atyp):
                return 4
            return params.inline_error_path_cost if error_path else params.inline_nonleaf_penalty
        if f is builtins.typeassert and len(ex.args) >= 3:
            if isconstType(widenconst(argextype(ex.args[2], src, sptypes))):
                return 1
        return T_FFUNC_COST.get(f, DIRECT_CALL_COST)

    if _result_type(line, src, sptypes) is Bottom:
        return 0
    return params.inline_error_path_cost if error_path else params.inline_nonleaf_penalty


def statement_cost(ex, line, src, sptypes, params, error_path=False):
    """Cost of expression ``ex`` found at statement ``line``.

    Args:
        ex: The statement.
        line: Its index, or None for a nested expression with no type.
        src: The ``IRCode`` or ``CodeInfo`` holding it.
        sptypes: Static parameter types.
        params: ``OptimizationParams``.
        error_path: True if the statement only runs on a path that throws.
    """
    if not isinstance(ex, Expr):
        return 0
    head = ex.head
    if head == "call":
        return call_cost(ex, line, src, sptypes, params, error_path)
    elif head in ("foreigncall", "invoke", "invoke_modify"):
        # Calls that cannot return are errors and not part of the typical
        # run time of the function.
        return 0 if _result_type(line, src, sptypes) is Bottom else DIRECT_CALL_COST
    elif head == "=":
        cost = DIRECT_CALL_COST if isinstance(ex.args[0], GlobalRef) else 0
        rhs = ex.args[1]
        if isinstance(rhs, Expr):
            cost = plus_saturate(cost, statement_cost(rhs, None, src, sptypes, params, error_path))
        return cost
    elif head == "copyast":
        return 100
    elif head == "enter":
        # Bodies with exception handlers are never inlined.
        return sys.maxsize
    return 0


def _branch_target(src, label):
    if isinstance(src, IRCode):
        return src.cfg.blocks[label].stmts.first
    return label


def statement_or_branch_cost(stmt, line, src, sptypes, params):
    """Like ``statement_cost`` but also charges backward branches.

    Forward branches are free; the skipped statements are already counted.
    """
    if isinstance(stmt, Expr):
        flag = src.stmts.flag[line] if isinstance(src, IRCode) else src.ssaflags[line]
        return statement_cost(stmt, line, src, sptypes, params, is_stmt_throw_block(flag))
    if isinstance(stmt, GotoNode):
        return BACKEDGE_COST if _branch_target(src, stmt.label) < line else 0
    if isinstance(stmt, GotoIfNot):
        return BACKEDGE_COST if _branch_target(src, stmt.dest) < line else 0
    return 0


def inline_cost(ir, params, cost_threshold):
    """Clamped body cost of ``ir``, or ``MAX_INLINE_COST`` past the threshold."""
    bodycost = 0
    stmts = ir.stmts.stmt
    for line in range(len(stmts)):
        thiscost = statement_or_branch_cost(stmts[line], line, ir, ir.sptypes, params)
        bodycost = plus_saturate(bodycost, thiscost)
        if bodycost > cost_threshold:
            return MAX_INLINE_COST
    return inline_cost_clamp(bodycost)


def statement_costs(cost, body, src, sptypes, params):
    """Fill ``cost`` with the cost of each statement of ``body``.

    Returns:
        The largest single statement cost.
    """
    maxcost = 0
    for line, stmt in enumerate(body):
        thiscost = statement_or_branch_cost(stmt, line, src, sptypes, params)
        cost[line] = thiscost
        if thiscost > maxcost:
            maxcost = thiscost
    return maxcost
