"""
Queries shared by the analyses and optimization passes.
"""

from ssaflow.application.errors import InternalError
from ssaflow.ir.ircode import CodeInfo
from ssaflow.ir.nodes import (
    Argument,
    Expr,
    GlobalRef,
    PhiNode,
    PiNode,
    QuoteNode,
    SlotNumber,
    SSAValue,
    isexpr,
)
from ssaflow.ir.types import ANY, Bool, Const, singleton_type


def abstract_eval_globalref(g):
    """Constant bindings fold to their value; anything else may change."""
    mod = g.mod
    if mod.isdefined(g.name) and mod.isconst(g.name):
        return Const(mod.bindings[g.name])
    return ANY


def argextype(x, src, sptypes=None, slottypes=None):
    """Return the type of value ``x`` in the context of inferred ``src``.

    ``src`` is either an ``IRCode`` or a ``CodeInfo``. The result may be an
    extended lattice element such as ``Const``; use ``widenconst`` to get a
    plain type.
    """
    if isinstance(src, CodeInfo):
        ssatypes = src.ssavaluetypes
        if slottypes is None:
            slottypes = src.slottypes
    else:
        ssatypes = src.stmts.type
        if sptypes is None:
            sptypes = src.sptypes
        if slottypes is None:
            slottypes = src.argtypes

    if isinstance(x, Expr):
        if x.head == "static_parameter":
            return sptypes[x.args[0]].typ
        elif x.head == "boundscheck":
            return Bool
        elif x.head == "copyast":
            return argextype(x.args[0], src, sptypes, slottypes)
        raise InternalError(
            "argextype called on Expr with head %s, which is not valid in argument position" % x.head
        )
    elif isinstance(x, SlotNumber):
        return slottypes[x.id]
    elif isinstance(x, SSAValue):
        return ssatypes[x.id]
    elif isinstance(x, Argument):
        return slottypes[x.n]
    elif isinstance(x, QuoteNode):
        return Const(x.value)
    elif isinstance(x, GlobalRef):
        return abstract_eval_globalref(x)
    elif isinstance(x, PhiNode):
        return ANY
    elif isinstance(x, PiNode):
        return x.typ
    else:
        return Const(x)


def is_known_call(stmt, func, src):
    """True if ``stmt`` is a call whose callee is statically ``func``."""
    if not isexpr(stmt, "call") or not stmt.args:
        return False
    return singleton_type(argextype(stmt.args[0], src)) is func
