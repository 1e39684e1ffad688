"""
Effect classification of individual statements.

``stmt_effect_flags`` answers three questions about a statement of an SSA
body, using only the types recorded in that body:

consistent
    executing it twice on the same inputs yields the same result
effect_free_and_nothrow
    it can be dropped when its result is unused
nothrow
    it never raises

These answers drive dead code elimination and the flags of statements
created by optimization passes. Inference computes the same facts for the
statements it sees; this module recomputes them for the ones the optimizer
rewrites.
"""

from ssaflow.analysis.tools import argextype
from ssaflow.application.errors import InternalError
from ssaflow.ir import builtins
from ssaflow.ir.builtins import Builtin, IntrinsicFunction
from ssaflow.ir.effects import (
    ALWAYS_FALSE,
    ALWAYS_TRUE,
    CONSISTENT_IF_NOTRETURNED,
    EFFECTS_THROWS,
    EFFECTS_TOTAL,
    EFFECTS_UNKNOWN,
    is_consistent,
    is_effect_free,
    is_nothrow,
)
from ssaflow.ir.ircode import IRCode
from ssaflow.ir.method import Method
from ssaflow.ir.nodes import (
    Expr,
    GlobalRef,
    GotoIfNot,
    GotoNode,
    PhiNode,
    PiNode,
    QuoteNode,
    ReturnNode,
    SlotNumber,
)
from ssaflow.ir.types import (
    Bool,
    Bottom,
    Const,
    DataType,
    TupleType,
    TypeType,
    fieldcount,
    fieldtype,
    instanceof_tfunc,
    isconcretetype,
    issubtype,
    ismutabletype,
    singleton_type,
    widenconst,
)
from ssaflow.util.typedispatch import TypeDispatcher, defaultdispatch, dispatch

NO_EFFECT_FLAGS = (False, False, False)


def isdefinedconst_globalref(g):
    return g.mod.isdefined(g.name) and g.mod.isconst(g.name)


# Builtins whose result depends only on the identity of their arguments.
_pure_builtins = {
    builtins.tuple_: None,
    builtins.svec: None,
    builtins.egal: 2,
    builtins.typeof_: 1,
    builtins.isa_: 2,
    builtins.issubtype: 2,
    builtins.nfields: 1,
    builtins.sizeof: 1,
    builtins.UnionAll: 2,
}

# Builtins that write memory.
_mutating_builtins = frozenset(
    (builtins.setfield_, builtins.setglobal_, builtins.arrayset)
)

# Intrinsics that may raise even on well typed operands.
_throwing_intrinsics = frozenset(("sdiv_int", "pointerref", "pointerset", "cglobal"))

# Intrinsics touching memory through a pointer.
_memory_intrinsics = frozenset(("pointerref", "pointerset"))


def getfield_nothrow(argtypes):
    """True when ``getfield(obj, field)`` is statically in bounds."""
    if len(argtypes) < 2 or len(argtypes) > 3:
        return False
    obj = widenconst(argtypes[0])
    n = fieldcount(obj)
    if n is None:
        return False
    field = argtypes[1]
    if not isinstance(field, Const):
        return False
    if isinstance(field.val, bool):
        return False
    if isinstance(field.val, int):
        return 0 <= field.val < n
    if isinstance(field.val, str) and isinstance(obj, DataType):
        return field.val in obj.fieldnames
    return False


def intrinsic_effects(f, argtypes):
    consistent = ALWAYS_TRUE
    effect_free = ALWAYS_TRUE
    if f.name in _memory_intrinsics:
        consistent = ALWAYS_FALSE
    if f.name == "pointerset":
        effect_free = ALWAYS_FALSE
    nothrow = (
        len(argtypes) == f.nargs
        and f.name not in _throwing_intrinsics
        and all(isconcretetype(widenconst(t)) for t in argtypes)
    )
    return EFFECTS_TOTAL.replace(
        consistent=consistent, effect_free=effect_free, nothrow=nothrow
    )


def builtin_nothrow(f, argtypes, rt):
    if rt is Bottom:
        return False
    arity = _pure_builtins.get(f)
    if f in _pure_builtins:
        return arity is None or len(argtypes) == arity
    if f is builtins.getfield:
        return getfield_nothrow(argtypes)
    if f is builtins.typeassert:
        if len(argtypes) != 2:
            return False
        T, isexact = instanceof_tfunc(argtypes[1])
        return isexact and issubtype(argtypes[0], T)
    if f is builtins.ifelse:
        return len(argtypes) == 3 and issubtype(argtypes[0], Bool)
    if f is builtins.isdefined:
        return len(argtypes) == 2 and fieldcount(argtypes[0]) is not None
    return False


def builtin_effects(f, argtypes, rt):
    """Effects of calling builtin ``f`` on arguments of ``argtypes``.

    Args:
        f: A ``Builtin`` or ``IntrinsicFunction``.
        argtypes: Types of the arguments, without the callee.
        rt: Inferred result type of the call.
    """
    if isinstance(f, IntrinsicFunction):
        return intrinsic_effects(f, argtypes)
    if f is builtins.invoke or f is builtins.apply_iterate:
        return EFFECTS_UNKNOWN
    if f is builtins.throw:
        return EFFECTS_THROWS
    if f in _mutating_builtins:
        return EFFECTS_UNKNOWN.replace(terminates=True)

    nothrow = builtin_nothrow(f, argtypes, rt)
    if f is builtins.getfield:
        # Reads of mutable fields may observe different values.
        consistent = ALWAYS_TRUE
        if argtypes and ismutabletype(argtypes[0]):
            consistent = ALWAYS_FALSE
        return EFFECTS_TOTAL.replace(consistent=consistent, nothrow=nothrow)
    if f is builtins.getglobal:
        consistent = ALWAYS_TRUE
        nothrow = False
        if len(argtypes) == 2:
            mod, name = argtypes
            if isinstance(mod, Const) and isinstance(name, Const):
                g = GlobalRef(mod.val, name.val)
                nothrow = g.mod.isdefined(g.name)
                if not isdefinedconst_globalref(g):
                    consistent = ALWAYS_FALSE
            else:
                consistent = ALWAYS_FALSE
        return EFFECTS_TOTAL.replace(consistent=consistent, nothrow=nothrow)
    if f in (builtins.arrayref, builtins.arraysize, builtins.isdefined):
        return EFFECTS_TOTAL.replace(consistent=ALWAYS_FALSE, nothrow=nothrow)
    return EFFECTS_TOTAL.replace(nothrow=nothrow)


_allocating_foreigncalls = frozenset(
    ("jl_alloc_array_1d", "jl_alloc_array_2d", "jl_alloc_array_3d", "jl_new_array")
)


def foreigncall_effects(stmt):
    """Effects of a ``foreigncall``; only known allocators are understood."""
    name = stmt.args[0] if stmt.args else None
    if isinstance(name, QuoteNode):
        name = name.value
    if name in _allocating_foreigncalls:
        return EFFECTS_TOTAL.replace(consistent=CONSISTENT_IF_NOTRETURNED, nothrow=False)
    return EFFECTS_UNKNOWN


def new_expr_effect_flags(args, src):
    """Effect flags of ``Expr('new', [T, fields...])``.

    The allocation is never consistent (each execution yields a fresh
    object) but is effect free and cannot raise when the type is a known
    concrete struct and every field value fits the declared field type.
    """
    atyp = argextype(args[0], src)
    typ, isexact = instanceof_tfunc(atyp)
    if not isexact:
        atyp = widenconst(atyp)
        if isinstance(atyp, TypeType) and isinstance(atyp.typ, DataType):
            typ = atyp.typ
        else:
            return NO_EFFECT_FLAGS
        if typ.abstract:
            return NO_EFFECT_FLAGS
    elif not isconcretetype(typ):
        return NO_EFFECT_FLAGS
    if not isinstance(typ, (DataType, TupleType)):
        return NO_EFFECT_FLAGS

    fcount = fieldcount(typ)
    if fcount is None or fcount < len(args) - 1:
        return NO_EFFECT_FLAGS
    for fidx in range(len(args) - 1):
        eT = argextype(args[fidx + 1], src)
        fT = fieldtype(typ, fidx)
        if not issubtype(eT, fT):
            return NO_EFFECT_FLAGS
    return (False, True, True)


def _removable(effects):
    consistent = is_consistent(effects)
    nothrow = is_nothrow(effects)
    return (consistent, is_effect_free(effects) and nothrow, nothrow)


class StmtEffectFlags(TypeDispatcher):
    """Classifies one statement of ``src``; see ``stmt_effect_flags``."""

    def __init__(self, src):
        self.src = src

    @dispatch(PiNode, PhiNode)
    def visitMerge(self, stmt, rt):
        return (True, True, True)

    @dispatch(ReturnNode, GotoNode)
    def visitJump(self, stmt, rt):
        return (True, False, True)

    @dispatch(GotoIfNot)
    def visitGotoIfNot(self, stmt, rt):
        return (True, False, issubtype(argextype(stmt.cond, self.src), Bool))

    @dispatch(GlobalRef)
    def visitGlobalRef(self, stmt, rt):
        nothrow = consistent = isdefinedconst_globalref(stmt)
        return (consistent, nothrow, nothrow)

    @dispatch(SlotNumber)
    def visitSlotNumber(self, stmt, rt):
        raise InternalError("unexpected slot %r in SSA body" % (stmt,))

    @dispatch(Expr)
    def visitExpr(self, stmt, rt):
        handler = self.heads.get(stmt.head)
        if handler is None:
            # e.g. loopinfo
            return NO_EFFECT_FLAGS
        return handler(self, stmt, rt)

    @defaultdispatch
    def visitLiteral(self, stmt, rt):
        return (True, True, True)

    def static_parameter(self, stmt, rt):
        sptypes = self.src.sptypes if isinstance(self.src, IRCode) else []
        idx = stmt.args[0]
        nothrow = idx < len(sptypes) and not sptypes[idx].undef
        return (True, nothrow, nothrow)

    def call(self, stmt, rt):
        args = stmt.args
        f = singleton_type(argextype(args[0], self.src))
        if f is None:
            return NO_EFFECT_FLAGS
        if f is builtins.UnionAll:
            argtypes = [argextype(a, self.src) for a in args[1:]]
            nothrow = builtin_nothrow(f, argtypes, rt)
            return (True, nothrow, nothrow)
        if f is builtins.cglobal:
            return NO_EFFECT_FLAGS
        if not isinstance(f, (Builtin, IntrinsicFunction)):
            return NO_EFFECT_FLAGS
        # The callee effects are only known after inlining.
        if f is builtins.apply_iterate:
            return NO_EFFECT_FLAGS
        argtypes = [argextype(a, self.src) for a in args[1:]]
        return _removable(builtin_effects(f, argtypes, rt))

    def new(self, stmt, rt):
        return new_expr_effect_flags(stmt.args, self.src)

    def foreigncall(self, stmt, rt):
        return _removable(foreigncall_effects(stmt))

    def new_opaque_closure(self, stmt, rt):
        args = stmt.args
        if len(args) < 4:
            return NO_EFFECT_FLAGS
        typ, isexact = instanceof_tfunc(argextype(args[0], self.src))
        if not isexact or not isinstance(typ, TupleType):
            return NO_EFFECT_FLAGS
        rt_lb = argextype(args[1], self.src)
        rt_ub = argextype(args[2], self.src)
        if not (isinstance(widenconst(rt_lb), TypeType) and isinstance(widenconst(rt_ub), TypeType)):
            return NO_EFFECT_FLAGS
        if not isinstance(singleton_type(argextype(args[3], self.src)), Method):
            return NO_EFFECT_FLAGS
        return (False, True, True)

    def inbounds(self, stmt, rt):
        return (True, True, True)

    def inspection(self, stmt, rt):
        return (False, True, True)

    heads = {
        "static_parameter": static_parameter,
        "call": call,
        "new": new,
        "foreigncall": foreigncall,
        "new_opaque_closure": new_opaque_closure,
        "inbounds": inbounds,
        "boundscheck": inspection,
        "isdefined": inspection,
        "the_exception": inspection,
        "copyast": inspection,
    }


def stmt_effect_flags(stmt, rt, src):
    """Return ``(consistent, effect_free_and_nothrow, nothrow)`` for ``stmt``.

    Args:
        stmt: The statement.
        rt: Its inferred result type.
        src: The ``IRCode`` (or ``CodeInfo``) it belongs to.
    """
    return StmtEffectFlags(src)(stmt, rt)
