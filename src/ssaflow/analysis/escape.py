"""
Escape information for SSA bodies.

The optimizer only consumes escape facts through a narrow query interface:
``EscapeState[value]`` returns an ``EscapeInfo`` and ``has_no_escape`` /
``ignore_argescape`` interpret it. ``analyze_escapes`` is the default
provider. It is flow insensitive and conservative:

- A value that is returned escapes through the return.
- An operand of a builtin call that may throw escapes through the exception.
- An operand of an unknown call, a global store or a foreign call escapes
  entirely.
- An operand of an ``invoke`` escapes as the callee's ``ArgEscapeCache``
  says; without a cached summary it escapes entirely.
- Values stored into an aggregate, merged by a phi or narrowed by a pi
  escape whenever the aggregate (or merged value) does.

Arguments are live in the caller and therefore start out escaping through
the argument list; ``ignore_argescape`` drops exactly that fact.
"""

import logging
from dataclasses import dataclass, replace

from ssaflow.analysis.tools import argextype
from ssaflow.ir import builtins
from ssaflow.ir.flags import StmtFlag, has_flag
from ssaflow.ir.method import CodeInstance, InferenceResult
from ssaflow.ir.nodes import (
    Argument,
    Expr,
    GlobalRef,
    PhiNode,
    PiNode,
    ReturnNode,
    SSAValue,
)
from ssaflow.ir.types import singleton_type

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class EscapeInfo:
    """Escape facts for one value.

    Attributes:
        return_escape: The value may be returned.
        thrown_escape: The value may be thrown.
        all_escape: The value may be captured anywhere.
        arg_escape: The value is an argument, live in the caller.
    """
    return_escape: bool = False
    thrown_escape: bool = False
    all_escape: bool = False
    arg_escape: bool = False

    def join(self, other):
        return EscapeInfo(
            self.return_escape or other.return_escape,
            self.thrown_escape or other.thrown_escape,
            self.all_escape or other.all_escape,
            self.arg_escape or other.arg_escape,
        )


NO_ESCAPE = EscapeInfo()
ARG_ESCAPE = EscapeInfo(arg_escape=True)
ALL_ESCAPE = EscapeInfo(all_escape=True)


def has_no_escape(info):
    return not (info.return_escape or info.thrown_escape or info.all_escape or info.arg_escape)


def has_all_escape(info):
    return info.all_escape


def ignore_argescape(info):
    return replace(info, arg_escape=False)


class EscapeState(object):
    """Escape facts of every argument and statement of one body."""

    def __init__(self, nargs, nstmts):
        self.nargs = nargs
        self.args = [ARG_ESCAPE] * nargs
        self.ssavalues = [NO_ESCAPE] * nstmts

    def __getitem__(self, x):
        if isinstance(x, Argument):
            return self.args[x.n]
        if isinstance(x, SSAValue):
            return self.ssavalues[x.id]
        raise TypeError("no escape information for %r" % (x,))

    def add(self, x, info):
        """Join ``info`` into the facts of ``x``; True if anything changed."""
        old = self[x]
        new = old.join(info)
        if new == old:
            return False
        if isinstance(x, Argument):
            self.args[x.n] = new
        else:
            self.ssavalues[x.id] = new
        return True


@dataclass(frozen=True)
class ArgEscapeInfo:
    all_escape: bool = False
    return_escape: bool = False
    thrown_escape: bool = False


class ArgEscapeCache(object):
    """Per-argument escape summary of a function, cached for its callers."""

    def __init__(self, estate):
        self.argescapes = [
            ArgEscapeInfo(info.all_escape, info.return_escape, info.thrown_escape)
            for info in estate.args
        ]

    def __len__(self):
        return len(self.argescapes)

    def __getitem__(self, i):
        return self.argescapes[i]

    def __repr__(self):
        return "ArgEscapeCache(%r)" % (self.argescapes,)


def _escape_cache_of(result):
    return result if isinstance(result, ArgEscapeCache) else None


class GetNativeEscapeCache(object):
    """Looks up the cached ``ArgEscapeCache`` of a callee.

    Returns None when the callee has no cached summary.
    """

    def __init__(self, code_cache):
        self.code_cache = code_cache

    def __call__(self, key):
        if isinstance(key, InferenceResult):
            return key.traverse_analysis_results(_escape_cache_of)
        codeinst = self.code_cache.get(key) if self.code_cache is not None else None
        if isinstance(codeinst, CodeInstance):
            return codeinst.traverse_analysis_results(_escape_cache_of)
        return None


# Builtins that neither store nor publish their arguments.
_noncapturing_builtins = frozenset(
    (
        builtins.getfield,
        builtins.egal,
        builtins.isa_,
        builtins.typeof_,
        builtins.typeassert,
        builtins.nfields,
        builtins.sizeof,
        builtins.isdefined,
        builtins.arraysize,
        builtins.arrayref,
        builtins.const_arrayref,
    )
)


def _is_tracked(x):
    return isinstance(x, (Argument, SSAValue))


class EscapeConstraints(object):
    """Direct escape facts and value-flow edges collected from a body."""

    def __init__(self, ir, nargs, get_escape_cache):
        self.ir = ir
        self.nargs = nargs
        self.get_escape_cache = get_escape_cache
        self.direct = []
        # (src, dst): src escapes whenever dst does.
        self.flows = []

    def escape(self, x, info):
        if _is_tracked(x):
            self.direct.append((x, info))

    def flow(self, src, dst):
        if _is_tracked(src):
            self.flows.append((src, dst))

    def collect(self):
        stmts = self.ir.stmts
        for idx in range(len(stmts)):
            stmt = stmts.stmt[idx]
            result = SSAValue(idx)
            if isinstance(stmt, ReturnNode):
                if stmt.has_val:
                    self.escape(stmt.val, EscapeInfo(return_escape=True))
                continue
            if isinstance(stmt, (PhiNode, PiNode)):
                values = stmt.values if isinstance(stmt, PhiNode) else [stmt.val]
                for v in values:
                    self.flow(v, result)
                continue
            if isinstance(stmt, Expr):
                self.expr(stmt, result, has_flag(stmts.flag[idx], StmtFlag.NOTHROW))
            elif _is_tracked(stmt):
                self.flow(stmt, result)

    def expr(self, stmt, result, nothrow):
        args = [a for a in stmt.args if _is_tracked(a)]
        head = stmt.head
        if head == "new":
            for a in stmt.args[1:]:
                self.flow(a, result)
        elif head == "call":
            if not nothrow:
                for a in args:
                    self.escape(a, EscapeInfo(thrown_escape=True))
            self.call(stmt, result)
        elif head == "invoke":
            self.invoke(stmt, result)
        elif head == "=":
            rhs = stmt.args[1]
            if isinstance(stmt.args[0], GlobalRef):
                self.escape(rhs, ALL_ESCAPE)
            elif isinstance(rhs, Expr):
                self.expr(rhs, result, nothrow)
        elif head in ("throw_undef_if_not", "boundscheck", "inbounds", "meta", "loopinfo"):
            pass
        else:
            for a in args:
                self.escape(a, ALL_ESCAPE)

    def call(self, stmt, result):
        f = singleton_type(argextype(stmt.args[0], self.ir))
        args = stmt.args[1:]
        if f is builtins.setfield_ and len(args) >= 3:
            self.flow(args[2], args[0])
        elif f is builtins.tuple_:
            for a in args:
                self.flow(a, result)
        elif f is builtins.throw:
            for a in args:
                self.escape(a, EscapeInfo(thrown_escape=True))
        elif f in _noncapturing_builtins:
            pass
        else:
            for a in args:
                self.escape(a, ALL_ESCAPE)

    def invoke(self, stmt, result):
        mi = stmt.args[0]
        # The callee sees the function itself as its first argument.
        args = stmt.args[1:]
        cache = self.get_escape_cache(mi) if self.get_escape_cache is not None else None
        if cache is None or len(cache) != len(args):
            for a in args:
                self.escape(a, ALL_ESCAPE)
            return
        for a, info in zip(args, cache.argescapes):
            if info.all_escape:
                self.escape(a, ALL_ESCAPE)
            else:
                if info.thrown_escape:
                    self.escape(a, EscapeInfo(thrown_escape=True))
                if info.return_escape:
                    self.flow(a, result)


def analyze_escapes(ir, nargs, get_escape_cache):
    """Compute an ``EscapeState`` for ``ir``.

    Args:
        ir: The SSA body.
        nargs: Number of arguments.
        get_escape_cache: Callable returning the ``ArgEscapeCache`` of an
            ``invoke`` target, or None when it is unknown.
    """
    constraints = EscapeConstraints(ir, nargs, get_escape_cache)
    constraints.collect()

    estate = EscapeState(nargs, len(ir.stmts))
    for x, info in constraints.direct:
        estate.add(x, info)

    # Escapes flow backwards along value-flow edges until nothing changes.
    changed = True
    while changed:
        changed = False
        for src, dst in constraints.flows:
            info = estate[dst]
            if has_no_escape(ignore_argescape(info)):
                continue
            if estate.add(src, ignore_argescape(info)):
                changed = True

    LOG.debug("escape analysis: %d arguments, %d statements", nargs, len(ir.stmts))
    return estate
