"""
Inlining decisions.

``ssa_inlining_pass`` walks the ``invoke`` statements of an SSA body, looks
up the optimized source of each callee, asks ``inlining_policy`` whether it
may be inlined and hands every accepted site to the ``splice`` collaborator
of the ``InliningState``. The splice mechanics (argument substitution,
return rewiring, renumbering) belong to that collaborator; without one the
pass only records its decisions.
"""

import logging

from ssaflow.analysis.tools import argextype
from ssaflow.ir.flags import StmtFlag, has_flag, is_stmt_inline, is_stmt_noinline
from ssaflow.ir.ircode import CodeInfo, IRCode
from ssaflow.ir.method import CodeInstance, MethodInstance
from ssaflow.ir.nodes import isexpr

from .cost import is_inlineable

LOG = logging.getLogger(__name__)


class InliningState(object):
    """Inputs of the inlining pass shared across call sites.

    Attributes:
        edges: Method instances inlined so far; the caller depends on them.
        world: World age the lookups are made in.
        code_cache: ``CodeCache`` of optimized callees, or None.
        inference_cache: ``InferenceResult`` objects of the current
            inference run, searched for forced inlines.
        splice: Callable ``(ir, idx, src, propagate_inbounds)`` returning
            the new ``IRCode``, or None to decline the site.
    """

    def __init__(self, edges=None, world=0, code_cache=None, inference_cache=None, splice=None):
        self.edges = edges if edges is not None else []
        self.world = world
        self.code_cache = code_cache
        self.inference_cache = inference_cache if inference_cache is not None else []
        self.splice = splice


class InliningTodo(object):
    __slots__ = "idx", "mi", "src"

    def __init__(self, idx, mi, src):
        self.idx = idx
        self.mi = mi
        self.src = src

    def __repr__(self):
        return "InliningTodo(%d, %r)" % (self.idx, self.mi)


def is_source_inferred(src):
    return src.inferred


def cache_lookup(mi, argtypes, cache):
    """Find the ``InferenceResult`` of ``mi`` inferred for ``argtypes``."""
    for result in cache:
        if result.linfo is not mi:
            continue
        if len(result.argtypes) != len(argtypes):
            continue
        if all(a == b for a, b in zip(result.argtypes, argtypes)):
            return result
    return None


def inlining_policy(state, src, stmt_flag, mi, argtypes):
    """Decide whether ``src`` may be inlined at a call site.

    Args:
        state: The ``InliningState``.
        src: The callee's optimized source: a ``CodeInfo``, an ``IRCode`` or
            None when nothing is cached.
        stmt_flag: Flags of the call statement.
        mi: The callee ``MethodInstance``.
        argtypes: Argument types at the call site.

    Returns:
        The source to inline, or None.
    """
    if isinstance(src, CodeInfo):
        if not is_source_inferred(src):
            return None
        src_inlineable = is_stmt_inline(stmt_flag) or is_inlineable(src)
        return src if src_inlineable else None
    elif src is None and is_stmt_inline(stmt_flag):
        # A forced inline looks for the source in the local inference cache;
        # recursive calls still find nothing.
        inf_result = cache_lookup(mi, argtypes, state.inference_cache)
        if inf_result is None:
            return None
        src = inf_result.src
        if isinstance(src, CodeInfo) and is_source_inferred(src):
            return src
        return None
    elif isinstance(src, IRCode):
        return src
    return None


def retrieve_cached_source(state, mi):
    if state.code_cache is None:
        return None
    codeinst = state.code_cache.get(mi)
    if isinstance(codeinst, CodeInstance):
        return codeinst.inferred
    return None


def collect_inlining_todos(ir, state):
    todo = []
    stmts = ir.stmts
    for idx in range(len(stmts)):
        stmt = stmts.stmt[idx]
        if not isexpr(stmt, "invoke") or not stmt.args:
            continue
        flag = stmts.flag[idx]
        if is_stmt_noinline(flag):
            continue
        mi = stmt.args[0]
        if not isinstance(mi, MethodInstance):
            continue
        argtypes = [argextype(a, ir) for a in stmt.args[1:]]
        src = inlining_policy(state, retrieve_cached_source(state, mi), flag, mi, argtypes)
        if src is None:
            LOG.debug("not inlining %r at %d", mi, idx)
            continue
        todo.append(InliningTodo(idx, mi, src))
    return todo


def ssa_inlining_pass(ir, state, propagate_inbounds=False):
    """Inline every accepted ``invoke`` site of ``ir``.

    Sites are spliced from the last to the first, so the indices of the
    sites still to come are unaffected by each splice.

    Returns:
        The resulting ``IRCode``.
    """
    todo = collect_inlining_todos(ir, state)
    if not todo:
        return ir
    if state.splice is None:
        LOG.debug("%d inlining candidates, no splice available", len(todo))
        return ir

    inlined = 0
    for item in reversed(todo):
        inbounds = propagate_inbounds or has_flag(ir.stmts.flag[item.idx], StmtFlag.INBOUNDS)
        new_ir = state.splice(ir, item.idx, item.src, inbounds)
        if new_ir is None:
            continue
        ir = new_ir
        state.edges.append(item.mi)
        inlined += 1

    LOG.debug("inlined %d of %d candidate sites", inlined, len(todo))
    return ir
