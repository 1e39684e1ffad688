"""
Scalar replacement of aggregates.

Forwards ``getfield`` of an immutable aggregate built in the same body
(``new`` of an immutable type or a ``tuple`` call) with a constant field to
the value stored in that field. The ``getfield`` becomes a copy of that
value, which the next compaction forwards to every use; the aggregate
itself is left to dead code elimination.
"""

import logging

from ssaflow.analysis.tools import argextype, is_known_call
from ssaflow.ir import builtins
from ssaflow.ir.flags import IR_FLAGS_EFFECTS
from ssaflow.ir.nodes import UNDEF, QuoteNode, SSAValue, isexpr
from ssaflow.ir.types import ismutabletype, instanceof_tfunc, singleton_type

LOG = logging.getLogger(__name__)


def aggregate_fields(ir, val):
    """Field values of the immutable aggregate ``val``, with its type's field names."""
    if not isinstance(val, SSAValue):
        return None, ()
    def_ = ir.stmts.stmt[val.id]
    if is_known_call(def_, builtins.tuple_, ir):
        return list(def_.args[1:]), ()
    if isexpr(def_, "new") and def_.args:
        typ, isexact = instanceof_tfunc(argextype(def_.args[0], ir))
        if not isexact or ismutabletype(typ):
            return None, ()
        fields = list(def_.args[1:])
        names = getattr(typ, "fieldnames", ())
        if len(fields) != len(getattr(typ, "fieldtypes", ())):
            # Partially initialized; the missing fields are undefined.
            return None, ()
        return fields, names
    return None, ()


def field_index(ir, field, names):
    f = singleton_type(argextype(field, ir))
    if isinstance(f, bool):
        return None
    if isinstance(f, int):
        return f
    if isinstance(f, str) and f in names:
        return names.index(f)
    return None


def sroa_pass(ir, state=None):
    """Forward constant-index ``getfield`` of local immutable aggregates.

    Returns:
        ``ir``, modified in place.
    """
    stmts = ir.stmts
    forwarded = 0
    for idx in range(len(stmts)):
        stmt = stmts.stmt[idx]
        if not is_known_call(stmt, builtins.getfield, ir) or len(stmt.args) < 3:
            continue
        fields, names = aggregate_fields(ir, stmt.args[1])
        if fields is None:
            continue
        i = field_index(ir, stmt.args[2], names)
        if i is None or not 0 <= i < len(fields):
            continue
        value = fields[i]
        if value is UNDEF:
            continue
        if value is None:
            # A bare None in the stream is a no-op.
            value = QuoteNode(None)
        stmts.stmt[idx] = value
        stmts.flag[idx] |= IR_FLAGS_EFFECTS
        forwarded += 1

    if forwarded:
        LOG.debug("sroa: forwarded %d field loads", forwarded)
    return ir
