"""
Aggressive dead code elimination.

A statement is live when it is a terminator, when it may have an effect or
throw, or when a live statement reads its value. Everything else in a
reachable block is replaced by a no-op, which the next compaction removes.
Dead phi cycles are removed as well since liveness only flows from roots.
"""

import logging

from ssaflow.analysis.cfg.compact import reachable_blocks
from ssaflow.ir.flags import IR_FLAGS_EFFECTS, StmtFlag, has_flag
from ssaflow.ir.ircode import operands
from ssaflow.ir.nodes import SSAValue, isterminator
from ssaflow.ir.types import Nothing

from .stmteffects import stmt_effect_flags

LOG = logging.getLogger(__name__)

_REMOVABLE = StmtFlag.EFFECT_FREE | StmtFlag.NOTHROW


def is_removable_if_unused(ir, idx):
    stmt = ir.stmts.stmt[idx]
    if isterminator(stmt) or stmt is None:
        return False
    if has_flag(ir.stmts.flag[idx], _REMOVABLE):
        return True
    _, removable, _ = stmt_effect_flags(stmt, ir.stmts.type[idx], ir)
    return removable


def adce_pass(ir, state=None):
    """Remove statements whose values are never used and that have no effect.

    Returns:
        ``ir``, modified in place.
    """
    stmts = ir.stmts
    live_blocks = reachable_blocks(ir.cfg)
    candidates = [
        idx for b in sorted(live_blocks) for idx in ir.cfg.blocks[b].stmts
        if stmts.stmt[idx] is not None
    ]

    live = set()
    worklist = []
    for idx in candidates:
        if not is_removable_if_unused(ir, idx):
            live.add(idx)
            worklist.append(idx)

    while worklist:
        idx = worklist.pop()
        for val in operands(stmts.stmt[idx]):
            if isinstance(val, SSAValue) and val.id not in live:
                live.add(val.id)
                worklist.append(val.id)

    removed = 0
    for idx in candidates:
        if idx in live:
            continue
        stmts.stmt[idx] = None
        stmts.type[idx] = Nothing
        stmts.flag[idx] = IR_FLAGS_EFFECTS
        removed += 1

    if removed:
        LOG.debug("adce: removed %d statements", removed)
    return ir
