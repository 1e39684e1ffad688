"""Compaction of SSA bodies.

This pass removes everything a structural edit can leave behind:

1. Blocks unreachable from the entry, and their edges
2. Phi edges whose source is no longer a predecessor
3. Copy statements (a bare value) and trivial phis, by forwarding their
   value to every use
4. No-op statements (``None``); a block keeps at least one statement
5. With ``allow_cfg_transforms``, straight-line block pairs are merged

All renumbering goes through ``renumber_ir_elements`` in one sweep. Running
the pass on its own output changes nothing.
"""

import logging

from ssaflow.ir.cfg import StmtRange
from ssaflow.ir.flags import IR_FLAGS_EFFECTS
from ssaflow.ir.ircode import InstructionStream, map_operands
from ssaflow.ir.nodes import (
    UNDEF,
    Argument,
    GotoNode,
    PhiNode,
    QuoteNode,
    SSAValue,
    is_literal,
    isterminator,
)
from ssaflow.ir.types import Nothing

from .renumber import DELETED, renumber_cfg_blocks, renumber_ir_elements

LOG = logging.getLogger(__name__)


def is_copy(stmt):
    return isinstance(stmt, (SSAValue, Argument, QuoteNode)) or is_literal(stmt)


def reachable_blocks(cfg):
    seen = set((0,))
    stack = [0]
    while stack:
        b = stack.pop()
        for succ in cfg.blocks[b].succs:
            if succ not in seen:
                seen.add(succ)
                stack.append(succ)
    return seen


class Forwarding(object):
    """Maps forwarded statements to their replacement value."""

    def __init__(self):
        self.forward = {}

    def __contains__(self, idx):
        return idx in self.forward

    def __setitem__(self, idx, value):
        self.forward[idx] = value

    def __call__(self, val):
        seen = set()
        while isinstance(val, SSAValue) and val.id in self.forward and val.id not in seen:
            seen.add(val.id)
            val = self.forward[val.id]
        return val

    def __len__(self):
        return len(self.forward)


def trivial_phi_value(idx, phi, resolve):
    """The single value a phi merges, ignoring itself, or None."""
    value = None
    for v in phi.values:
        if v is UNDEF:
            return None
        v = resolve(v)
        if v == SSAValue(idx):
            continue
        if value is None:
            value = v
        elif v != value:
            return None
    return value


def drop_unreachable_edges(cfg, live):
    for b, block in enumerate(cfg.blocks):
        if b in live:
            block.preds = [p for p in block.preds if p in live]
        else:
            block.preds = []
            block.succs = []


def prune_phi_edges(ir, live):
    stmts = ir.stmts.stmt
    for b in sorted(live):
        block = ir.cfg.blocks[b]
        preds = set(block.preds)
        for idx in block.stmts:
            phi = stmts[idx]
            if not isinstance(phi, PhiNode):
                continue
            keep = [i for i, e in enumerate(phi.edges) if e in preds]
            if len(keep) != len(phi.edges):
                phi.edges = [phi.edges[i] for i in keep]
                phi.values = [phi.values[i] for i in keep]


def find_forwarding(ir, live):
    stmts = ir.stmts.stmt
    forward = Forwarding()
    changed = True
    while changed:
        changed = False
        for b in sorted(live):
            for idx in ir.cfg.blocks[b].stmts:
                if idx in forward:
                    continue
                stmt = stmts[idx]
                if is_copy(stmt):
                    forward[idx] = stmt
                    changed = True
                elif isinstance(stmt, PhiNode) and stmt.edges:
                    value = trivial_phi_value(idx, stmt, forward)
                    if value is not None:
                        forward[idx] = value
                        changed = True
    return forward


def has_phis(ir, b, forward):
    for idx in ir.cfg.blocks[b].stmts:
        if isinstance(ir.stmts.stmt[idx], PhiNode) and idx not in forward:
            return True
    return False


def merge_blocks(ir, live, forward, deleted):
    """Fold each block into its only predecessor when that is the previous live block."""
    cfg = ir.cfg
    stmts = ir.stmts.stmt
    owner_of = {}
    order = sorted(live)
    for a, b in zip(order, order[1:]):
        owner = owner_of.get(a, a)
        A = cfg.blocks[owner]
        B = cfg.blocks[b]
        if A.succs != [b] or B.preds != [owner] or has_phis(ir, b, forward):
            continue
        last = cfg.blocks[a].stmts.last
        term = stmts[last]
        if isinstance(term, GotoNode):
            deleted.add(last)
        elif isterminator(term):
            continue

        owner_of[b] = owner
        A.succs = B.succs
        for s in B.succs:
            succ = cfg.blocks[s]
            succ.preds = [owner if p == b else p for p in succ.preds]
            for idx in succ.stmts:
                phi = stmts[idx]
                if isinstance(phi, PhiNode):
                    phi.edges = [owner if e == b else e for e in phi.edges]
        B.preds = []
        B.succs = []
    return owner_of


def compact(ir, allow_cfg_transforms=False):
    """Compact ``ir`` in place and return it."""
    cfg = ir.cfg
    live = reachable_blocks(cfg)

    drop_unreachable_edges(cfg, live)
    prune_phi_edges(ir, live)

    forward = find_forwarding(ir, live)
    stmts = ir.stmts
    for b in live:
        for idx in cfg.blocks[b].stmts:
            stmts.stmt[idx] = map_operands(stmts.stmt[idx], forward)

    deleted = set()
    owner_of = {}
    if allow_cfg_transforms:
        owner_of = merge_blocks(ir, live, forward, deleted)

    for b, block in enumerate(cfg.blocks):
        if b not in live:
            deleted.update(block.stmts)
            continue
        for idx in block.stmts:
            if idx in forward or stmts.stmt[idx] is None:
                deleted.add(idx)

    # Every surviving block keeps at least one statement.
    spans = {}
    for b, block in enumerate(cfg.blocks):
        if b in live:
            owner = owner_of.get(b, b)
            first, last = spans.get(owner, (block.stmts.first, block.stmts.last))
            spans[owner] = (min(first, block.stmts.first), max(last, block.stmts.last))
    for owner, (first, last) in spans.items():
        if all(idx in deleted for idx in range(first, last + 1)):
            deleted.discard(last)
            stmts.stmt[last] = None
            stmts.type[last] = Nothing
            stmts.flag[last] = IR_FLAGS_EFFECTS

    if not deleted and not owner_of:
        return ir

    for idx in deleted:
        stmts.stmt[idx] = None

    ssachangemap = [-1 if idx in deleted else 0 for idx in range(len(stmts))]
    blockdeltas = [
        0 if b in live and b not in owner_of else -1 for b in range(len(cfg.blocks))
    ]
    renumber_ir_elements(stmts.stmt, ssachangemap, blockdeltas)

    survivors = [idx for idx in range(len(stmts)) if idx not in deleted]
    ir.stmts = InstructionStream(
        [stmts.stmt[i] for i in survivors],
        [stmts.type[i] for i in survivors],
        [stmts.info[i] for i in survivors],
        [stmts.line[i] for i in survivors],
        [stmts.flag[i] for i in survivors],
    )

    blockmap = []
    newidx = 0
    pos = 0
    kept = {}
    for b, block in enumerate(cfg.blocks):
        if b not in live or b in owner_of:
            blockmap.append(DELETED)
            continue
        blockmap.append(newidx)
        newidx += 1
        kept[b] = block

    for owner, (first, last) in sorted(spans.items()):
        n = sum(1 for idx in range(first, last + 1) if idx not in deleted)
        kept[owner].stmts = StmtRange(pos, pos + n - 1)
        pos += n

    renumber_cfg_blocks(cfg, blockmap)

    LOG.debug(
        "compact: %d statements removed, %d blocks removed",
        len(deleted),
        blockmap.count(DELETED),
    )
    return ir
