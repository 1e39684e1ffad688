"""Slot to SSA conversion.

Converts a slot-based body (mutable locals read and written by
``SlotNumber``) into SSA form with explicit phi nodes.

The conversion runs in four steps:

1. Branch labels are translated from statement indices to block indices.
2. For every slot with uses, the blocks where it is live on entry are
   computed and phis are placed at the liveness-pruned iterated dominance
   frontier of its definition blocks.
3. Blocks are renamed in dominator tree pre-order. A per-slot environment
   maps each slot to its reaching value; reads are replaced by that value,
   assignments by their right-hand side. Phi operands are filled in from
   the environment at the end of each predecessor.
4. The new nodes (phis and undefined-read traps) are spliced into the
   stream through the renumbering utility.

A read with no reaching definition is preceded by a ``throw_undef_if_not``
trap that always raises. Phi inputs from paths where the slot is undefined
are ``UNDEF``.
"""

import logging

from ssaflow.analysis.tools import argextype
from ssaflow.application.errors import InternalError
from ssaflow.ir.cfg import block_for_inst
from ssaflow.ir.flags import IR_FLAG_NULL, IR_FLAGS_EFFECTS, SlotFlag, StmtFlag
from ssaflow.ir.ircode import InstructionStream, map_operands, operands
from ssaflow.ir.nodes import (
    UNDEF,
    Argument,
    Expr,
    GotoIfNot,
    GotoNode,
    NewSSAValue,
    PhiNode,
    QuoteNode,
    SlotNumber,
    SSAValue,
    isexpr,
)
from ssaflow.ir.types import Bottom, tmerge
from ssaflow.util.typedispatch import TypeDispatcher, defaultdispatch, dispatch

from . import dom
from .renumber import renumber_cfg_stmts, renumber_ir_elements

LOG = logging.getLogger(__name__)


class NewNode(object):
    """A statement created during conversion, placed before old index ``pos``."""
    __slots__ = "pos", "stmt", "type", "flag", "slot"

    def __init__(self, pos, stmt, type, flag, slot=None):
        self.pos = pos
        self.stmt = stmt
        self.type = type
        self.flag = flag
        self.slot = slot


class BlockLabels(TypeDispatcher):
    """Rewrites statement-index labels into block-index labels."""

    def __init__(self, cfg):
        self.cfg = cfg

    def block(self, label):
        return block_for_inst(self.cfg, label)

    @dispatch(GotoNode)
    def visitGotoNode(self, node, idx):
        return GotoNode(self.block(node.label))

    @dispatch(GotoIfNot)
    def visitGotoIfNot(self, node, idx):
        dest = self.block(node.dest)
        if dest == self.block(idx) + 1:
            # Branch to the fallthrough block: no edge was created for it.
            return None
        return GotoIfNot(node.cond, dest)

    @dispatch(Expr)
    def visitExpr(self, node, idx):
        if node.head == "enter":
            return Expr("enter", [self.block(node.args[0])] + node.args[1:])
        return node

    @defaultdispatch
    def visitOther(self, node, idx):
        return node


def compute_live_ins(cfg, info):
    """Blocks where the slot described by ``info`` is live on entry."""
    first_def = {}
    for d in info.defs:
        b = 0 if d < 0 else block_for_inst(cfg, d)
        if b not in first_def:
            first_def[b] = d

    worklist = []
    for use in info.uses:
        b = block_for_inst(cfg, use)
        d = first_def.get(b)
        # Upward exposed unless a def in the same block precedes the use.
        if d is None or d >= use:
            worklist.append(b)

    live_in = set()
    while worklist:
        b = worklist.pop()
        if b in live_in:
            continue
        live_in.add(b)
        for p in cfg.blocks[b].preds:
            if p not in first_def and p not in live_in:
                worklist.append(p)
    return live_in


class SSARename(object):
    """Renames slot reads and writes to SSA values.

    Attributes:
        ci: The slot-based source (slot names and flags).
        ir: The body being converted; labels are already block indices.
        nargs: Number of leading slots that are arguments.
        phis: Maps a block to ``(slot, new node id)`` for its phis.
        new_nodes: Statements created so far; ``NewSSAValue(k)`` names
            ``new_nodes[k]``.
        reads: ``(stmt index, slot, value)`` for each renamed read.
    """

    def __init__(self, ci, ir, nargs, phis, new_nodes):
        self.ci = ci
        self.ir = ir
        self.nargs = nargs
        self.phis = phis
        self.new_nodes = new_nodes
        self.reads = []

    def entry_env(self):
        env = [UNDEF] * len(self.ci.slotflags)
        for n in range(self.nargs):
            env[n] = Argument(n)
        return env

    def trap(self, idx, slot):
        name = self.ci.slotnames[slot] if slot < len(self.ci.slotnames) else "slot%d" % slot
        node = NewNode(
            idx, Expr("throw_undef_if_not", [QuoteNode(name), False]), Bottom, IR_FLAG_NULL
        )
        self.new_nodes.append(node)
        return NewSSAValue(len(self.new_nodes) - 1)

    def rename_stmt(self, idx, stmt, env):
        traps = {}

        def read(val):
            if not isinstance(val, SlotNumber):
                return val
            reaching = env[val.id]
            if reaching is UNDEF:
                if val.id not in traps:
                    traps[val.id] = self.trap(idx, val.id)
                return traps[val.id]
            self.reads.append((idx, val.id, reaching))
            return reaching

        if isexpr(stmt, "=") and isinstance(stmt.args[0], SlotNumber):
            slot = stmt.args[0].id
            rhs = stmt.args[1]
            rhs = map_operands(rhs, read) if isinstance(rhs, Expr) else read(rhs)
            env[slot] = SSAValue(idx)
            return rhs
        return map_operands(stmt, read)

    def rename_block(self, b, env):
        stmts = self.ir.stmts
        for slot, k in self.phis.get(b, ()):
            env[slot] = NewSSAValue(k)
        for idx in self.ir.cfg.blocks[b].stmts:
            stmts.stmt[idx] = self.rename_stmt(idx, stmts.stmt[idx], env)
        for succ in self.ir.cfg.blocks[b].succs:
            for slot, k in self.phis.get(succ, ()):
                phi = self.new_nodes[k].stmt
                phi.edges.append(b)
                phi.values.append(env[slot])

    def run(self, domtree):
        worklist = [(domtree.root, self.entry_env())]
        while worklist:
            b, env = worklist.pop()
            env = list(env)
            self.rename_block(b, env)
            for child in reversed(domtree.nodes[b].children):
                worklist.append((child, env))

        for b in range(len(self.ir.cfg.blocks)):
            if not domtree.nodes[b].reachable:
                self.rename_block(b, self.entry_env())


def place_phis(ci, ir, domtree, defuse, new_nodes):
    phis = {}
    for slot, info in enumerate(defuse):
        if not info.uses or not info.defs:
            continue
        live_in = compute_live_ins(ir.cfg, info)
        def_bbs = sorted(set(0 if d < 0 else block_for_inst(ir.cfg, d) for d in info.defs))
        liveness = dom.BlockLiveness(def_bbs, live_in)
        for block in dom.iterated_dominance_frontier(ir.cfg, liveness, domtree):
            new_nodes.append(
                NewNode(ir.cfg.blocks[block].stmts.first, PhiNode(), Bottom, IR_FLAGS_EFFECTS, slot)
            )
            phis.setdefault(block, []).append((slot, len(new_nodes) - 1))
    return phis


def sort_phi_edges(cfg, phis, new_nodes):
    for block, entries in phis.items():
        order = {p: i for i, p in enumerate(cfg.blocks[block].preds)}
        for _slot, k in entries:
            phi = new_nodes[k].stmt
            pairs = sorted(zip(phi.edges, phi.values), key=lambda e: order.get(e[0], len(order)))
            phi.edges = [e for e, _v in pairs]
            phi.values = [v for _e, v in pairs]


def value_type(ir, new_nodes, val):
    if isinstance(val, SSAValue):
        return ir.stmts.type[val.id]
    if isinstance(val, NewSSAValue):
        return new_nodes[val.id].type
    if isinstance(val, Argument):
        return ir.argtypes[val.n]
    return argextype(val, ir)


def infer_phi_types(ir, new_nodes):
    """Join incoming types into each phi until nothing changes."""
    phis = [node for node in new_nodes if isinstance(node.stmt, PhiNode)]
    changed = True
    while changed:
        changed = False
        for node in phis:
            typ = Bottom
            for val in node.stmt.values:
                if val is UNDEF:
                    continue
                typ = tmerge(typ, value_type(ir, new_nodes, val))
            if typ != node.type:
                node.type = typ
                changed = True


def maybe_undef_phis(new_nodes):
    """Ids of phis that may yield ``UNDEF``, directly or through another phi."""
    undef = set()
    changed = True
    while changed:
        changed = False
        for k, node in enumerate(new_nodes):
            if k in undef or not isinstance(node.stmt, PhiNode):
                continue
            for val in node.stmt.values:
                if val is UNDEF or (isinstance(val, NewSSAValue) and val.id in undef):
                    undef.add(k)
                    changed = True
                    break
    return undef


def splice_new_nodes(ir, new_nodes):
    """Insert ``new_nodes`` in front of their positions and resolve references."""
    old = ir.stmts
    n = len(old)
    cfg = ir.cfg

    ssachangemap = [0] * n
    blockchangemap = [0] * len(cfg.blocks)
    for node in new_nodes:
        ssachangemap[node.pos] += 1
        blockchangemap[block_for_inst(cfg, node.pos)] += 1

    # Phi operands still name old statements; renumber them with the body.
    body = old.stmt + [node.stmt for node in new_nodes]
    renumber_ir_elements(body, ssachangemap, [0] * len(cfg.blocks))
    old.stmt[:] = body[:n]
    for k, node in enumerate(new_nodes):
        node.stmt = body[n + k]

    at = {}
    for k, node in enumerate(new_nodes):
        at.setdefault(node.pos, []).append(k)

    stream = InstructionStream([], [], [], [], [])
    newpos = [None] * len(new_nodes)
    for idx in range(n):
        for k in at.get(idx, ()):
            node = new_nodes[k]
            newpos[k] = stream.append(node.stmt, node.type, line=old.line[idx], flag=node.flag)
        stream.append(old.stmt[idx], old.type[idx], old.info[idx], old.line[idx], old.flag[idx])

    renumber_cfg_stmts(cfg, blockchangemap)

    def resolve(val):
        if isinstance(val, NewSSAValue):
            return SSAValue(newpos[val.id])
        return val

    for idx, stmt in enumerate(stream.stmt):
        stream.stmt[idx] = map_operands(stmt, resolve)

    ir.stmts = stream
    return ir


def check_no_slots(ir):
    for idx, stmt in enumerate(ir.stmts.stmt):
        for val in operands(stmt):
            if isinstance(val, SlotNumber):
                raise InternalError("slot %r survived SSA conversion at %d" % (val, idx))
        if isexpr(stmt, "=") and isinstance(stmt.args[0], SlotNumber):
            raise InternalError("slot assignment survived SSA conversion at %d" % idx)


def construct_ssa(ci, ir, domtree, defuse, slottypes=None, nargs=0):
    """Convert the slot-based ``ir`` into SSA form, in place.

    Args:
        ci: The ``CodeInfo`` the body came from (slot names and flags).
        ir: ``IRCode`` whose labels are still statement indices.
        domtree: Dominator tree of ``ir.cfg``.
        defuse: ``SlotInfo`` per slot, from ``scan_slot_def_use``.
        slottypes: Types of the slots; defaults to ``ir.argtypes``.
        nargs: Number of leading slots that are arguments.

    Returns:
        The converted ``IRCode``.
    """
    if slottypes is not None:
        ir.argtypes = list(slottypes)

    labels = BlockLabels(ir.cfg)
    code = ir.stmts.stmt
    for idx, stmt in enumerate(code):
        code[idx] = labels(stmt, idx)

    new_nodes = []
    phis = place_phis(ci, ir, domtree, defuse, new_nodes)

    renamer = SSARename(ci, ir, nargs, phis, new_nodes)
    renamer.run(domtree)

    sort_phi_edges(ir.cfg, phis, new_nodes)
    infer_phi_types(ir, new_nodes)

    undef = maybe_undef_phis(new_nodes)
    if undef:
        for idx, slot, val in renamer.reads:
            if (
                isinstance(val, NewSSAValue)
                and val.id in undef
                and ci.slotflags[slot] & SlotFlag.USEDUNDEF
            ):
                ir.stmts.flag[idx] &= ~StmtFlag.NOTHROW

    LOG.debug(
        "construct_ssa: %d phis, %d undefined-read traps",
        sum(len(v) for v in phis.values()),
        sum(1 for node in new_nodes if not isinstance(node.stmt, PhiNode)),
    )

    splice_new_nodes(ir, new_nodes)
    check_no_slots(ir)
    return ir
