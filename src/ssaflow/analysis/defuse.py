"""
Def-use information.

``scan_slot_def_use`` records, for every slot of a slot-based body, the
statements that assign it and the statements that read it. ``DefUseMap``
maps each SSA statement to the statements that use its value.
"""

from ssaflow.ir.ircode import operands
from ssaflow.ir.nodes import SlotNumber, SSAValue, isexpr

# Definition index standing for "defined on entry" (function arguments).
ENTRY_DEF = -1


class SlotInfo(object):
    """Definition and use sites of one slot.

    Attributes:
        defs: Statement indices assigning the slot, in increasing order;
            ``ENTRY_DEF`` for arguments.
        uses: Statement indices reading the slot, in increasing order.
    """
    __slots__ = "defs", "uses"

    def __init__(self):
        self.defs = []
        self.uses = []

    def __repr__(self):
        return "SlotInfo(defs=%r, uses=%r)" % (self.defs, self.uses)


def scan_slot_def_use(nargs, ci, code):
    """Scan ``code`` once and return one ``SlotInfo`` per slot of ``ci``.

    The first ``nargs`` slots are the arguments and count as defined on
    entry.
    """
    result = [SlotInfo() for _ in ci.slotflags]
    for info in result[:nargs]:
        info.defs.append(ENTRY_DEF)

    for idx, stmt in enumerate(code):
        if isexpr(stmt, "="):
            lhs = stmt.args[0]
            if isinstance(lhs, SlotNumber):
                result[lhs.id].defs.append(idx)
        for val in operands(stmt):
            if isinstance(val, SlotNumber):
                uses = result[val.id].uses
                if not uses or uses[-1] != idx:
                    uses.append(idx)
    return result


class DefUseMap(object):
    """Maps a statement index to the statements reading its value.

    Filled in two phases: ``populate`` records def-use edges for the visited
    statements, after which ``complete`` freezes the map for queries.
    """
    __slots__ = "uses", "completed"

    def __init__(self, n):
        self.uses = [[] for _ in range(n)]
        self.completed = False

    def add(self, idx, stmt):
        for val in operands(stmt):
            if isinstance(val, SSAValue):
                uses = self.uses[val.id]
                if not uses or uses[-1] != idx:
                    uses.append(idx)

    def populate(self, ir, stmt_indices=None):
        if stmt_indices is None:
            stmt_indices = range(len(ir.stmts))
        stmts = ir.stmts.stmt
        for idx in stmt_indices:
            self.add(idx, stmts[idx])
        return self

    def complete(self):
        self.completed = True
        return self

    def __getitem__(self, idx):
        assert self.completed, "def-use map queried before completion"
        return self.uses[idx]
