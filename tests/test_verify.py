import unittest

from ssaflow.application.errors import IRVerificationError
from ssaflow.ir import builtins
from ssaflow.ir.cfg import StmtRange
from ssaflow.ir.dump import format_flags, format_ir, format_stmt
from ssaflow.ir.flags import IR_FLAG_NULL, IR_FLAGS_EFFECTS, StmtFlag
from ssaflow.ir.ircode import LineInfoNode
from ssaflow.ir.nodes import (
    Argument,
    Expr,
    GotoIfNot,
    GotoNode,
    PhiNode,
    ReturnNode,
    SlotNumber,
    SSAValue,
)
from ssaflow.ir.types import Int
from ssaflow.ir.verify import verify_ir, verify_linetable

from .base import make_ir


def add(a, b):
    return Expr("call", [builtins.add_int, a, b])


def diamond_ir(ret=SSAValue(4)):
    return make_ir([
        GotoIfNot(Argument(1), 3),
        add(Argument(1), 1),
        GotoNode(4),
        add(Argument(1), 2),
        PhiNode([1, 2], [SSAValue(1), SSAValue(3)]),
        ReturnNode(ret),
    ])


class TestVerify(unittest.TestCase):
    def assertInvalid(self, ir, message):
        with self.assertRaises(IRVerificationError) as cm:
            verify_ir(ir)
        self.assertIn(message, str(cm.exception))

    def testValid(self):
        verify_ir(diamond_ir())
        verify_ir(make_ir([ReturnNode(1)]))

    def testRanges(self):
        ir = diamond_ir()
        ir.cfg.blocks[1].stmts = StmtRange(2, 2)
        self.assertInvalid(ir, "block 1 starts at 2")

    def testEdges(self):
        ir = diamond_ir()
        ir.cfg.blocks[3].preds = [1]
        self.assertInvalid(ir, "edges recorded on only one end")

    def testTerminator(self):
        ir = diamond_ir()
        ir.stmts.stmt[2] = GotoNode(2)
        self.assertInvalid(ir, "block 1 ends in goto #2")

    def testPhiPredecessor(self):
        ir = diamond_ir()
        ir.stmts.stmt[4] = PhiNode([0, 2], [SSAValue(1), SSAValue(3)])
        self.assertInvalid(ir, "not a predecessor")

    def testPhiAtTop(self):
        ir = make_ir([add(Argument(1), 1), PhiNode([], []), ReturnNode(1)])
        self.assertInvalid(ir, "not at the top")

    def testUseBeforeDefinition(self):
        ir = make_ir([add(SSAValue(1), 1), add(Argument(1), 1), ReturnNode(SSAValue(0))])
        self.assertInvalid(ir, "before its definition")

    def testDominance(self):
        self.assertInvalid(diamond_ir(SSAValue(1)), "does not dominate")

    def testSlot(self):
        self.assertInvalid(make_ir([ReturnNode(SlotNumber(1))]), "slot")

    def testLineRange(self):
        ir = make_ir([ReturnNode(1)], lines=[2], linetable=[LineInfoNode("f.src", 1)])
        self.assertInvalid(ir, "refers to line 2 of 1")

    def testLinetable(self):
        verify_linetable([LineInfoNode("f.src", 1), LineInfoNode("g.src", 3, inlined_at=1)])
        self.assertRaises(
            IRVerificationError,
            verify_linetable, [LineInfoNode("f.src", 1, inlined_at=2)],
        )


class TestDump(unittest.TestCase):
    def testFlags(self):
        self.assertEqual(format_flags(IR_FLAG_NULL), "")
        self.assertEqual(format_flags(IR_FLAGS_EFFECTS), "[consistent, effect_free, nothrow, noub]")
        self.assertEqual(format_flags(StmtFlag.INBOUNDS | StmtFlag.NOTHROW), "[inbounds, nothrow]")

    def testStmt(self):
        ir = make_ir([ReturnNode(1)], types=[Int], flags=[IR_FLAG_NULL])
        self.assertEqual(format_stmt(ir, 0), "%0 = return 1::Int")

    def testIR(self):
        text = format_ir(diamond_ir())
        lines = text.splitlines()
        self.assertTrue(lines[0].startswith("0 ─ %0 = goto #2 if not _1"))
        self.assertIn("  │ → #2, #1", lines)
        self.assertTrue(any(line.startswith("3 ─ %4 = φ (#1 => %1, #2 => %3)") for line in lines))
