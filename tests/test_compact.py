import unittest

from ssaflow.analysis.cfg.compact import compact, is_copy, reachable_blocks
from ssaflow.ir import builtins
from ssaflow.ir.flags import IR_FLAGS_EFFECTS
from ssaflow.ir.nodes import (
    Argument,
    Expr,
    GotoIfNot,
    GotoNode,
    PhiNode,
    QuoteNode,
    ReturnNode,
    SSAValue,
)
from ssaflow.ir.types import Nothing

from .base import TestIRBase, make_ir


def add(a, b):
    return Expr("call", [builtins.add_int, a, b])


class TestCompact(TestIRBase):
    def testNothingToDo(self):
        ir = make_ir([
            GotoIfNot(Argument(1), 3),
            add(Argument(1), 1),
            GotoNode(4),
            add(Argument(1), 2),
            PhiNode([1, 2], [SSAValue(1), SSAValue(3)]),
            ReturnNode(SSAValue(4)),
        ])
        self.assertIs(compact(ir), ir)
        self.assertEqual(len(ir.stmts), 6)
        self.assertEqual(len(ir.cfg.blocks), 4)

    def testForwardCopy(self):
        ir = make_ir([add(Argument(1), 1), SSAValue(0), ReturnNode(SSAValue(1))])
        ir = compact(ir)

        self.assertStmts(ir, [add(Argument(1), 1), ReturnNode(SSAValue(0))])
        self.assertBlocks(ir, [(0, 1, [], [])])

    def testUnreachableBlock(self):
        ir = make_ir([GotoNode(2), add(Argument(1), 1), ReturnNode(Argument(1))])
        ir = compact(ir)

        self.assertStmts(ir, [GotoNode(1), ReturnNode(Argument(1))])
        self.assertBlocks(ir, [(0, 0, [], [1]), (1, 1, [0], [])])
        self.assertEqual(ir.cfg.index, [1])

    def testTrivialPhi(self):
        ir = make_ir([
            GotoIfNot(Argument(1), 2),
            GotoNode(2),
            PhiNode([0, 1], [Argument(1), Argument(1)]),
            ReturnNode(SSAValue(2)),
        ])
        ir = compact(ir)

        self.assertStmts(ir, [
            GotoIfNot(Argument(1), 2),
            GotoNode(2),
            ReturnNode(Argument(1)),
        ])
        self.assertBlocks(ir, [
            (0, 0, [], [1, 2]),
            (1, 1, [0], [2]),
            (2, 2, [0, 1], []),
        ])

    def testEmptyBlockKeepsPlaceholder(self):
        ir = make_ir([GotoIfNot(Argument(1), 2), None, ReturnNode(Argument(1))])
        ir = compact(ir)

        self.assertEqual(len(ir.cfg.blocks), 3)
        self.assertIsNone(ir.stmts.stmt[1])
        self.assertIs(ir.stmts.type[1], Nothing)
        self.assertEqual(ir.stmts.flag[1], IR_FLAGS_EFFECTS)

    def testMergeBlocks(self):
        code = [add(Argument(1), 1), GotoNode(2), ReturnNode(SSAValue(0))]

        ir = compact(make_ir(code))
        self.assertEqual(len(ir.cfg.blocks), 2)

        ir = compact(make_ir(code), allow_cfg_transforms=True)
        self.assertStmts(ir, [add(Argument(1), 1), ReturnNode(SSAValue(0))])
        self.assertBlocks(ir, [(0, 1, [], [])])
        self.assertEqual(ir.cfg.index, [])

    def testIdempotent(self):
        ir = make_ir([
            GotoNode(2),
            add(Argument(1), 1),
            add(Argument(1), 2),
            SSAValue(2),
            ReturnNode(SSAValue(3)),
        ])
        ir = compact(ir, allow_cfg_transforms=True)
        self.assertStmts(ir, [add(Argument(1), 2), ReturnNode(SSAValue(0))])
        self.assertBlocks(ir, [(0, 1, [], [])])

        self.assertIs(compact(ir, allow_cfg_transforms=True), ir)
        self.assertStmts(ir, [add(Argument(1), 2), ReturnNode(SSAValue(0))])


class TestCompactHelpers(unittest.TestCase):
    def testIsCopy(self):
        self.assertTrue(is_copy(SSAValue(1)))
        self.assertTrue(is_copy(Argument(1)))
        self.assertTrue(is_copy(QuoteNode("x")))
        self.assertTrue(is_copy(3))
        self.assertFalse(is_copy(add(1, 2)))
        self.assertFalse(is_copy(None))

    def testReachableBlocks(self):
        ir = make_ir([GotoNode(2), add(Argument(1), 1), ReturnNode(Argument(1))])
        self.assertEqual(reachable_blocks(ir.cfg), {0, 2})
