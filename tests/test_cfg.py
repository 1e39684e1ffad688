import unittest

from ssaflow.ir import builtins
from ssaflow.ir.cfg import (
    StmtRange,
    block_for_inst,
    cfg_delete_edge,
    cfg_insert_edge,
    compute_basic_blocks,
)
from ssaflow.ir.nodes import Argument, Expr, GotoIfNot, GotoNode, ReturnNode, SSAValue


def diamond():
    return [
        GotoIfNot(Argument(1), 3),
        Expr("call", [builtins.add_int, Argument(1), 1]),
        GotoNode(4),
        Expr("call", [builtins.add_int, Argument(1), 2]),
        ReturnNode(SSAValue(1)),
    ]


class TestStmtRange(unittest.TestCase):
    def testIteration(self):
        r = StmtRange(2, 4)
        self.assertEqual(list(r), [2, 3, 4])
        self.assertEqual(list(reversed(r)), [4, 3, 2])
        self.assertEqual(len(r), 3)
        self.assertIn(3, r)
        self.assertNotIn(5, r)

    def testEmpty(self):
        r = StmtRange(3, 2)
        self.assertEqual(len(r), 0)
        self.assertEqual(list(r), [])


class TestComputeBasicBlocks(unittest.TestCase):
    def testDiamond(self):
        cfg = compute_basic_blocks(diamond())

        self.assertEqual(cfg.index, [1, 3, 4])
        self.assertEqual([b.stmts for b in cfg.blocks],
                         [StmtRange(0, 0), StmtRange(1, 2), StmtRange(3, 3), StmtRange(4, 4)])

        self.assertEqual(cfg.blocks[0].succs, [2, 1])
        self.assertEqual(cfg.blocks[1].succs, [3])
        self.assertEqual(cfg.blocks[2].succs, [3])
        self.assertEqual(cfg.blocks[3].succs, [])
        self.assertEqual(cfg.blocks[3].preds, [1, 2])

    def testBlockForInst(self):
        cfg = compute_basic_blocks(diamond())
        self.assertEqual([block_for_inst(cfg, i) for i in range(5)], [0, 1, 1, 2, 3])

    def testBranchToFallthrough(self):
        code = [
            GotoIfNot(Argument(1), 1),
            ReturnNode(Argument(1)),
        ]
        cfg = compute_basic_blocks(code)
        self.assertEqual(len(cfg.blocks), 2)
        self.assertEqual(cfg.blocks[0].succs, [1])
        self.assertEqual(cfg.blocks[1].preds, [0])

    def testStraightLine(self):
        code = [Expr("call", [builtins.add_int, 1, 2]), ReturnNode(SSAValue(0))]
        cfg = compute_basic_blocks(code)
        self.assertEqual(len(cfg.blocks), 1)
        self.assertEqual(cfg.index, [])
        self.assertEqual(cfg.blocks[0].stmts, StmtRange(0, 1))


class TestEdgeEdits(unittest.TestCase):
    def testInsertDelete(self):
        cfg = compute_basic_blocks(diamond())
        cfg_delete_edge(cfg, 0, 2)
        self.assertEqual(cfg.blocks[0].succs, [1])
        self.assertEqual(cfg.blocks[2].preds, [])

        cfg_insert_edge(cfg, 0, 2)
        self.assertEqual(cfg.blocks[0].succs, [1, 2])
        self.assertEqual(cfg.blocks[2].preds, [0])

    def testCopyIsDeep(self):
        cfg = compute_basic_blocks(diamond())
        other = cfg.copy()
        cfg_delete_edge(other, 1, 3)
        self.assertEqual(cfg.blocks[1].succs, [3])
        self.assertEqual(cfg.blocks[3].preds, [1, 2])
