import unittest

from ssaflow.application.convert import (
    convert_to_ircode,
    process_meta,
    strip_trailing_junk,
)
from ssaflow.application.errors import InternalError
from ssaflow.ir import builtins
from ssaflow.ir.cfg import StmtRange, compute_basic_blocks
from ssaflow.ir.flags import IR_FLAG_NULL, IR_FLAGS_EFFECTS, StmtFlag
from ssaflow.ir.ircode import NO_CALL_INFO, LineInfoNode
from ssaflow.ir.nodes import (
    Argument,
    Expr,
    GotoIfNot,
    GotoNode,
    QuoteNode,
    ReturnNode,
    SSAValue,
)
from ssaflow.ir.types import ANY, Bool, Bottom, Function, Int, Nothing

from .base import TestIRBase, make_codeinfo, make_state

THROWS = IR_FLAGS_EFFECTS & ~StmtFlag.NOTHROW


def convert(ci, **kwargs):
    sv = make_state(ci, **kwargs)
    return convert_to_ircode(ci, sv), sv


class TestConvert(TestIRBase):
    def testSourceLeftIntact(self):
        code = [
            Expr("call", [builtins.add_int, Argument(1), 1]),
            ReturnNode(SSAValue(0)),
        ]
        ci = make_codeinfo(code, types=[Int, Int], slottypes=(Function, Int))
        ir, _ = convert(ci)

        ir.stmts.stmt[0].args[2] = 2
        self.assertEqual(ci.code[0].args[2], 1)
        self.assertEqual(ir.argtypes, [Function, Int])

    def testThrowEndsBlock(self):
        ci = make_codeinfo(
            [
                Expr("call", [builtins.throw, Argument(1)]),
                ReturnNode(Argument(1)),
            ],
            types=[Bottom, ANY],
            flags=[THROWS, IR_FLAGS_EFFECTS],
        )
        ir, _ = convert(ci)

        self.assertStmts(ir, [
            Expr("call", [builtins.throw, Argument(1)]),
            ReturnNode(),
        ])
        self.assertIs(ir.stmts.type[1], Bottom)
        self.assertEqual(ir.stmts.flag[1], StmtFlag.NOTHROW)

    def testThrowAtBlockEnd(self):
        ci = make_codeinfo(
            [
                GotoIfNot(Argument(1), 2),
                Expr("call", [builtins.throw, QuoteNode("err")]),
                ReturnNode(Argument(1)),
            ],
            types=[ANY, Bottom, ANY],
            flags=[IR_FLAGS_EFFECTS, THROWS, IR_FLAGS_EFFECTS],
        )
        ir, _ = convert(ci)

        self.assertStmts(ir, [
            GotoIfNot(Argument(1), 3),
            Expr("call", [builtins.throw, QuoteNode("err")]),
            ReturnNode(),
            ReturnNode(Argument(1)),
        ])
        self.assertBlocks(ir, [
            (0, 0, [], [1, 2]),
            (1, 2, [0], []),
            (3, 3, [0], []),
        ])
        self.assertEqual(ir.cfg.index, [1, 3])
        self.assertIs(ir.stmts.info[2], NO_CALL_INFO)

    def testMustThrowBranch(self):
        ci = make_codeinfo(
            [
                GotoIfNot(Argument(1), 2),
                ReturnNode(1),
                ReturnNode(2),
            ],
            types=[Bottom, Int, Int],
        )
        ir, _ = convert(ci)

        self.assertStmts(ir, [
            Expr("call", [builtins.typeassert, Argument(1), Bool]),
            ReturnNode(),
            ReturnNode(1),
            ReturnNode(2),
        ])
        self.assertBlocks(ir, [
            (0, 1, [], []),
            (2, 2, [], []),
            (3, 3, [], []),
        ])

    def testDeadFallthrough(self):
        ci = make_codeinfo(
            [
                GotoIfNot(Argument(1), 2),
                ReturnNode(1),
                ReturnNode(2),
            ],
            types=[ANY, Int, Int],
        )
        ir, _ = convert(ci, unreachable=[1])

        self.assertEqual(ir.stmts.stmt[0], GotoNode(2))
        self.assertEqual(ir.cfg.blocks[0].succs, [2])
        self.assertEqual(ir.cfg.blocks[1].preds, [])

    def testDeadFallthroughMayThrow(self):
        ci = make_codeinfo(
            [
                GotoIfNot(Argument(1), 2),
                ReturnNode(1),
                ReturnNode(2),
            ],
            flags=[THROWS, IR_FLAGS_EFFECTS, IR_FLAGS_EFFECTS],
        )
        sv = make_state(ci, unreachable=[1])
        self.assertRaises(InternalError, convert_to_ircode, ci, sv)

    def testDeadDestination(self):
        ci = make_codeinfo(
            [
                GotoIfNot(Argument(1), 2),
                ReturnNode(1),
                ReturnNode(2),
            ],
            types=[ANY, Int, Int],
        )
        ir, _ = convert(ci, unreachable=[2])

        self.assertIsNone(ir.stmts.stmt[0])
        self.assertEqual(ir.cfg.blocks[0].succs, [1])
        self.assertEqual(ir.cfg.blocks[2].preds, [])

    def testCoverage(self):
        ci = make_codeinfo(
            [
                Expr("call", [builtins.add_int, Argument(1), 1]),
                Expr("call", [builtins.add_int, SSAValue(0), 1]),
                ReturnNode(SSAValue(1)),
            ],
            types=[Int, Int, Int],
            codelocs=[1, 1, 2],
            linetable=[LineInfoNode("f.src", 1), LineInfoNode("f.src", 2)],
        )
        ir, _ = convert(ci, insert_coverage=True)

        self.assertStmts(ir, [
            Expr("code_coverage_effect"),
            Expr("call", [builtins.add_int, Argument(1), 1]),
            Expr("call", [builtins.add_int, SSAValue(1), 1]),
            Expr("code_coverage_effect"),
            ReturnNode(SSAValue(2)),
        ])
        self.assertEqual(ir.stmts.line, [1, 1, 1, 2, 2])
        self.assertIs(ir.stmts.type[0], Nothing)
        self.assertBlocks(ir, [(0, 4, [], [])])
        self.assertEqual(len(ir.linetable), 2)

    def testMeta(self):
        meta = Expr("meta", ["inline"])
        ci = make_codeinfo([meta, ReturnNode(1)])
        ir, _ = convert(ci)

        self.assertEqual(ir.meta, [meta])
        self.assertIsNone(ir.stmts.stmt[0])


class TestConvertHelpers(unittest.TestCase):
    def testProcessMeta(self):
        meta = []
        self.assertIsNone(process_meta(meta, Expr("meta", ["noinline"])))
        self.assertEqual(len(meta), 1)

        empty = Expr("meta", [])
        self.assertIs(process_meta(meta, empty), empty)
        self.assertEqual(len(meta), 1)

    def testStripTrailingJunk(self):
        code = [Expr("call", [builtins.add_int, 1, 2]), None, None]
        cfg = compute_basic_blocks(code)
        types = [Int, Nothing, Nothing]
        info = [NO_CALL_INFO] * 3
        codelocs = [0, 0, 0]
        flags = [IR_FLAG_NULL] * 3

        strip_trailing_junk(cfg, code, types, info, codelocs, flags)

        self.assertEqual(code, [Expr("call", [builtins.add_int, 1, 2]), ReturnNode()])
        self.assertEqual(types, [Int, Bottom])
        self.assertEqual(flags[1], StmtFlag.NOTHROW)
        self.assertEqual(cfg.blocks[-1].stmts, StmtRange(0, 1))

    def testTerminatedBodyUntouched(self):
        code = [ReturnNode(1)]
        cfg = compute_basic_blocks(code)
        strip_trailing_junk(cfg, code, [Int], [NO_CALL_INFO], [0], [IR_FLAG_NULL])
        self.assertEqual(code, [ReturnNode(1)])
