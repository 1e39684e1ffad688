from ssaflow.ir import builtins
from ssaflow.ir.flags import IR_FLAG_NULL, IR_FLAGS_EFFECTS, StmtFlag
from ssaflow.ir.nodes import Argument, Expr, GotoNode, ReturnNode, SSAValue
from ssaflow.ir.types import Function, Int, Nothing
from ssaflow.optimization.dce import adce_pass, is_removable_if_unused

from .base import MPoint, TestIRBase, make_ir


def call(f, *args):
    return Expr("call", [f] + list(args))


class TestADCE(TestIRBase):
    def testDeadStatement(self):
        ir = make_ir(
            [call(builtins.add_int, Argument(1), 1), ReturnNode(Argument(1))],
            types=[Int, Int],
        )
        ir = adce_pass(ir)

        self.assertStmts(ir, [None, ReturnNode(Argument(1))])
        self.assertIs(ir.stmts.type[0], Nothing)
        self.assertEqual(ir.stmts.flag[0], IR_FLAGS_EFFECTS)

    def testUsedChain(self):
        code = [
            call(builtins.add_int, Argument(1), 1),
            call(builtins.add_int, SSAValue(0), 1),
            ReturnNode(SSAValue(1)),
        ]
        ir = adce_pass(make_ir(code))
        self.assertStmts(ir, code)

    def testSideEffectKept(self):
        stmt = call(builtins.setfield_, Argument(1), 0, 1)
        ir = make_ir(
            [stmt, ReturnNode(1)],
            flags=[StmtFlag.CONSISTENT | StmtFlag.NOTHROW, IR_FLAGS_EFFECTS],
            argtypes=[Function, MPoint],
        )
        ir = adce_pass(ir)
        self.assertEqual(ir.stmts.stmt[0], stmt)

    def testFlagsRecomputed(self):
        ir = make_ir(
            [call(builtins.add_int, Argument(1), 1), ReturnNode(1)],
            types=[Int, Int],
            flags=[IR_FLAG_NULL, IR_FLAG_NULL],
            argtypes=[Function, Int],
        )
        self.assertTrue(is_removable_if_unused(ir, 0))
        self.assertFalse(is_removable_if_unused(ir, 1))
        ir = adce_pass(ir)
        self.assertIsNone(ir.stmts.stmt[0])

    def testUnreachableBlockUntouched(self):
        code = [GotoNode(2), call(builtins.add_int, Argument(1), 1), ReturnNode(Argument(1))]
        ir = adce_pass(make_ir(code))
        self.assertEqual(ir.stmts.stmt[1], call(builtins.add_int, Argument(1), 1))
