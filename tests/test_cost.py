import sys
import unittest

from ssaflow.config import OptimizationParams
from ssaflow.ir import builtins
from ssaflow.ir.flags import IR_FLAGS_EFFECTS, StmtFlag
from ssaflow.ir.nodes import Argument, Expr, GlobalRef, GotoIfNot, ReturnNode
from ssaflow.ir.types import ANY, Bottom, Int
from ssaflow.optimization.cost import (
    BACKEDGE_COST,
    DIRECT_CALL_COST,
    MAX_INLINE_COST,
    MIN_INLINE_COST,
    inline_cost,
    inline_cost_clamp,
    is_inlineable,
    plus_saturate,
    set_inlineable,
    statement_cost,
    statement_costs,
)

from .base import MAIN, make_codeinfo, make_ir, make_method_instance


def call(f, *args):
    return Expr("call", [f] + list(args))


class TestStatementCost(unittest.TestCase):
    def setUp(self):
        self.params = OptimizationParams()

    def cost(self, stmt, typ=ANY, flag=IR_FLAGS_EFFECTS):
        ir = make_ir([stmt, ReturnNode(Argument(1))], types=[typ, ANY], flags=[flag, IR_FLAGS_EFFECTS])
        error_path = bool(flag & StmtFlag.THROW_BLOCK)
        return statement_cost(stmt, 0, ir, [], self.params, error_path)

    def testIntrinsics(self):
        self.assertEqual(self.cost(call(builtins.add_int, Argument(1), 1)), 1)
        self.assertEqual(self.cost(call(builtins.mul_int, Argument(1), 2)), 4)
        self.assertEqual(self.cost(call(builtins.sdiv_int, Argument(1), 2)), 30)
        self.assertEqual(self.cost(call(builtins.cglobal, 1, 2)), self.params.inline_nonleaf_penalty)

    def testBuiltins(self):
        self.assertEqual(self.cost(call(builtins.getfield, Argument(1), 1)), 0)
        self.assertEqual(self.cost(call(builtins.setfield_, Argument(1), 1, 2)), 3)
        self.assertEqual(self.cost(call(builtins.typeassert, Argument(1), Int)), 1)
        self.assertEqual(self.cost(call(builtins.typeassert, Argument(1), Argument(1))), 4)
        self.assertEqual(self.cost(call(builtins.apply_iterate, Argument(1))), DIRECT_CALL_COST)

    def testUnknownCall(self):
        stmt = call(GlobalRef(MAIN, "g"), Argument(1))
        self.assertEqual(self.cost(stmt), self.params.inline_nonleaf_penalty)
        self.assertEqual(self.cost(stmt, flag=StmtFlag.THROW_BLOCK), self.params.inline_error_path_cost)
        self.assertEqual(self.cost(stmt, typ=Bottom), 0)

    def testInvoke(self):
        stmt = Expr("invoke", [make_method_instance(), GlobalRef(MAIN, "g"), Argument(1)])
        self.assertEqual(self.cost(stmt), DIRECT_CALL_COST)
        self.assertEqual(self.cost(stmt, typ=Bottom), 0)

    def testAssignment(self):
        stmt = Expr("=", [GlobalRef(MAIN, "g"), call(builtins.add_int, 1, 2)])
        self.assertEqual(self.cost(stmt), DIRECT_CALL_COST + 1)

    def testOther(self):
        self.assertEqual(self.cost(Expr("enter", [1])), sys.maxsize)
        self.assertEqual(self.cost(Expr("copyast", [1])), 100)
        self.assertEqual(self.cost(Expr("boundscheck")), 0)
        self.assertEqual(self.cost(Argument(1)), 0)


class TestInlineCost(unittest.TestCase):
    def setUp(self):
        self.params = OptimizationParams()

    def testMinimum(self):
        ir = make_ir([ReturnNode(Argument(1))])
        self.assertEqual(inline_cost(ir, self.params, 100), MIN_INLINE_COST)

    def testBackedge(self):
        ir = make_ir([
            call(builtins.add_int, Argument(1), 1),
            GotoIfNot(Argument(1), 0),
            ReturnNode(Argument(1)),
        ])
        self.assertEqual(inline_cost(ir, self.params, 100), 1 + BACKEDGE_COST)

    def testThreshold(self):
        code = [call(builtins.sdiv_int, Argument(1), 2) for _ in range(4)]
        ir = make_ir(code + [ReturnNode(Argument(1))])
        self.assertEqual(inline_cost(ir, self.params, 100), MAX_INLINE_COST)
        self.assertEqual(inline_cost(ir, self.params, 120), 120)

    def testExceptionHandler(self):
        ir = make_ir([Expr("enter", [1]), ReturnNode(Argument(1))])
        self.assertEqual(inline_cost(ir, self.params, 1000), MAX_INLINE_COST)

    def testStatementCosts(self):
        body = [call(builtins.mul_int, Argument(1), 2), GotoIfNot(Argument(1), 0), ReturnNode(1)]
        ci = make_codeinfo(body)
        cost = [None] * 3
        self.assertEqual(statement_costs(cost, body, ci, [], self.params), BACKEDGE_COST)
        self.assertEqual(cost, [4, BACKEDGE_COST, 0])


class TestCostHelpers(unittest.TestCase):
    def testPlusSaturate(self):
        self.assertEqual(plus_saturate(3, 4), 7)
        self.assertEqual(plus_saturate(0, 0), 0)

    def testClamp(self):
        self.assertEqual(inline_cost_clamp(0), MIN_INLINE_COST)
        self.assertEqual(inline_cost_clamp(50), 50)
        self.assertEqual(inline_cost_clamp(MAX_INLINE_COST + 1), MAX_INLINE_COST)

    def testInlineable(self):
        ci = make_codeinfo([ReturnNode(1)])
        self.assertFalse(is_inlineable(ci))
        set_inlineable(ci, True)
        self.assertEqual(ci.inlining_cost, MIN_INLINE_COST)
        self.assertTrue(is_inlineable(ci))
        set_inlineable(ci, False)
        self.assertFalse(is_inlineable(ci))
