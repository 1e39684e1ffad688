import unittest

from ssaflow.analysis.escape import ArgEscapeCache, EscapeState
from ssaflow.analysis.postopt import (
    BBScanner,
    ipo_dataflow_analysis,
    is_ipo_dataflow_analysis_profitable,
)
from ssaflow.ir import builtins
from ssaflow.ir.effects import (
    ALWAYS_FALSE,
    ALWAYS_TRUE,
    EFFECT_FREE_IF_INACCESSIBLEMEMONLY,
    EFFECTS_TOTAL,
    EFFECTS_UNKNOWN,
    NOUB_IF_NOINBOUNDS,
)
from ssaflow.ir.flags import IR_FLAGS_EFFECTS, StmtFlag
from ssaflow.ir.method import AnalysisResults, CodeCache, CodeInstance
from ssaflow.ir.nodes import (
    Argument,
    Expr,
    GotoIfNot,
    GotoNode,
    PhiNode,
    ReturnNode,
    SSAValue,
)
from ssaflow.ir.types import ANY, Bool, Function, Int

from .base import (
    MPoint,
    Point,
    make_compiler,
    make_ir,
    make_method_instance,
    make_result,
)

E = IR_FLAGS_EFFECTS


def call(f, *args):
    return Expr("call", [f] + list(args))


class TestRefineEffects(unittest.TestCase):
    def refine(self, ir, effects=EFFECTS_UNKNOWN, compiler=None):
        result = make_result(make_method_instance(), ipo_effects=effects)
        changed = ipo_dataflow_analysis(compiler, ir, result)
        return changed, result

    def testAllFlagsSet(self):
        ir = make_ir([call(builtins.add_int, Argument(1), 1), ReturnNode(SSAValue(0))])
        changed, result = self.refine(ir)

        self.assertTrue(changed)
        effects = result.ipo_effects
        self.assertEqual(effects.consistent, ALWAYS_TRUE)
        self.assertEqual(effects.effect_free, ALWAYS_TRUE)
        self.assertTrue(effects.nothrow)
        self.assertEqual(effects.noub, ALWAYS_TRUE)

    def testAlreadyTotal(self):
        ir = make_ir([ReturnNode(1)])
        self.assertFalse(is_ipo_dataflow_analysis_profitable(EFFECTS_TOTAL))
        changed, result = self.refine(ir, EFFECTS_TOTAL)
        self.assertFalse(changed)
        self.assertIs(result.ipo_effects, EFFECTS_TOTAL)

    def testMayThrow(self):
        ir = make_ir(
            [call(builtins.sdiv_int, Argument(1), 2), ReturnNode(SSAValue(0))],
            flags=[E & ~StmtFlag.NOTHROW, E],
        )
        changed, result = self.refine(ir)

        self.assertTrue(changed)
        self.assertFalse(result.ipo_effects.nothrow)
        self.assertEqual(result.ipo_effects.consistent, ALWAYS_TRUE)

    def testInconsistentReturn(self):
        ir = make_ir(
            [call(builtins.add_int, Argument(1), 1), ReturnNode(SSAValue(0))],
            flags=[E & ~StmtFlag.CONSISTENT, E],
        )
        changed, result = self.refine(ir)

        self.assertTrue(changed)
        self.assertEqual(result.ipo_effects.consistent, ALWAYS_FALSE)
        self.assertTrue(result.ipo_effects.nothrow)

    def testExceptionRegion(self):
        ir = make_ir([Expr("enter", [1]), ReturnNode(1)])
        changed, result = self.refine(ir)

        self.assertFalse(changed)
        self.assertEqual(result.ipo_effects, EFFECTS_UNKNOWN)

    def testConditionalNoub(self):
        ir = make_ir(
            [
                Expr("boundscheck"),
                call(builtins.getfield, Argument(1), 0, SSAValue(0)),
                ReturnNode(SSAValue(1)),
            ],
            types=[Bool, Int, ANY],
            flags=[E, E & ~StmtFlag.NOUB, E],
            argtypes=[Function, Point],
        )
        changed, result = self.refine(ir)

        self.assertTrue(changed)
        self.assertEqual(result.ipo_effects.noub, NOUB_IF_NOINBOUNDS)

    def testLoop(self):
        ir = make_ir([
            call(builtins.add_int, Argument(1), 1),
            GotoIfNot(Argument(1), 0),
            ReturnNode(SSAValue(0)),
        ])
        changed, result = self.refine(ir)

        self.assertTrue(changed)
        self.assertEqual(result.ipo_effects.consistent, ALWAYS_TRUE)

    def testLoopInconsistentReturn(self):
        ir = make_ir(
            [
                call(builtins.add_int, Argument(1), 1),
                GotoIfNot(Argument(1), 0),
                ReturnNode(SSAValue(0)),
            ],
            flags=[E & ~StmtFlag.CONSISTENT, E, E],
        )
        changed, result = self.refine(ir)

        self.assertTrue(changed)
        self.assertEqual(result.ipo_effects.consistent, ALWAYS_FALSE)

    def testInconsistentBranch(self):
        ir = make_ir(
            [
                call(builtins.add_int, Argument(1), 1),
                GotoIfNot(SSAValue(0), 4),
                call(builtins.add_int, Argument(1), 2),
                GotoNode(5),
                call(builtins.add_int, Argument(1), 3),
                PhiNode([1, 2], [SSAValue(2), SSAValue(4)]),
                ReturnNode(SSAValue(5)),
            ],
            types=[Bool, ANY, Int, ANY, Int, Int, ANY],
            flags=[E & ~StmtFlag.CONSISTENT] + [E] * 6,
        )
        changed, result = self.refine(ir, EFFECTS_UNKNOWN.replace(terminates=True))

        self.assertTrue(changed)
        self.assertEqual(result.ipo_effects.consistent, ALWAYS_FALSE)
        self.assertTrue(result.ipo_effects.nothrow)

    def testLoopCarriedInconsistency(self):
        # %1 = phi(0, %3); %3 = %1 + 1 around a loop; the phi is returned.
        ir = make_ir(
            [
                GotoNode(1),
                PhiNode([0, 2], [0, SSAValue(3)]),
                GotoIfNot(Argument(1), 5),
                call(builtins.add_int, SSAValue(1), 1),
                GotoNode(1),
                ReturnNode(SSAValue(1)),
            ],
            types=[ANY, Int, ANY, Int, ANY, ANY],
            flags=[E, E, E, E & ~StmtFlag.CONSISTENT, E, E],
        )
        changed, result = self.refine(ir)

        self.assertTrue(changed)
        self.assertEqual(result.ipo_effects.consistent, ALWAYS_FALSE)
        self.assertTrue(result.ipo_effects.nothrow)

    def testInconsistentBranchToTwoReturns(self):
        code = [
            call(builtins.add_int, Argument(1), 1),
            GotoIfNot(SSAValue(0), 3),
            ReturnNode(1),
            ReturnNode(2),
        ]
        types = [Bool, ANY, ANY, ANY]
        terminating = EFFECTS_UNKNOWN.replace(terminates=True)

        ir = make_ir(code, types=types, flags=[E & ~StmtFlag.CONSISTENT, E, E, E])
        changed, result = self.refine(ir, terminating)
        self.assertTrue(changed)
        self.assertEqual(result.ipo_effects.consistent, ALWAYS_FALSE)

        ir = make_ir(code, types=types)
        changed, result = self.refine(ir, terminating)
        self.assertEqual(result.ipo_effects.consistent, ALWAYS_TRUE)

    def guarded_ir(self, guarded_flag):
        """An inconsistent branch around one statement, joining before a constant return."""
        return make_ir(
            [
                call(builtins.add_int, Argument(1), 1),
                GotoIfNot(SSAValue(0), 4),
                call(builtins.sdiv_int, Argument(1), 2),
                GotoNode(4),
                ReturnNode(1),
            ],
            types=[Bool, ANY, Int, ANY, ANY],
            flags=[E & ~StmtFlag.CONSISTENT, E, guarded_flag, E, E],
        )

    def testInconsistentBranchWithoutTermination(self):
        changed, result = self.refine(self.guarded_ir(E), EFFECTS_UNKNOWN.replace(terminates=True))
        self.assertTrue(changed)
        self.assertEqual(result.ipo_effects.consistent, ALWAYS_TRUE)

        # Whether the function returns at all may depend on the branch.
        changed, result = self.refine(self.guarded_ir(E), EFFECTS_UNKNOWN)
        self.assertTrue(changed)
        self.assertEqual(result.ipo_effects.consistent, ALWAYS_FALSE)
        self.assertTrue(result.ipo_effects.nothrow)

    def testConditionalSuccessorMayThrow(self):
        ir = self.guarded_ir(E & ~StmtFlag.NOTHROW)
        changed, result = self.refine(ir, EFFECTS_UNKNOWN.replace(terminates=True))

        self.assertTrue(changed)
        self.assertEqual(result.ipo_effects.consistent, ALWAYS_FALSE)
        self.assertFalse(result.ipo_effects.nothrow)

    def testArgumentMemory(self):
        callee = make_method_instance("g")
        code_cache = CodeCache()
        code_cache[callee] = CodeInstance(
            callee, analysis_results=AnalysisResults(ArgEscapeCache(EscapeState(2, 0)))
        )
        compiler = make_compiler()
        compiler.code_cache = code_cache

        argmem = (
            StmtFlag.CONSISTENT | StmtFlag.NOTHROW | StmtFlag.NOUB
            | StmtFlag.EFIIMO | StmtFlag.INACCESSIBLE_OR_ARGMEM
        )
        ir = make_ir(
            [Expr("invoke", [callee, Argument(0), Argument(1)]), ReturnNode(1)],
            flags=[argmem, E],
            argtypes=[Function, MPoint],
        )
        changed, result = self.refine(ir, compiler=compiler)

        self.assertTrue(changed)
        self.assertEqual(result.ipo_effects.effect_free, EFFECT_FREE_IF_INACCESSIBLEMEMONLY)
        self.assertIsInstance(result.analysis_results.result, ArgEscapeCache)


class TestBBScanner(unittest.TestCase):
    def testStopsAtBackedge(self):
        ir = make_ir([
            call(builtins.add_int, Argument(1), 1),
            GotoIfNot(Argument(1), 0),
            ReturnNode(SSAValue(0)),
        ])
        seen = []

        def visit(inst, idx, lstmt, bb):
            seen.append(idx)
            return True

        scanner = BBScanner(ir)
        self.assertFalse(scanner.scan(visit, True))
        self.assertEqual(seen, [0, 1])
        self.assertTrue(scanner.scan(visit, True))
        self.assertEqual(seen, [0, 1, 2])

    def testCallbackStops(self):
        ir = make_ir([call(builtins.add_int, Argument(1), 1), ReturnNode(SSAValue(0))])
        seen = []

        def visit(inst, idx, lstmt, bb):
            seen.append(idx)
            return None

        self.assertTrue(BBScanner(ir).scan(visit, True))
        self.assertEqual(seen, [0])
