import unittest

from ssaflow.analysis.escape import (
    ALL_ESCAPE,
    ARG_ESCAPE,
    ArgEscapeCache,
    EscapeInfo,
    EscapeState,
    GetNativeEscapeCache,
    analyze_escapes,
    has_all_escape,
    has_no_escape,
    ignore_argescape,
)
from ssaflow.ir import builtins
from ssaflow.ir.flags import IR_FLAG_NULL, IR_FLAGS_EFFECTS
from ssaflow.ir.method import AnalysisResults, CodeCache, CodeInstance
from ssaflow.ir.nodes import Argument, Expr, GlobalRef, ReturnNode, SSAValue

from .base import MAIN, MPoint, Point, make_ir, make_method_instance, make_result


def call(f, *args):
    return Expr("call", [f] + list(args))


def no_cache(mi):
    return None


class TestEscapeInfo(unittest.TestCase):
    def testJoin(self):
        info = EscapeInfo(return_escape=True).join(ARG_ESCAPE)
        self.assertTrue(info.return_escape)
        self.assertTrue(info.arg_escape)
        self.assertFalse(info.all_escape)

    def testIgnoreArgescape(self):
        self.assertFalse(has_no_escape(ARG_ESCAPE))
        self.assertTrue(has_no_escape(ignore_argescape(ARG_ESCAPE)))
        self.assertTrue(has_all_escape(ignore_argescape(ALL_ESCAPE)))

    def testStateLookup(self):
        estate = EscapeState(2, 1)
        self.assertEqual(estate[Argument(1)], ARG_ESCAPE)
        self.assertEqual(estate[SSAValue(0)], EscapeInfo())
        self.assertTrue(estate.add(SSAValue(0), ALL_ESCAPE))
        self.assertFalse(estate.add(SSAValue(0), ALL_ESCAPE))
        self.assertRaises(TypeError, estate.__getitem__, 1)


class TestAnalyzeEscapes(unittest.TestCase):
    def analyze(self, code, flags=None, get_escape_cache=no_cache):
        ir = make_ir(code, flags=flags)
        return analyze_escapes(ir, 2, get_escape_cache)

    def testReturnedArgument(self):
        estate = self.analyze([ReturnNode(Argument(1))])
        self.assertTrue(estate[Argument(1)].return_escape)
        self.assertTrue(has_no_escape(ignore_argescape(estate[Argument(0)])))

    def testLocalAllocation(self):
        estate = self.analyze([
            Expr("new", [Point, Argument(1), 1]),
            call(builtins.getfield, SSAValue(0), 0),
            ReturnNode(SSAValue(1)),
        ])
        self.assertTrue(has_no_escape(estate[SSAValue(0)]))
        self.assertTrue(estate[SSAValue(1)].return_escape)
        self.assertEqual(estate[Argument(1)], ARG_ESCAPE)

    def testReturnedTuple(self):
        estate = self.analyze([call(builtins.tuple_, Argument(1)), ReturnNode(SSAValue(0))])
        self.assertTrue(estate[Argument(1)].return_escape)
        self.assertFalse(estate[Argument(1)].all_escape)

    def testStoreIntoReturnedObject(self):
        estate = self.analyze([
            Expr("new", [MPoint, 1, 2]),
            call(builtins.setfield_, SSAValue(0), 0, Argument(1)),
            ReturnNode(SSAValue(0)),
        ])
        self.assertTrue(estate[Argument(1)].return_escape)

    def testUnknownCall(self):
        estate = self.analyze([call(GlobalRef(MAIN, "g"), Argument(1)), ReturnNode(1)])
        self.assertTrue(has_all_escape(estate[Argument(1)]))

    def testMayThrow(self):
        estate = self.analyze(
            [call(builtins.getfield, Argument(1), 0), ReturnNode(1)],
            flags=[IR_FLAG_NULL, IR_FLAGS_EFFECTS],
        )
        info = estate[Argument(1)]
        self.assertTrue(info.thrown_escape)
        self.assertFalse(info.all_escape)

    def testGlobalStore(self):
        estate = self.analyze([Expr("=", [GlobalRef(MAIN, "g"), Argument(1)]), ReturnNode(1)])
        self.assertTrue(has_all_escape(estate[Argument(1)]))

    def testInvoke(self):
        callee = make_method_instance("g")
        code = [Expr("invoke", [callee, Argument(0), Argument(1)]), ReturnNode(1)]
        cache = ArgEscapeCache(EscapeState(2, 0))

        estate = self.analyze(code, get_escape_cache=lambda mi: cache)
        self.assertTrue(has_no_escape(ignore_argescape(estate[Argument(1)])))

        estate = self.analyze(code)
        self.assertTrue(has_all_escape(estate[Argument(1)]))


class TestEscapeCache(unittest.TestCase):
    def testFromCodeCache(self):
        mi = make_method_instance("g")
        cache = ArgEscapeCache(EscapeState(2, 0))
        code_cache = CodeCache()
        code_cache[mi] = CodeInstance(mi, analysis_results=AnalysisResults(cache))

        lookup = GetNativeEscapeCache(code_cache)
        self.assertIs(lookup(mi), cache)
        self.assertIsNone(lookup(make_method_instance("h")))
        self.assertEqual(len(cache), 2)
        self.assertFalse(cache[1].all_escape)

    def testFromInferenceResult(self):
        result = make_result(make_method_instance())
        lookup = GetNativeEscapeCache(None)
        self.assertIsNone(lookup(result))

        cache = ArgEscapeCache(EscapeState(2, 0))
        result.stack_analysis_result("other")
        result.stack_analysis_result(cache)
        self.assertIs(lookup(result), cache)
