"""Builders shared by the test modules.

Branch targets handed to ``make_ir`` are statement indices and are
translated into block indices; phi edges are given as block indices.
"""

import unittest

from ssaflow.application.context import CompilerContext
from ssaflow.application.state import OptimizationState
from ssaflow.config import OptimizationParams
from ssaflow.ir.cfg import block_for_inst, compute_basic_blocks
from ssaflow.ir.flags import IR_FLAGS_EFFECTS, StmtFlag
from ssaflow.ir.ircode import CodeInfo, InstructionStream, IRCode
from ssaflow.ir.method import InferenceResult, Method, MethodInstance, Module
from ssaflow.ir.nodes import Expr, GotoIfNot, GotoNode, isexpr
from ssaflow.ir.types import ANY, DataType, Function, Int, TupleType
from ssaflow.optimization.inlining import InliningState

MAIN = Module("Main")
BASE = Module("Base", istopmod=True)

Point = DataType("Point", (Int, Int), ("x", "y"))
MPoint = DataType("MPoint", (Int, Int), ("x", "y"), mutable=True)


def make_method_instance(name="f", nargs=2, spec_types=None, module=MAIN):
    method = Method(name, module, nargs)
    if spec_types is None:
        spec_types = TupleType((Function,) + (ANY,) * (nargs - 1))
    return MethodInstance(method, spec_types)


def make_codeinfo(code, types=None, flags=None, slotnames=("#self#", "x"),
                  slotflags=None, slottypes=None, **kwargs):
    n = len(code)
    if types is None:
        types = [ANY] * n
    if flags is None:
        flags = [IR_FLAGS_EFFECTS] * n
    if slotflags is None:
        slotflags = [0] * len(slotnames)
    if slottypes is None:
        slottypes = [ANY] * len(slotnames)
    return CodeInfo(
        list(code),
        list(types),
        [StmtFlag(f) for f in flags],
        kwargs.pop("codelocs", [0] * n),
        slotnames=list(slotnames),
        slotflags=list(slotflags),
        slottypes=list(slottypes),
        **kwargs
    )


def _relabel(cfg, stmt):
    if isinstance(stmt, GotoNode):
        return GotoNode(block_for_inst(cfg, stmt.label))
    if isinstance(stmt, GotoIfNot):
        return GotoIfNot(stmt.cond, block_for_inst(cfg, stmt.dest))
    if isexpr(stmt, "enter"):
        return Expr("enter", [block_for_inst(cfg, stmt.args[0])] + stmt.args[1:])
    return stmt


def make_ir(code, types=None, flags=None, argtypes=None, lines=None, linetable=None):
    """An SSA ``IRCode`` whose blocks are computed from ``code``."""
    n = len(code)
    cfg = compute_basic_blocks(code)
    stmts = [_relabel(cfg, stmt) for stmt in code]
    if types is None:
        types = [ANY] * n
    if flags is None:
        flags = [IR_FLAGS_EFFECTS] * n
    if argtypes is None:
        argtypes = [Function, ANY]
    stream = InstructionStream(
        stmts, list(types), None, list(lines) if lines else None, [StmtFlag(f) for f in flags]
    )
    return IRCode(stream, cfg, list(linetable or ()), list(argtypes))


def make_state(ci, mi=None, inlining=None, **kwargs):
    if mi is None:
        mi = make_method_instance()
    if inlining is None:
        inlining = InliningState()
    return OptimizationState(mi, ci, inlining, **kwargs)


def make_compiler(**params):
    return CompilerContext(params=OptimizationParams(**params))


def make_result(mi, result=Int, **kwargs):
    return InferenceResult(mi, result=result, **kwargs)


class TestIRBase(unittest.TestCase):
    def assertStmts(self, ir, expected):
        self.assertEqual(list(ir.stmts.stmt), list(expected))

    def assertBlocks(self, ir, expected):
        """``expected`` is a list of ``(first, last, preds, succs)``."""
        actual = [
            (b.stmts.first, b.stmts.last, sorted(b.preds), sorted(b.succs))
            for b in ir.cfg.blocks
        ]
        self.assertEqual(actual, [(f, l, sorted(p), sorted(s)) for f, l, p, s in expected])
