"""
Per-body optimization state.
"""

from ssaflow.ir.cfg import compute_basic_blocks
from ssaflow.ir.ircode import NO_CALL_INFO
from ssaflow.ir.method import Method
from ssaflow.ir.types import ANY


class OptimizationState(object):
    """Everything the pipeline knows about the body being optimized.

    Attributes:
        linfo: The ``MethodInstance`` being optimized.
        src: Its slot-based ``CodeInfo``.
        ir: The ``IRCode`` once the pipeline has produced it, else None.
        stmt_info: Call-site information per statement of ``src``.
        mod: Module the method lives in.
        sptypes: ``VarState`` of each static parameter.
        slottypes: Types of the slots.
        inlining: ``InliningState`` handed to the inlining pass.
        cfg: CFG of ``src.code``, with statement-index labels.
        unreachable: Statement indices inference proved unreachable.
        insert_coverage: Insert coverage markers while converting.
    """

    def __init__(self, linfo, src, inlining, sptypes=None, slottypes=None,
                 stmt_info=None, unreachable=None, insert_coverage=False):
        self.linfo = linfo
        self.src = src
        self.ir = None

        n = len(src.code)
        self.stmt_info = list(stmt_info) if stmt_info is not None else [NO_CALL_INFO] * n

        def_ = linfo.def_
        self.mod = def_.module if isinstance(def_, Method) else def_

        self.sptypes = list(sptypes) if sptypes is not None else []
        if slottypes is None:
            slottypes = src.slottypes if src.slottypes is not None else [ANY] * len(src.slotflags)
        self.slottypes = list(slottypes)

        self.inlining = inlining
        self.cfg = compute_basic_blocks(src.code)
        self.unreachable = set(unreachable) if unreachable is not None else set()
        self.insert_coverage = insert_coverage

    @property
    def nargs(self):
        def_ = self.linfo.def_
        return def_.nargs if isinstance(def_, Method) else 0

    def __repr__(self):
        return "OptimizationState(%r)" % (self.linfo,)
