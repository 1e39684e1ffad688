"""
Standard passes of the optimization pipeline.

Each pass wraps one stage of the optimizer so that the pass manager can run
it, time it and stop after it:

**Conversion Passes:**
- convert: ``CodeInfo`` to a slot-based ``IRCode``
- slot2reg: slots to SSA values

**Optimization Passes:**
- Inlining: splices accepted ``invoke`` sites
- SROA: forwards field loads of local immutable aggregates
- ADCE: removes dead statements

**Cleanup Passes:**
- compact 1/2/3: removes what the previous stage left behind; the last one
  may also merge straight-line blocks

The SROA and ADCE stages are plain callables ``(ir, inlining_state) -> ir``
and can be replaced through ``register_standard_passes``.
"""

from ssaflow.analysis.cfg.compact import compact
from ssaflow.optimization.dce import adce_pass
from ssaflow.optimization.inlining import ssa_inlining_pass
from ssaflow.optimization.sroa import sroa_pass

from .convert import convert_to_ircode, slot2reg
from .passmanager import CleanupPass, ConversionPass, OptimizationPass, PassResult

PASS_NAMES = (
    "convert",
    "slot2reg",
    "compact 1",
    "Inlining",
    "compact 2",
    "SROA",
    "ADCE",
    "compact 3",
)


class Snapshot(object):
    """Remembers the statements of an IR to tell whether a pass changed it."""

    __slots__ = "ir", "stmts", "nblocks"

    def __init__(self, ir):
        self.ir = ir
        self.stmts = list(ir.stmts.stmt)
        self.nblocks = len(ir.cfg.blocks)

    def changed(self, ir):
        if ir is not self.ir or len(ir.cfg.blocks) != self.nblocks:
            return True
        stmts = ir.stmts.stmt
        if len(stmts) != len(self.stmts):
            return True
        return any(a is not b for a, b in zip(stmts, self.stmts))


class ConvertPass(ConversionPass):
    """Builds the slot-based IR from the inferred source."""

    def __init__(self):
        super().__init__("convert", "Converts the inferred CodeInfo to IRCode")

    def run(self, compiler, state, ir) -> PassResult:
        if compiler.params.insert_coverage:
            state.insert_coverage = True
        return PassResult(convert_to_ircode(state.src, state), changed=True)


class Slot2RegPass(ConversionPass):
    """SSA construction."""

    def __init__(self):
        super().__init__("slot2reg", "Replaces slots with SSA values")

    def run(self, compiler, state, ir) -> PassResult:
        return PassResult(slot2reg(ir, state.src, state), changed=True)


class CompactPass(CleanupPass):
    def __init__(self, name, allow_cfg_transforms=False):
        super().__init__(name, "Removes dead blocks, copies and no-ops")
        self.allow_cfg_transforms = allow_cfg_transforms

    def run(self, compiler, state, ir) -> PassResult:
        snapshot = Snapshot(ir)
        ir = compact(ir, self.allow_cfg_transforms)
        return PassResult(ir, changed=snapshot.changed(ir))


class InliningPass(OptimizationPass):
    def __init__(self):
        super().__init__("Inlining", "Inlines accepted invoke sites")

    def run(self, compiler, state, ir) -> PassResult:
        snapshot = Snapshot(ir)
        ir = ssa_inlining_pass(ir, state.inlining, state.src.propagate_inbounds)
        return PassResult(ir, changed=snapshot.changed(ir), data=list(state.inlining.edges))


class TransformPass(OptimizationPass):
    """Runs a callable ``transform(ir, inlining_state) -> ir``."""

    def __init__(self, name, transform, description=""):
        super().__init__(name, description)
        self.transform = transform

    def run(self, compiler, state, ir) -> PassResult:
        snapshot = Snapshot(ir)
        ir = self.transform(ir, state.inlining)
        return PassResult(ir, changed=snapshot.changed(ir))


def register_standard_passes(pass_manager, sroa=sroa_pass, adce=adce_pass):
    """Register the passes of the default pipeline.

    Args:
        pass_manager: The ``PassManager`` to populate.
        sroa: Replacement for the SROA stage.
        adce: Replacement for the ADCE stage.
    """
    pass_manager.register_pass(ConvertPass())
    pass_manager.register_pass(Slot2RegPass())
    pass_manager.register_pass(CompactPass("compact 1"))
    pass_manager.register_pass(InliningPass())
    pass_manager.register_pass(CompactPass("compact 2"))
    pass_manager.register_pass(TransformPass("SROA", sroa, "Scalar replacement of aggregates"))
    pass_manager.register_pass(TransformPass("ADCE", adce, "Aggressive dead code elimination"))
    pass_manager.register_pass(CompactPass("compact 3", allow_cfg_transforms=True))
    return pass_manager
