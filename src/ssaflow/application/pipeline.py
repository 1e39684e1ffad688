"""Optimization pipeline.

``optimize`` runs the whole optimizer on one inferred body:

1. ``run_passes_ipo_safe`` threads the IR through the fixed pass sequence
   convert, slot2reg, compact 1, Inlining, compact 2, SROA, ADCE, compact 3
2. ``ipo_dataflow_analysis`` refines the effects of the inference result
   from the optimized body
3. ``finish`` decides inlineability and records the inlining cost

The pipeline can be stopped after any pass, by name or by 1-based stage
number, to inspect intermediate IR.
"""

import logging

from ssaflow.analysis.postopt import ipo_dataflow_analysis
from ssaflow.ir.verify import verify_ir, verify_linetable

from .context import CompilerContext
from .finish import finish
from .passes import PASS_NAMES, register_standard_passes
from .passmanager import PassManager

LOG = logging.getLogger(__name__)


def default_pass_manager(**overrides):
    """A ``PassManager`` holding the standard passes.

    Keyword arguments are forwarded to ``register_standard_passes``.
    """
    return register_standard_passes(PassManager(), **overrides)


def run_passes_ipo_safe(ci, sv, caller, optimize_until=None, compiler=None, manager=None):
    """Run the optimization passes on ``ci``.

    Args:
        ci: The inferred ``CodeInfo``.
        sv: Its ``OptimizationState``.
        caller: The ``InferenceResult`` being optimized.
        optimize_until: Stop after the pass with this name, or after this
            many passes. None runs everything.
        compiler: The ``CompilerContext``; a default one when None.
        manager: ``PassManager`` with the standard pass names registered.

    Returns:
        The resulting IR.

    Raises:
        ValueError: If ``optimize_until`` names no pass.
    """
    if compiler is None:
        compiler = CompilerContext()
    if manager is None:
        manager = default_pass_manager()

    pipeline = manager.build_pipeline(PASS_NAMES)
    run = pipeline.run(compiler, sv, None, optimize_until)
    ir = run.ir

    if not run.stopped and compiler.params.debug_level == 2:
        with compiler.console.scope("verify 3"):
            verify_ir(ir)
            verify_linetable(ir.linetable)

    compiler.stats["pipeline"][sv.linfo] = {
        name: result.changed for name, result in run.results.items()
    }
    return ir


def optimize(compiler, opt, caller, manager=None):
    """Optimize the body of ``opt`` and update ``caller``.

    Returns:
        None; the results land in ``opt.ir``, ``opt.src`` and ``caller``.
    """
    with compiler.console.scope("optimizer"):
        ir = run_passes_ipo_safe(opt.src, opt, caller, compiler=compiler, manager=manager)
    refined = ipo_dataflow_analysis(compiler, ir, caller)
    LOG.debug("optimized %r, effects refined: %r", opt.linfo, refined)
    return finish(compiler, opt, ir, caller)
