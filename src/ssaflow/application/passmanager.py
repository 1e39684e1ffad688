"""
Pass manager for the optimization pipeline.

A pass is an object with a ``name`` and a ``run(compiler, state, ir)``
method returning a ``PassResult`` that carries the (possibly new) IR. The
``PassManager`` registers passes by name and runs a ``PassPipeline`` of them
in order, threading the IR from one pass to the next.

**Key Concepts:**

1. **Pass Types:**
   - Conversion passes change the representation (slots to SSA)
   - Optimization passes transform the SSA body (inlining, SROA, ADCE)
   - Cleanup passes restore structural invariants (compaction)

2. **Early stop:**
   - ``stop_after`` names a pass, or gives its 1-based stage number
   - The pipeline returns right after that pass has run

3. **Timing:**
   - Each pass runs inside a console scope named after it
   - An execution log records time and outcome per pass

**Usage:**
```python
from ssaflow.application.passmanager import PassManager

manager = PassManager()
manager.register_pass(CompactPass("compact 1"))

pipeline = manager.build_pipeline(["compact 1"])
run = pipeline.run(compiler, state, ir)
ir = run.ir
```

Passes never swallow ``InternalError``: a broken invariant aborts the
pipeline and propagates to the caller.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union

LOG = logging.getLogger(__name__)


class PassKind(Enum):
    """Types of passes in the system."""
    CONVERSION = "conversion"
    OPTIMIZATION = "optimization"
    CLEANUP = "cleanup"


class PassResult:
    """Result of running a pass."""

    def __init__(self, ir, changed: bool = False, data: Any = None,
                 success: bool = True, error: Optional[str] = None):
        self.ir = ir
        self.success = success
        self.changed = changed
        self.data = data
        self.error = error
        self.timestamp = time.time()

    def __bool__(self):
        return self.success

    def __repr__(self):
        return "PassResult(changed=%r, success=%r)" % (self.changed, self.success)


@dataclass
class PassInfo:
    """Metadata for a registered pass."""
    name: str
    kind: PassKind
    description: str = ""

    def __post_init__(self):
        if not isinstance(self.kind, PassKind):
            self.kind = PassKind(self.kind)


class Pass(ABC):
    """Base class for all passes in the pass manager system."""

    def __init__(self, name: str, kind: PassKind, description: str = ""):
        self.name = name
        self.kind = kind
        self.description = description
        self.info = PassInfo(name, kind, description)

    @abstractmethod
    def run(self, compiler, state, ir) -> PassResult:
        """Run the pass.

        Args:
            compiler: The ``CompilerContext``.
            state: The ``OptimizationState`` of the body.
            ir: The IR produced by the previous pass (None for the first).

        Returns:
            PassResult carrying the IR for the next pass.
        """
        pass

    def __repr__(self):
        return f"{self.__class__.__name__}({self.name})"


class ConversionPass(Pass):
    """Base class for passes that change the IR representation."""

    def __init__(self, name: str, description: str = ""):
        super().__init__(name, PassKind.CONVERSION, description)


class OptimizationPass(Pass):
    """Base class for optimization passes."""

    def __init__(self, name: str, description: str = ""):
        super().__init__(name, PassKind.OPTIMIZATION, description)


class CleanupPass(Pass):
    """Base class for passes that only restore structural invariants."""

    def __init__(self, name: str, description: str = ""):
        super().__init__(name, PassKind.CLEANUP, description)


def matchpass(stop_after, stage: int, name: str) -> bool:
    """True when the pipeline must stop after pass ``name`` at ``stage``."""
    if stop_after is None:
        return False
    if isinstance(stop_after, str):
        return stop_after == name
    return stop_after == stage


class PipelineRun:
    """Outcome of running a pipeline.

    Attributes:
        ir: IR returned by the last pass that ran.
        results: ``PassResult`` per pass name, in execution order.
        stopped: True if the run ended early because of ``stop_after``.
    """

    def __init__(self, ir, results: Dict[str, PassResult], stopped: bool):
        self.ir = ir
        self.results = results
        self.stopped = stopped


class PassManager:
    """Registry and runner of named passes."""

    def __init__(self):
        self.passes: Dict[str, Pass] = {}
        self.pass_order: List[str] = []
        self.execution_log: List[Dict[str, Any]] = []

    def register_pass(self, pass_instance: Pass) -> None:
        """Register a pass instance."""
        if pass_instance.name in self.passes:
            raise ValueError(f"Pass '{pass_instance.name}' already registered")

        self.passes[pass_instance.name] = pass_instance
        self.pass_order.append(pass_instance.name)

    def replace_pass(self, pass_instance: Pass) -> None:
        """Swap the implementation registered under ``pass_instance.name``."""
        if pass_instance.name not in self.passes:
            raise ValueError(f"Unknown pass '{pass_instance.name}'")
        self.passes[pass_instance.name] = pass_instance

    def build_pipeline(self, pass_names: List[str]) -> "PassPipeline":
        """Build a pipeline from a list of pass names."""
        return PassPipeline(self, pass_names)

    def run_pipeline(self, compiler, state, ir, pipeline: "PassPipeline",
                     stop_after: Union[int, str, None] = None) -> PipelineRun:
        """Run a pipeline of passes, stopping after ``stop_after`` if given."""
        if isinstance(stop_after, str) and stop_after not in pipeline.passes:
            raise ValueError(f"invalid stop_after argument, no such optimization pass '{stop_after}'")

        results = {}
        for stage, pass_name in enumerate(pipeline.passes, 1):
            if pass_name not in self.passes:
                raise ValueError(f"Unknown pass '{pass_name}' in pipeline")

            pass_obj = self.passes[pass_name]
            result = self._run_pass(pass_obj, compiler, state, ir)
            results[pass_name] = result
            ir = result.ir

            if matchpass(stop_after, stage, pass_name):
                LOG.debug("pipeline stopped after '%s' (stage %d)", pass_name, stage)
                return PipelineRun(ir, results, True)

        return PipelineRun(ir, results, False)

    def _run_pass(self, pass_obj: Pass, compiler, state, ir) -> PassResult:
        """Run a single pass in a console scope and log the execution."""
        start_time = time.time()

        try:
            with compiler.console.scope(pass_obj.name):
                result = pass_obj.run(compiler, state, ir)
        except Exception as e:
            self.execution_log.append({
                'pass': pass_obj.name,
                'success': False,
                'changed': False,
                'time': time.time() - start_time,
                'error': str(e),
                'timestamp': time.time()
            })
            LOG.error("pass '%s' failed: %s", pass_obj.name, e)
            raise

        self.execution_log.append({
            'pass': pass_obj.name,
            'success': result.success,
            'changed': result.changed,
            'time': time.time() - start_time,
            'error': result.error,
            'timestamp': result.timestamp
        })
        LOG.debug("pass '%s': changed=%r", pass_obj.name, result.changed)
        return result

    def get_pass_info(self, pass_name: str) -> Optional[PassInfo]:
        """Get metadata for a registered pass."""
        if pass_name in self.passes:
            return self.passes[pass_name].info
        return None

    def list_passes(self) -> List[str]:
        """List all registered passes."""
        return list(self.pass_order)

    def get_execution_log(self) -> List[Dict[str, Any]]:
        """Get the execution log."""
        return self.execution_log.copy()


class PassPipeline:
    """Represents a specific sequence of passes to run."""

    def __init__(self, manager: PassManager, passes: List[str]):
        self.manager = manager
        self.passes = list(passes)

    def add_pass(self, pass_name: str) -> None:
        """Add a pass to the pipeline."""
        if pass_name not in self.manager.passes:
            raise ValueError(f"Unknown pass '{pass_name}'")
        self.passes.append(pass_name)

    def run(self, compiler, state, ir=None, stop_after=None) -> PipelineRun:
        """Run this pipeline."""
        return self.manager.run_pipeline(compiler, state, ir, self, stop_after)
