"""
ssaflow Application Layer.

This package drives an optimization run over one inferred body.

**Core Components:**

1. **Context Management** (`context.py`):
   - `CompilerContext`: console, parameters, code cache, escape analyzer

2. **Optimization State** (`state.py`):
   - `OptimizationState`: the body, its CFG and what inference proved

3. **Pass Manager System** (`passmanager.py`, `passes.py`):
   - `PassManager`, `PassPipeline`: named passes run in order
   - Early stop after a named or numbered pass

4. **Pipeline** (`convert.py`, `pipeline.py`, `finish.py`):
   - Conversion to SSA, the fixed pass sequence, effect refinement and
     the final inlining decision

5. **Error Handling** (`errors.py`):
   - Exceptions for broken invariants

**Usage:**
```python
from ssaflow.application.context import CompilerContext
from ssaflow.application.pipeline import optimize
from ssaflow.application.state import OptimizationState
from ssaflow.optimization.inlining import InliningState

compiler = CompilerContext()
opt = OptimizationState(mi, src, InliningState(code_cache=compiler.code_cache))
optimize(compiler, opt, inference_result)
```
"""
