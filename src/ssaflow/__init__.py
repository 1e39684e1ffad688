"""ssaflow - SSA optimizer middle-end for inferred function bodies.
"""

__version__ = "0.1.0"

# Import main components for easy access
from .application.context import CompilerContext
from .application.pipeline import optimize, run_passes_ipo_safe
from .application.state import OptimizationState
from .config import OptimizationParams

__all__ = [
    "CompilerContext",
    "OptimizationParams",
    "OptimizationState",
    "optimize",
    "run_passes_ipo_safe",
    "__version__",
]
