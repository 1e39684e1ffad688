"""
Context management for an optimization run.

``CompilerContext`` carries everything an optimization stage needs besides
the IR itself: console output and timing, the tunables, the shared code
cache and the escape analyzer used by effect refinement. One context may be
shared by many bodies; it holds no per-body state.
"""

import collections

from ssaflow.analysis.escape import analyze_escapes
from ssaflow.config import OptimizationParams
from ssaflow.ir.method import CodeCache
from ssaflow.util.application.console import Console


class CompilerContext(object):
    """
    Context for optimization operations.

    Attributes:
        console: Console used for pass timing and verbose output.
        params: ``OptimizationParams`` of this run.
        code_cache: Shared ``CodeCache`` of compiled methods. Only read here.
        escape_analyzer: Callable ``(ir, nargs, get_escape_cache)`` returning
            an ``EscapeState``.
        stats: Per-pass statistics (nested dictionaries).
    """
    __slots__ = "console", "params", "code_cache", "escape_analyzer", "stats"

    def __init__(self, console=None, params=None, code_cache=None, escape_analyzer=None):
        self.console = console if console is not None else Console()
        self.params = params if params is not None else OptimizationParams()
        self.code_cache = code_cache if code_cache is not None else CodeCache()
        self.escape_analyzer = escape_analyzer if escape_analyzer is not None else analyze_escapes
        self.stats = collections.defaultdict(dict)
