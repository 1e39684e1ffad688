"""
Methods, specializations and the results inference attaches to them.

These are the objects the optimizer receives from (and hands back to) the
rest of the compiler. Inference fills in ``InferenceResult``; the optimizer
refines its effects, stacks extra analysis results onto it and finally the
optimized source ends up in a ``CodeInstance`` stored in the ``CodeCache``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional, Tuple


@dataclass(eq=False)
class Module:
    """A namespace of global bindings.

    Attributes:
        name: Module name.
        bindings: Maps binding names to values.
        consts: Names whose binding can never change.
        istopmod: True for the base library module.
    """
    name: str
    bindings: Dict[str, Any] = field(default_factory=dict)
    consts: FrozenSet[str] = frozenset()
    istopmod: bool = False

    def isdefined(self, name):
        return name in self.bindings

    def isconst(self, name):
        return name in self.consts

    def __repr__(self):
        return self.name


@dataclass(eq=False)
class Method:
    name: str
    module: Module
    nargs: int
    isva: bool = False

    def __repr__(self):
        return "%s.%s" % (self.module.name, self.name)


@dataclass(eq=False)
class MethodInstance:
    """A method specialized on a concrete signature.

    ``def_`` is the ``Method`` (or, for top-level thunks, the ``Module``)
    and ``spec_types`` the signature tuple type.
    """
    def_: Any
    spec_types: Any
    sparam_vals: Tuple[Any, ...] = ()

    def __repr__(self):
        return "MethodInstance for %r%r" % (self.def_, self.spec_types)


@dataclass(frozen=True)
class AnalysisResults:
    """Immutable linked list of extra analysis results."""
    result: Any
    next: Optional["AnalysisResults"] = None


def _traverse(results, callback):
    while results is not None:
        found = callback(results.result)
        if found is not None:
            return found
        results = results.next
    return None


@dataclass(eq=False)
class InferenceResult:
    linfo: MethodInstance
    argtypes: Tuple[Any, ...] = ()
    result: Any = None
    ipo_effects: Any = None
    analysis_results: Optional[AnalysisResults] = None
    src: Any = None

    def __post_init__(self):
        from .effects import EFFECTS_UNKNOWN
        from .types import ANY

        if self.result is None:
            self.result = ANY
        if self.ipo_effects is None:
            self.ipo_effects = EFFECTS_UNKNOWN

    def stack_analysis_result(self, result):
        self.analysis_results = AnalysisResults(result, self.analysis_results)

    def traverse_analysis_results(self, callback):
        """Return the first non-None ``callback(result)``, newest first."""
        return _traverse(self.analysis_results, callback)


@dataclass(eq=False)
class CodeInstance:
    def_: MethodInstance
    inferred: Any = None
    rettype: Any = None
    ipo_effects: Any = None
    analysis_results: Optional[AnalysisResults] = None

    def traverse_analysis_results(self, callback):
        return _traverse(self.analysis_results, callback)


class CodeCache(object):
    """Global map from method instances to their compiled code.

    Each key is written once by the worker that compiled it; readers never
    block and simply see an absent entry until that write lands.
    """

    def __init__(self, entries=None):
        self._entries = dict(entries) if entries else {}

    def get(self, mi, default=None):
        return self._entries.get(mi, default)

    def __setitem__(self, mi, codeinst):
        # setdefault keeps the first writer's value.
        self._entries.setdefault(mi, codeinst)

    def __getitem__(self, mi):
        return self._entries[mi]

    def __contains__(self, mi):
        return mi in self._entries

    def __len__(self):
        return len(self._entries)
