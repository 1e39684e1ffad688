"""
Optimizer configuration.

``OptimizationParams`` collects the tunables of the cost model and the
pipeline. Instances are validated on construction; ``from_mapping`` builds
one from a plain dictionary (for example, a parsed configuration file),
rejecting unknown keys.
"""

from dataclasses import dataclass, fields
from typing import Any, Mapping


@dataclass
class OptimizationParams:
    """Tunables read by the optimizer.

    Attributes:
        inline_cost_threshold: Body cost above which a callee is not inlined.
        inline_nonleaf_penalty: Cost of a call that is not a known primitive.
        inline_tupleret_bonus: Threshold bonus for callees returning an
            abstract tuple type.
        inline_error_path_cost: Cost of a call on a path that always throws.
        insert_coverage: Insert a coverage marker at every new source line.
        debug_level: 2 enables IR verification after the pipeline.
    """
    inline_cost_threshold: int = 100
    inline_nonleaf_penalty: int = 1000
    inline_tupleret_bonus: int = 250
    inline_error_path_cost: int = 20
    insert_coverage: bool = False
    debug_level: int = 0

    def __post_init__(self):
        for name in (
            "inline_cost_threshold",
            "inline_nonleaf_penalty",
            "inline_tupleret_bonus",
            "inline_error_path_cost",
        ):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError("%s must be a non-negative integer, got %r" % (name, value))
        if self.debug_level not in (0, 1, 2):
            raise ValueError("debug_level must be 0, 1 or 2, got %r" % (self.debug_level,))
        self.insert_coverage = bool(self.insert_coverage)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "OptimizationParams":
        known = {f.name for f in fields(cls)}
        unknown = set(mapping) - known
        if unknown:
            raise ValueError("unknown optimization parameters: %s" % ", ".join(sorted(unknown)))
        return cls(**dict(mapping))
