"""
Function-level effect summaries.

An ``Effects`` value describes what calling a function may do. The boolean
properties are plain flags; the others are small integers where ``ALWAYS_TRUE``
and ``ALWAYS_FALSE`` are the definite answers and the remaining values encode
a property that holds only under a side condition.
"""

from dataclasses import dataclass, replace

ALWAYS_TRUE = 0x00
ALWAYS_FALSE = 0x01

# consistent
CONSISTENT_IF_NOTRETURNED = 0x01 << 1
CONSISTENT_IF_INACCESSIBLEMEMONLY = 0x01 << 2

# effect_free
EFFECT_FREE_IF_INACCESSIBLEMEMONLY = 0x01 << 1

# inaccessiblememonly
INACCESSIBLEMEM_OR_ARGMEMONLY = 0x01 << 1

# noub
NOUB_IF_NOINBOUNDS = 0x01 << 1


@dataclass(frozen=True)
class Effects:
    consistent: int = ALWAYS_FALSE
    effect_free: int = ALWAYS_FALSE
    nothrow: bool = False
    terminates: bool = False
    notaskstate: bool = False
    inaccessiblememonly: int = ALWAYS_FALSE
    noub: int = ALWAYS_FALSE
    nonoverlayed: bool = True

    def replace(self, **kwargs):
        return replace(self, **kwargs)

    def __repr__(self):
        return "(%sc,%se,%sn,%st,%ss,%sm,%su)" % (
            _tv(self.consistent),
            _tv(self.effect_free),
            _tv(self.nothrow),
            _tv(self.terminates),
            _tv(self.notaskstate),
            _tv(self.inaccessiblememonly),
            _tv(self.noub),
        )


def _tv(v):
    if isinstance(v, bool):
        return "+" if v else "!"
    if v == ALWAYS_TRUE:
        return "+"
    if v == ALWAYS_FALSE:
        return "!"
    return "?"


EFFECTS_TOTAL = Effects(
    consistent=ALWAYS_TRUE,
    effect_free=ALWAYS_TRUE,
    nothrow=True,
    terminates=True,
    notaskstate=True,
    inaccessiblememonly=ALWAYS_TRUE,
    noub=ALWAYS_TRUE,
)

EFFECTS_THROWS = EFFECTS_TOTAL.replace(nothrow=False)

EFFECTS_UNKNOWN = Effects()


def is_consistent(effects):
    return effects.consistent == ALWAYS_TRUE


def is_effect_free(effects):
    return effects.effect_free == ALWAYS_TRUE


def is_nothrow(effects):
    return effects.nothrow


def is_terminates(effects):
    return effects.terminates


def is_noub(effects):
    return effects.noub == ALWAYS_TRUE


def is_removable_if_unused(effects):
    return is_effect_free(effects) and is_nothrow(effects) and is_terminates(effects)
