"""IR value identities and statement nodes.

Values:
    SSAValue     result of a statement, by statement index
    Argument     a function parameter, by position
    SlotNumber   a mutable local, only present before SSA construction
    NewSSAValue  a node created during a transformation, not yet placed
    GlobalRef    a module binding
    QuoteNode    a quoted literal

Any other Python object in operand position is a literal constant.

Statements:
    GotoNode, GotoIfNot, ReturnNode  terminators
    PhiNode                          per-edge merge at the top of a block
    PiNode                           a value narrowed to a type
    Expr                             everything else, keyed by ``head``
    None                             a no-op left behind by a deletion

Branch labels are statement indices inside a ``CodeInfo`` and block indices
inside an ``IRCode``.
"""

from dataclasses import dataclass, field
from typing import Any, List


class _Undef(object):
    """Marker for an absent value (unreachable return, undefined phi input)."""

    __slots__ = ()

    def __repr__(self):
        return "#undef"

    def __reduce__(self):
        return "UNDEF"


UNDEF = _Undef()


@dataclass(frozen=True)
class SSAValue:
    id: int

    def __repr__(self):
        return "%%%d" % self.id


@dataclass(frozen=True)
class NewSSAValue:
    id: int

    def __repr__(self):
        return "%%new%d" % self.id


@dataclass(frozen=True)
class Argument:
    n: int

    def __repr__(self):
        return "_%d" % self.n


@dataclass(frozen=True)
class SlotNumber:
    id: int

    def __repr__(self):
        return "slot%d" % self.id


@dataclass(frozen=True)
class GlobalRef:
    mod: Any
    name: str

    def __repr__(self):
        return "%s.%s" % (getattr(self.mod, "name", self.mod), self.name)


@dataclass(frozen=True)
class QuoteNode:
    value: Any

    def __repr__(self):
        return "quote(%r)" % (self.value,)


@dataclass
class GotoNode:
    label: int

    def __repr__(self):
        return "goto #%d" % self.label


@dataclass
class GotoIfNot:
    cond: Any
    dest: int

    def __repr__(self):
        return "goto #%d if not %r" % (self.dest, self.cond)


@dataclass
class ReturnNode:
    val: Any = UNDEF

    @property
    def has_val(self):
        return self.val is not UNDEF

    def __repr__(self):
        if self.has_val:
            return "return %r" % (self.val,)
        return "unreachable"


@dataclass
class PhiNode:
    edges: List[int] = field(default_factory=list)
    values: List[Any] = field(default_factory=list)

    def __repr__(self):
        parts = ["#%d => %r" % (e, v) for e, v in zip(self.edges, self.values)]
        return "φ (%s)" % ", ".join(parts)


@dataclass
class PiNode:
    val: Any
    typ: Any

    def __repr__(self):
        return "π (%r, %r)" % (self.val, self.typ)


@dataclass
class Expr:
    head: str
    args: List[Any] = field(default_factory=list)

    def __repr__(self):
        return "$(Expr(:%s, %s))" % (self.head, ", ".join(repr(a) for a in self.args))


# Expression heads that carry no runtime operands.
META_EXPR_HEADS = frozenset(("boundscheck", "meta", "loopinfo", "inbounds"))

terminatorTypes = (GotoNode, GotoIfNot, ReturnNode)

valueTypes = (SSAValue, NewSSAValue, Argument, SlotNumber)


def is_meta_expr_head(head):
    return head in META_EXPR_HEADS


def isexpr(stmt, head, n=None):
    """True when ``stmt`` is an ``Expr`` with the given head (and arity)."""
    if not isinstance(stmt, Expr):
        return False
    if isinstance(head, (tuple, frozenset, set)):
        if stmt.head not in head:
            return False
    elif stmt.head != head:
        return False
    return n is None or len(stmt.args) == n


def isterminator(stmt):
    return isinstance(stmt, terminatorTypes) or isexpr(stmt, "enter")


def is_valid_phiblock_stmt(stmt):
    return isinstance(stmt, PhiNode) or stmt is None


_nonliteralTypes = (
    Expr,
    GotoNode,
    GotoIfNot,
    ReturnNode,
    PhiNode,
    PiNode,
    GlobalRef,
    QuoteNode,
    SSAValue,
    NewSSAValue,
    Argument,
    SlotNumber,
)


def is_literal(x):
    """True for a constant appearing directly in operand position."""
    return x is not None and x is not UNDEF and not isinstance(x, _nonliteralTypes)
