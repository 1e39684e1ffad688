"""Minimal type lattice consumed by the optimizer.

Inference owns the real lattice; the optimizer only needs to ask a handful of
questions of the types it finds in the IR: is this concrete, is this a
subtype of that, what does a constant widen to, can a value of this type be
mutated, how many fields does it have. This module answers exactly those.

Lattice elements:
    Bottom         the empty type; a value of this type is never produced
    ANY            the top type
    DataType       a nominal type, optionally with named, typed fields
    TupleType      a tuple with positional parameter types
    UnionType      a union of two or more members
    TypeType       the type of a type object (``Type{T}``)
    Const          an extended lattice element wrapping a known value
"""

from dataclasses import dataclass, field
from typing import Any, Tuple


class BottomType(object):
    __slots__ = ()

    def __repr__(self):
        return "Union{}"


class AnyType(object):
    __slots__ = ()

    def __repr__(self):
        return "Any"


Bottom = BottomType()
ANY = AnyType()


@dataclass(frozen=True, eq=False)
class DataType:
    """A nominal type.

    Identity is by object; two declarations with the same name are distinct
    types, as in any nominal system.
    """
    name: str
    fieldtypes: Tuple[Any, ...] = ()
    fieldnames: Tuple[str, ...] = ()
    mutable: bool = False
    abstract: bool = False
    supertype: Any = None

    def __repr__(self):
        return self.name


@dataclass(frozen=True)
class TupleType:
    params: Tuple[Any, ...] = ()

    def __repr__(self):
        return "Tuple{%s}" % ", ".join(repr(p) for p in self.params)


@dataclass(frozen=True)
class UnionType:
    types: Tuple[Any, ...] = ()

    def __repr__(self):
        return "Union{%s}" % ", ".join(repr(t) for t in self.types)


@dataclass(frozen=True)
class TypeType:
    typ: Any

    def __repr__(self):
        return "Type{%r}" % (self.typ,)


@dataclass(frozen=True)
class Const:
    val: Any = field(compare=False)

    def __eq__(self, other):
        return isinstance(other, Const) and type(self.val) is type(other.val) and self.val == other.val

    def __hash__(self):
        try:
            return hash((type(self.val), self.val))
        except TypeError:
            return id(self.val)

    def __repr__(self):
        return "Const(%r)" % (self.val,)


Int = DataType("Int")
Float64 = DataType("Float64")
Bool = DataType("Bool")
Nothing = DataType("Nothing")
String = DataType("String")
Symbol = DataType("Symbol")
BuiltinType = DataType("Builtin")
IntrinsicType = DataType("IntrinsicFunction")
MethodInstanceType = DataType("MethodInstance")
Function = DataType("Function")

_pytypes = {
    bool: Bool,
    int: Int,
    float: Float64,
    str: String,
    type(None): Nothing,
}


def typeof_(value):
    """The lattice type of a runtime value."""
    from .builtins import Builtin, IntrinsicFunction
    from .method import Method, MethodInstance

    t = _pytypes.get(type(value))
    if t is not None:
        return t
    if isinstance(value, Builtin):
        return BuiltinType
    if isinstance(value, IntrinsicFunction):
        return IntrinsicType
    if isinstance(value, Method):
        return Function
    if isinstance(value, MethodInstance):
        return MethodInstanceType
    if isinstance(value, (DataType, TupleType, UnionType, TypeType)) or value is ANY or value is Bottom:
        return TypeType(value)
    if isinstance(value, tuple):
        return TupleType(tuple(typeof_(v) for v in value))
    return ANY


def widenconst(t):
    """Strip extended lattice information, leaving a plain type."""
    if isinstance(t, Const):
        return typeof_(t.val)
    return t


def isconcretetype(t):
    t = widenconst(t)
    if isinstance(t, DataType):
        return not t.abstract
    if isinstance(t, TupleType):
        return all(isconcretetype(p) for p in t.params)
    if isinstance(t, TypeType):
        return True
    return False


def issubtype(a, b):
    """The lattice order ``a ⊑ b``."""
    if a is Bottom or b is ANY:
        return True
    if isinstance(b, Const):
        return isinstance(a, Const) and a == b
    if isinstance(a, Const):
        return issubtype(widenconst(a), b)
    if a is ANY:
        return False
    if isinstance(a, UnionType):
        return all(issubtype(t, b) for t in a.types)
    if isinstance(b, UnionType):
        return any(issubtype(a, t) for t in b.types)
    if isinstance(a, TupleType) and isinstance(b, TupleType):
        return len(a.params) == len(b.params) and all(
            issubtype(x, y) for x, y in zip(a.params, b.params)
        )
    if isinstance(a, DataType) and isinstance(b, DataType):
        t = a
        while t is not None:
            if t is b:
                return True
            t = t.supertype
        return False
    return a == b


def tmerge(a, b):
    """Join two lattice elements."""
    if issubtype(a, b):
        return b
    if issubtype(b, a):
        return a
    a, b = widenconst(a), widenconst(b)
    if issubtype(a, b):
        return b
    if issubtype(b, a):
        return a
    members = []
    for t in (a, b):
        for m in t.types if isinstance(t, UnionType) else (t,):
            if m not in members:
                members.append(m)
    return UnionType(tuple(members))


def isknowntype(t):
    """A statically fully known type: Bottom, a constant or concrete."""
    return t is Bottom or isinstance(t, Const) or isconcretetype(t)


def singleton_type(t):
    """The unique value of ``t`` if there is one, else None."""
    if isinstance(t, Const):
        return t.val
    if isinstance(t, TypeType) and isconcretetype(t.typ):
        return t.typ
    return None


def instanceof_tfunc(t):
    """Given the type of a type object, return ``(T, isexact)``."""
    if isinstance(t, Const) and isinstance(t.val, (DataType, TupleType)):
        return t.val, True
    if isinstance(t, TypeType):
        return t.typ, isconcretetype(t.typ)
    return ANY, False


def isconstType(t):
    return isinstance(t, TypeType) or (
        isinstance(t, Const) and isinstance(t.val, (DataType, TupleType, UnionType))
    )


def isdispatchtuple(t):
    return isinstance(t, TupleType) and all(
        isconcretetype(p) or isinstance(p, TypeType) for p in t.params
    )


def fieldcount(t):
    """Number of fields of a concrete aggregate, or None if unknown."""
    t = widenconst(t)
    if isinstance(t, DataType) and not t.abstract:
        return len(t.fieldtypes)
    if isinstance(t, TupleType):
        return len(t.params)
    return None


def fieldtype(t, idx):
    """Declared type of field ``idx`` (0-based)."""
    t = widenconst(t)
    if isinstance(t, DataType):
        return t.fieldtypes[idx]
    if isinstance(t, TupleType):
        return t.params[idx]
    return ANY


def ismutabletype(t):
    t = widenconst(t)
    return isinstance(t, DataType) and t.mutable


def is_mutation_free_argtype(t):
    """True when no value of ``t`` can reach mutable memory."""
    t = widenconst(t)
    if t is Bottom:
        return True
    if isinstance(t, TypeType):
        return True
    if isinstance(t, DataType):
        if t.abstract or t.mutable:
            return False
        return all(is_mutation_free_argtype(ft) for ft in t.fieldtypes)
    if isinstance(t, TupleType):
        return all(is_mutation_free_argtype(p) for p in t.params)
    return False


def istupletype(t):
    """``t ⊑ Tuple``: every value of ``t`` is a tuple."""
    t = widenconst(t)
    if t is Bottom or isinstance(t, TupleType):
        return True
    if isinstance(t, UnionType):
        return all(istupletype(m) for m in t.types)
    return False
