"""
Builtin functions and intrinsics known to the optimizer.

Each builtin is a singleton object; calls name it either directly or through
a ``GlobalRef`` into the ``Core`` module. Intrinsics are the primitive
operations lowered straight to machine instructions.
"""

from .method import Module


class Builtin(object):
    __slots__ = ("name",)

    def __init__(self, name):
        self.name = name

    def __repr__(self):
        return self.name

    def __reduce__(self):
        return (lookup_builtin, (self.name,))


class IntrinsicFunction(object):
    __slots__ = ("name", "nargs")

    def __init__(self, name, nargs=2):
        self.name = name
        self.nargs = nargs

    def __repr__(self):
        return "Intrinsics.%s" % self.name

    def __reduce__(self):
        return (lookup_builtin, (self.name,))


_registry = {}


def _builtin(name):
    f = Builtin(name)
    _registry[name] = f
    return f


def _intrinsic(name, nargs=2):
    f = IntrinsicFunction(name, nargs)
    _registry[name] = f
    return f


def lookup_builtin(name):
    return _registry[name]


getfield = _builtin("getfield")
setfield_ = _builtin("setfield!")
tuple_ = _builtin("tuple")
getglobal = _builtin("getglobal")
setglobal_ = _builtin("setglobal!")
arrayref = _builtin("arrayref")
const_arrayref = _builtin("const_arrayref")
arrayset = _builtin("arrayset")
arraysize = _builtin("arraysize")
typeassert = _builtin("typeassert")
isa_ = _builtin("isa")
egal = _builtin("===")
typeof_ = _builtin("typeof")
invoke = _builtin("invoke")
apply_iterate = _builtin("_apply_iterate")
UnionAll = _builtin("UnionAll")
ifelse = _builtin("ifelse")
nfields = _builtin("nfields")
fieldtype = _builtin("fieldtype")
apply_type = _builtin("apply_type")
sizeof = _builtin("sizeof")
issubtype = _builtin("<:")
isdefined = _builtin("isdefined")
throw = _builtin("throw")
svec = _builtin("svec")

add_int = _intrinsic("add_int")
sub_int = _intrinsic("sub_int")
mul_int = _intrinsic("mul_int")
sdiv_int = _intrinsic("sdiv_int")
neg_int = _intrinsic("neg_int", 1)
slt_int = _intrinsic("slt_int")
sle_int = _intrinsic("sle_int")
eq_int = _intrinsic("eq_int")
and_int = _intrinsic("and_int")
or_int = _intrinsic("or_int")
not_int = _intrinsic("not_int", 1)
add_float = _intrinsic("add_float")
mul_float = _intrinsic("mul_float")
div_float = _intrinsic("div_float")
sqrt_llvm = _intrinsic("sqrt_llvm", 1)
bitcast = _intrinsic("bitcast")
pointerref = _intrinsic("pointerref", 3)
pointerset = _intrinsic("pointerset", 4)
cglobal = _intrinsic("cglobal")


# Builtins resolve through ``GlobalRef(Core, name)``.
Core = Module("Core", {name: f for name, f in _registry.items()}, frozenset(_registry))
