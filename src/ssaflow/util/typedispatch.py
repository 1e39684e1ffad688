"""Type-based dispatch for IR visitors.

A ``TypeDispatcher`` subclass routes ``self(node, ...)`` to the method
registered for ``type(node)``. Handlers are registered with ``@dispatch`` and a
fallback with ``@defaultdispatch``. Lookups walk the MRO once per concrete type
and are cached in the class table afterwards.
"""

__all__ = [
    "TypeDispatcher",
    "defaultdispatch",
    "dispatch",
    "TypeDispatchError",
    "TypeDispatchDeclarationError",
]

import inspect


class TypeDispatchError(Exception):
    """Raised when a dispatcher is called on a type it cannot handle."""
    pass


class TypeDispatchDeclarationError(Exception):
    """Raised at class creation when dispatch handlers are declared badly."""
    pass


def flattenTypesInto(l, result):
    for child in l:
        if isinstance(child, (list, tuple)):
            flattenTypesInto(child, result)
        else:
            if not isinstance(child, type):
                raise TypeDispatchDeclarationError(
                    "Expected a type, got %r instead." % child
                )
            result.append(child)


def dispatch(*types):
    """Register the decorated method for every type in ``types``.

    Nested lists and tuples of types are flattened, so a module-level tuple
    such as ``controlFlowTypes`` can be passed directly.
    """

    def dispatchF(f):
        def dispatchWrap(*args, **kargs):
            return f(*args, **kargs)

        dispatchWrap.__original__ = f
        dispatchWrap.__dispatch__ = []
        flattenTypesInto(types, dispatchWrap.__dispatch__)
        return dispatchWrap

    return dispatchF


def defaultdispatch(f):
    """Register the decorated method as the fallback handler."""

    def defaultWrap(*args, **kargs):
        return f(*args, **kargs)

    defaultWrap.__original__ = f
    defaultWrap.__dispatch__ = (None,)
    return defaultWrap


def dispatch__call__(self, p, *args):
    t = type(p)
    table = self.__typeDispatchTable__

    func = table.get(t)

    if func is None:
        for supercls in t.mro():
            func = table.get(supercls)
            if func is not None:
                break

        if func is None:
            func = table.get(None)

        # Cache the resolution for the concrete type.
        table[t] = func

    return func(self, p, *args)


def exceptionDefault(self, node, *args):
    raise TypeDispatchError("%r cannot handle %r\n%r" % (type(self), type(node), node))


def inlineAncestor(t, lut):
    if hasattr(t, "__typeDispatchTable__"):
        for k, v in t.__typeDispatchTable__.items():
            if k not in lut:
                lut[k] = v


class typedispatcher(type):
    """Metaclass building ``__typeDispatchTable__`` from decorated methods."""

    def __new__(self, name, bases, d):
        lut = {}
        restore = {}

        for k, v in d.items():
            if hasattr(v, "__dispatch__") and hasattr(v, "__original__"):
                original = v.__original__

                for t in v.__dispatch__:
                    if t in lut:
                        raise TypeDispatchDeclarationError(
                            "%s has declared with multiple handlers for type %s"
                            % (name, getattr(t, "__name__", t))
                        )
                    lut[t] = original

                restore[k] = original

        d.update(restore)

        # Subclasses may override handlers inherited from their bases.
        for base in bases:
            for t in inspect.getmro(base):
                inlineAncestor(t, lut)

        if None not in lut:
            raise TypeDispatchDeclarationError("%s has no default dispatch" % (name,))

        d["__typeDispatchTable__"] = lut

        return type.__new__(self, name, bases, d)


class TypeDispatcher(object, metaclass=typedispatcher):
    """Base class for visitors that dispatch on the type of their argument.

    Example:
        >>> class Kind(TypeDispatcher):
        ...     @dispatch(int)
        ...     def visitInt(self, node):
        ...         return "int"
        ...     @defaultdispatch
        ...     def visitOther(self, node):
        ...         return "other"
        >>> Kind()(3), Kind()("x")
        ('int', 'other')
    """
    __call__ = dispatch__call__
    exceptionDefault = defaultdispatch(exceptionDefault)
