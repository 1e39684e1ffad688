"""
Three-valued logic for facts that may still be undecided.

The refinement engine tracks properties that start out undetermined and are
later settled one way or the other (for example whether a body is
effect-free provided only argument memory is touched). ``TVLMaybe`` is the
undecided state; ``TVLTrue`` and ``TVLFalse`` are settled.

TVL values refuse implicit conversion to ``bool`` so an undecided fact cannot
be mistaken for a settled one. Compare against the singletons with ``is``.
"""

__all__ = ("TVLType", "TVLTrue", "TVLFalse", "TVLMaybe")


class TVLType(object):
    __slots__ = ()

    def __bool__(self):
        raise TypeError("%r cannot be directly converted a boolean value." % self)


class TVLTrueType(TVLType):
    __slots__ = ()

    def __repr__(self):
        return "TVLTrue"


class TVLFalseType(TVLType):
    __slots__ = ()

    def __repr__(self):
        return "TVLFalse"


class TVLMaybeType(TVLType):
    __slots__ = ()

    def __repr__(self):
        return "TVLMaybe"


TVLTrue = TVLTrueType()
TVLFalse = TVLFalseType()
TVLMaybe = TVLMaybeType()
