"""
Console output and timing for optimization phases.

Each optimization pass runs inside a named console scope. Scopes nest, time
themselves, and record their elapsed time under their path so that a caller
can inspect where an optimization run spent its time. Begin/end lines are
only echoed in verbose mode.
"""

import sys
import time


def elapsedTime(t):
    """Format a duration in seconds as a short human readable string."""
    if t < 1e-3:
        return "%.1f us" % (t * 1e6)
    elif t < 1.0:
        return "%.1f ms" % (t * 1e3)
    return "%.2f s" % t


class Scope(object):
    """A node in the tree of timed scopes.

    Attributes:
        parent: Enclosing scope, or None for the root.
        name: Name of this scope.
        children: Scopes opened while this one was current.
    """

    def __init__(self, parent, name):
        self.parent = parent
        self.name = name
        self.children = []

    def begin(self):
        self._start = time.perf_counter()

    def end(self):
        self._end = time.perf_counter()

    @property
    def elapsed(self):
        return self._end - self._start

    def path(self):
        if self.parent is None:
            return ()
        else:
            return self.parent.path() + (self.name,)

    def child(self, name):
        scope = Scope(self, name)
        self.children.append(scope)
        return scope


class ConsoleScopeManager(object):
    __slots__ = "console", "name"

    def __init__(self, console, name):
        self.console = console
        self.name = name

    def __enter__(self):
        self.console.begin(self.name)

    def __exit__(self, type, value, tb):
        self.console.end()


class Console(object):
    """Hierarchical, timed console.

    Attributes:
        out: Output stream (default: sys.stdout).
        root: Root scope of the hierarchy.
        current: Innermost open scope.
        verbose: Echo begin/end lines when set.
        timings: Accumulated seconds per scope path.
    """

    def __init__(self, out=None, verbose=False):
        if out is None:
            out = sys.stdout
        self.out = out

        self.root = Scope(None, "root")
        self.current = self.root

        self.verbose = verbose
        self.timings = {}

    def path(self):
        return "[ %s ]" % " | ".join(self.current.path())

    def begin(self, name):
        scope = self.current.child(name)
        scope.begin()
        self.current = scope

        self.verbose_output("begin %s" % self.path(), 0)

    def end(self):
        scope = self.current
        scope.end()

        key = scope.path()
        self.timings[key] = self.timings.get(key, 0.0) + scope.elapsed

        self.verbose_output(
            "end   %s %s" % (self.path(), elapsedTime(scope.elapsed)), 0
        )
        self.current = scope.parent

    def scope(self, name):
        """Context manager timing the enclosed block under ``name``.

        Example:
            with console.scope("slot2reg"):
                ...
        """
        return ConsoleScopeManager(self, name)

    def output(self, s, tabs=1):
        if tabs:
            self.out.write("\t" * tabs)
        self.out.write(s)
        self.out.write("\n")

    def verbose_output(self, s, tabs=1):
        if self.verbose:
            self.output(s, tabs)
