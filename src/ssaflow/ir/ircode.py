"""
Instruction streams, the SSA ``IRCode`` container and the slot-based
``CodeInfo`` it is built from.
"""

from dataclasses import dataclass, field
from typing import Any, List

from .cfg import block_for_inst
from .flags import IR_FLAG_NULL, StmtFlag
from .nodes import (
    UNDEF,
    Expr,
    GlobalRef,
    GotoIfNot,
    PhiNode,
    PiNode,
    ReturnNode,
    SSAValue,
    is_meta_expr_head,
    valueTypes,
)


@dataclass(frozen=True)
class LineInfoNode:
    file: str
    line: int
    method: Any = None
    inlined_at: int = 0


@dataclass(frozen=True)
class VarState:
    typ: Any
    undef: bool = False


class NoCallInfo(object):
    __slots__ = ()

    def __repr__(self):
        return "NoCallInfo()"


NO_CALL_INFO = NoCallInfo()


class Instruction(object):
    """A view onto one row of an ``InstructionStream``."""

    __slots__ = "data", "idx"

    def __init__(self, data, idx):
        self.data = data
        self.idx = idx

    @property
    def stmt(self):
        return self.data.stmt[self.idx]

    @stmt.setter
    def stmt(self, value):
        self.data.stmt[self.idx] = value

    @property
    def type(self):
        return self.data.type[self.idx]

    @type.setter
    def type(self, value):
        self.data.type[self.idx] = value

    @property
    def info(self):
        return self.data.info[self.idx]

    @info.setter
    def info(self, value):
        self.data.info[self.idx] = value

    @property
    def line(self):
        return self.data.line[self.idx]

    @line.setter
    def line(self, value):
        self.data.line[self.idx] = value

    @property
    def flag(self):
        return self.data.flag[self.idx]

    @flag.setter
    def flag(self, value):
        self.data.flag[self.idx] = value

    def __repr__(self):
        return "Instruction(%d, %r::%r)" % (self.idx, self.stmt, self.type)


class InstructionStream(object):
    """Parallel per-statement columns.

    Attributes:
        stmt: Statements.
        type: Inferred result type of each statement.
        info: Call-site information from inference.
        line: Index into the line table (0 = no location).
        flag: ``StmtFlag`` bits.
    """

    __slots__ = "stmt", "type", "info", "line", "flag"

    def __init__(self, stmt, type=None, info=None, line=None, flag=None):
        n = len(stmt)
        self.stmt = stmt
        self.type = type if type is not None else [None] * n
        self.info = info if info is not None else [NO_CALL_INFO] * n
        self.line = line if line is not None else [0] * n
        self.flag = flag if flag is not None else [IR_FLAG_NULL] * n

    def __len__(self):
        return len(self.stmt)

    def __getitem__(self, idx):
        return Instruction(self, idx)

    def __iter__(self):
        for idx in range(len(self.stmt)):
            yield Instruction(self, idx)

    def append(self, stmt, type, info=NO_CALL_INFO, line=0, flag=IR_FLAG_NULL):
        self.stmt.append(stmt)
        self.type.append(type)
        self.info.append(info)
        self.line.append(line)
        self.flag.append(StmtFlag(flag))
        return len(self.stmt) - 1

    def insert(self, idx, stmt, type, info=NO_CALL_INFO, line=0, flag=IR_FLAG_NULL):
        self.stmt.insert(idx, stmt)
        self.type.insert(idx, type)
        self.info.insert(idx, info)
        self.line.insert(idx, line)
        self.flag.insert(idx, StmtFlag(flag))

    def copy(self):
        return InstructionStream(
            list(self.stmt), list(self.type), list(self.info), list(self.line), list(self.flag)
        )


class IRCode(object):
    """A function body in SSA form.

    Attributes:
        stmts: The instruction stream.
        cfg: Control flow graph; branch labels are block indices.
        linetable: ``LineInfoNode`` entries referenced by ``stmts.line``.
        argtypes: Types of the arguments (before SSA conversion: the slots).
        meta: ``meta`` expressions collected from the body.
        sptypes: ``VarState`` of each static parameter.
    """

    def __init__(self, stmts, cfg, linetable=None, argtypes=None, meta=None, sptypes=None):
        self.stmts = stmts
        self.cfg = cfg
        self.linetable = linetable if linetable is not None else []
        self.argtypes = argtypes if argtypes is not None else []
        self.meta = meta if meta is not None else []
        self.sptypes = sptypes if sptypes is not None else []

    def __getitem__(self, value):
        if isinstance(value, SSAValue):
            return self.stmts[value.id]
        raise TypeError("IRCode is indexed by SSAValue, not %r" % (value,))

    def __len__(self):
        return len(self.stmts)

    def block_for_inst(self, idx):
        return block_for_inst(self.cfg, idx)

    def copy(self):
        return IRCode(
            self.stmts.copy(),
            self.cfg.copy(),
            list(self.linetable),
            list(self.argtypes),
            list(self.meta),
            list(self.sptypes),
        )

    def __repr__(self):
        from .dump import format_ir

        return format_ir(self)


@dataclass(eq=False)
class CodeInfo:
    """A slot-based, type-annotated function body.

    Branch labels are statement indices. ``inlining`` is 0 when nothing was
    declared, 1 for a declared inline and 2 for a declared noinline.
    """
    code: List[Any]
    ssavaluetypes: List[Any] = None
    ssaflags: List[StmtFlag] = None
    codelocs: List[int] = None
    linetable: List[LineInfoNode] = field(default_factory=list)
    slotnames: List[str] = field(default_factory=list)
    slotflags: List[int] = field(default_factory=list)
    slottypes: List[Any] = None
    rettype: Any = None
    inlining: int = 0
    inlining_cost: int = 0xFFFF
    inferred: bool = False
    propagate_inbounds: bool = False

    def __post_init__(self):
        from .types import ANY

        n = len(self.code)
        if self.ssavaluetypes is None:
            self.ssavaluetypes = [ANY] * n
        if self.ssaflags is None:
            self.ssaflags = [IR_FLAG_NULL] * n
        if self.codelocs is None:
            self.codelocs = [0] * n
        if self.slottypes is None:
            self.slottypes = [ANY] * len(self.slotflags)
        if self.rettype is None:
            self.rettype = ANY


def operands(stmt):
    """The values a statement reads, in operand order."""
    if isinstance(stmt, Expr):
        if stmt.head == "=":
            rhs = stmt.args[1]
            return operands(rhs) if isinstance(rhs, Expr) else [rhs]
        if stmt.head == "enter" or is_meta_expr_head(stmt.head):
            return []
        return list(stmt.args)
    if isinstance(stmt, GotoIfNot):
        return [stmt.cond]
    if isinstance(stmt, ReturnNode):
        return [stmt.val] if stmt.has_val else []
    if isinstance(stmt, PiNode):
        return [stmt.val]
    if isinstance(stmt, PhiNode):
        return [v for v in stmt.values if v is not UNDEF]
    if isinstance(stmt, valueTypes) or isinstance(stmt, GlobalRef):
        return [stmt]
    return []


def map_operands(stmt, fn):
    """Replace every operand ``x`` of ``stmt`` by ``fn(x)``.

    Mutable nodes are updated in place; the (possibly new) statement is
    returned and must be stored back by the caller.
    """
    if isinstance(stmt, Expr):
        if stmt.head == "=":
            rhs = stmt.args[1]
            stmt.args[1] = map_operands(rhs, fn) if isinstance(rhs, Expr) else fn(rhs)
        elif not (stmt.head == "enter" or is_meta_expr_head(stmt.head)):
            stmt.args = [fn(a) for a in stmt.args]
        return stmt
    if isinstance(stmt, GotoIfNot):
        stmt.cond = fn(stmt.cond)
        return stmt
    if isinstance(stmt, ReturnNode):
        if stmt.has_val:
            stmt.val = fn(stmt.val)
        return stmt
    if isinstance(stmt, PiNode):
        stmt.val = fn(stmt.val)
        return stmt
    if isinstance(stmt, PhiNode):
        stmt.values = [v if v is UNDEF else fn(v) for v in stmt.values]
        return stmt
    if isinstance(stmt, valueTypes) or isinstance(stmt, GlobalRef):
        return fn(stmt)
    return stmt
