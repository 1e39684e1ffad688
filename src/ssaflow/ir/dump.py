"""
Human readable rendering of SSA bodies.

Example output::

    0 ─ %0 = $(Expr(:call, getfield, _1, 0))::Int           [nothrow]
      │ %1 = return %0::Any
"""

from .flags import StmtFlag

_flagnames = (
    (StmtFlag.INBOUNDS, "inbounds"),
    (StmtFlag.INLINE, "inline"),
    (StmtFlag.NOINLINE, "noinline"),
    (StmtFlag.THROW_BLOCK, "throw_block"),
    (StmtFlag.CONSISTENT, "consistent"),
    (StmtFlag.EFFECT_FREE, "effect_free"),
    (StmtFlag.NOTHROW, "nothrow"),
    (StmtFlag.NOUB, "noub"),
    (StmtFlag.REFINED, "refined"),
    (StmtFlag.EFIIMO, "efiimo"),
    (StmtFlag.INACCESSIBLE_OR_ARGMEM, "inaccessible_or_argmem"),
)


def format_flags(flag):
    names = [name for bit, name in _flagnames if flag & bit]
    return "[%s]" % ", ".join(names) if names else ""


def format_stmt(ir, idx):
    stmt = ir.stmts.stmt[idx]
    text = "%%%d = %r::%r" % (idx, stmt, ir.stmts.type[idx])
    flags = format_flags(ir.stmts.flag[idx])
    if flags:
        text = "%-48s %s" % (text, flags)
    return text


def format_ir(ir):
    """Render ``ir`` one statement per line, grouped by block."""
    lines = []
    width = len(str(len(ir.cfg.blocks) - 1))
    for b, block in enumerate(ir.cfg.blocks):
        header = "%*d ─ " % (width, b)
        gutter = "%*s │ " % (width, "")
        if not len(block.stmts):
            lines.append(header + "(empty)")
        for i, idx in enumerate(block.stmts):
            lines.append((header if i == 0 else gutter) + format_stmt(ir, idx))
        if block.succs:
            lines.append(gutter + "→ %s" % ", ".join("#%d" % s for s in block.succs))
    return "\n".join(lines)
