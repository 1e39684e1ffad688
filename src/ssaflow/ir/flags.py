"""
Per-statement and per-slot flag bits.

Statement flags record properties proven about a single statement, by
inference or by an optimization pass. Two of them are transitional:
``EFIIMO`` means "effect-free if it only touches inaccessible memory" and
``INACCESSIBLE_OR_ARGMEM`` means "touches only inaccessible or argument
memory". A statement carrying both needs escape analysis before its effect
freedom can be trusted.
"""

import enum


class StmtFlag(enum.IntFlag):
    INBOUNDS = 1 << 0
    INLINE = 1 << 1
    NOINLINE = 1 << 2
    THROW_BLOCK = 1 << 3
    EFFECT_FREE = 1 << 4
    NOTHROW = 1 << 5
    CONSISTENT = 1 << 6
    REFINED = 1 << 7
    NOUB = 1 << 8
    EFIIMO = 1 << 9
    INACCESSIBLE_OR_ARGMEM = 1 << 10


IR_FLAG_NULL = StmtFlag(0)

IR_FLAGS_EFFECTS = (
    StmtFlag.CONSISTENT | StmtFlag.EFFECT_FREE | StmtFlag.NOTHROW | StmtFlag.NOUB
)

IR_FLAGS_NEEDS_EA_REFINEMENT = StmtFlag.EFIIMO | StmtFlag.INACCESSIBLE_OR_ARGMEM


class SlotFlag(enum.IntFlag):
    STATICUNDEF = 1
    ASSIGNED = 2
    ASSIGNEDONCE = 16
    USEDUNDEF = 32


def has_flag(flag, test):
    return (flag & test) == test


def is_stmt_inline(flag):
    return has_flag(flag, StmtFlag.INLINE)


def is_stmt_noinline(flag):
    return has_flag(flag, StmtFlag.NOINLINE)


def is_stmt_throw_block(flag):
    return has_flag(flag, StmtFlag.THROW_BLOCK)
