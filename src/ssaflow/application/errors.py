"""
Error handling for the optimizer.

Failing to prove a property is never an error; it only leaves the
conservative answer in place. The exceptions here signal broken invariants
in the IR handed to a pass.
"""


class InternalError(Exception):
    """
    Exception raised for a broken IR invariant.

    Raised when a pass is handed IR that violates its contract, such as a
    structurally invalid CFG or a value kind that is not legal in that
    representation. It indicates a bug upstream and is never caught by the
    passes themselves.
    """
    pass


class IRVerificationError(InternalError):
    """
    Exception raised by the debug verifier.

    Only raised when verification is enabled (``debug_level == 2``).
    """
    pass

