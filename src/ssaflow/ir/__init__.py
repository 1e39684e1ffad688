"""
Intermediate representation of function bodies.

- Values and statement nodes (nodes.py)
- Statement and slot flags (flags.py)
- Basic blocks and the CFG (cfg.py)
- Instruction streams, ``IRCode`` and ``CodeInfo`` (ircode.py)
- The minimal type lattice (types.py) and effect summaries (effects.py)
- Builtins, intrinsics and methods (builtins.py, method.py)
- Debug printing and verification (dump.py, verify.py)
"""
