"""Optimization passes and the inlining cost model.

- Statement effect classification (stmteffects.py)
- Inlining cost model (cost.py) and decisions (inlining.py)
- Scalar replacement of aggregates (sroa.py)
- Aggressive dead code elimination (dce.py)
"""
