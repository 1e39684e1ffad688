"""
Graph algorithms used by control flow analysis.

- Immediate dominators over integer-labelled graphs (dominator.py)
"""
