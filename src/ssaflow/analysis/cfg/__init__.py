"""
Control flow: renumbering, dominators, SSA construction and compaction.
"""
