"""
Utility modules shared by the optimizer.

- Type-based dispatch for IR visitors (typedispatch.py)
- Three-valued logic for undecided facts (tvl.py)
- Integer min-priority worklists (worklist.py)
- Dominator algorithms (graphalgorithim/)
- Timed console scopes (application/)
"""
