"""Analyses over function bodies.

This package contains the analyses the optimizer runs on slot-based and SSA
bodies: control flow utilities (cfg/), def-use information, escape facts
and the post-optimization effect refinement.
"""
