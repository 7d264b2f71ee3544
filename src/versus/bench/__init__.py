"""Benchmark engine for versus.

Expands a scenario (environments x contexts x tasks) into
combinations, runs every measured iteration as its own external
process, and statistically compares environments for each
(task, context) pair.
"""
