"""Puzzle providers.

The engine only depends on `PuzzleProvider`; concrete providers live here so tests
can swap in a scripted one.
"""
