"""State/store layer.

This package holds the reactive hierarchical store that every other part
of pyboot (and collaborating application code) reads and writes through
dot-separated paths.
"""
