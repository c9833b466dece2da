"""State/store layer.

This package is the single source of truth for how the bulk snapshot and
live stream events are merged into one aggregate record per client
identifier.
"""
