"""State layer.

This package is the single source of truth for how the active roster,
inventory and store feeds are merged into one deterministic roster.
"""
