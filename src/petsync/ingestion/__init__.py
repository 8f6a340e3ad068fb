"""Ingestion layer.

This package contains helpers that turn raw feed snapshots (active roster,
inventory, store, ability triggers) into normalized domain objects.
"""

__all__: list[str] = []
