"""Persistence adapter for entity and join-table rows."""

from metaforge.data.adapter import PersistenceAdapter

__all__ = ["PersistenceAdapter"]
