"""
Record Store -- the document persistence seam.

``InMemoryRecordStore`` backs tests and tooling; ``SqlRecordStore`` (in
``dunning_kernel.store.sql``) persists to SQLite or PostgreSQL.
"""

from dunning_kernel.store.base import (
    Document,
    RecordChange,
    RecordStore,
    Where,
)
from dunning_kernel.store.memory import InMemoryRecordStore

__all__ = [
    "Document",
    "InMemoryRecordStore",
    "RecordChange",
    "RecordStore",
    "Where",
]
