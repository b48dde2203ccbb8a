"""In-memory RecordStore used by tests and single-process tooling."""

from __future__ import annotations

import copy
import threading
from typing import Sequence
from uuid import uuid4

from dunning_kernel.exceptions import RecordNotFoundError
from dunning_kernel.store.base import (
    ChangeCallback,
    Document,
    SubscriptionHub,
    Unsubscribe,
    Where,
    matches_all,
    sort_documents,
)


class InMemoryRecordStore:
    """
    Dict-of-dicts record store.

    Documents are deep-copied on the way in and out so callers can never
    alias stored state.  A single lock makes each operation atomic.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Document]] = {}
        self._lock = threading.RLock()
        self._hub = SubscriptionHub()

    def get(self, collection: str, record_id: str) -> Document | None:
        with self._lock:
            doc = self._collections.get(collection, {}).get(record_id)
            return copy.deepcopy(doc) if doc is not None else None

    def query(
        self,
        collection: str,
        *predicates: Where,
        order_by: str | Sequence[str] | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        with self._lock:
            docs = [
                copy.deepcopy(doc)
                for doc in self._collections.get(collection, {}).values()
                if matches_all(doc, predicates)
            ]
        docs = sort_documents(docs, order_by)
        return docs[:limit] if limit is not None else docs

    def put(self, collection: str, record_id: str, document: Document) -> None:
        stored = copy.deepcopy(document)
        stored["id"] = record_id
        with self._lock:
            bucket = self._collections.setdefault(collection, {})
            kind = "modified" if record_id in bucket else "added"
            bucket[record_id] = stored
        self._hub.publish(collection, record_id, kind, copy.deepcopy(stored))

    def add(self, collection: str, document: Document) -> str:
        record_id = uuid4().hex
        self.put(collection, record_id, document)
        return record_id

    def update(self, collection: str, record_id: str, changes: Document) -> Document:
        with self._lock:
            bucket = self._collections.get(collection, {})
            if record_id not in bucket:
                raise RecordNotFoundError(collection, record_id)
            merged = {**bucket[record_id], **copy.deepcopy(changes), "id": record_id}
            bucket[record_id] = merged
            result = copy.deepcopy(merged)
        self._hub.publish(collection, record_id, "modified", copy.deepcopy(result))
        return result

    def subscribe(
        self,
        collection: str,
        predicates: Sequence[Where],
        callback: ChangeCallback,
    ) -> Unsubscribe:
        return self._hub.add(collection, predicates, callback)

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._collections.get(collection, {}))
