"""
Record Store contract.

Responsibility:
    Defines the document-store interface the reminder services consume:
    per-collection plain dict documents addressed by string id, predicate
    queries, whole-document put, partial update, and change subscription.

Guarantees (all implementations):
    - Returned documents are copies; mutating them never changes the store.
    - Every returned document carries its id under the ``"id"`` key.
    - ``update`` on a missing document raises RecordNotFoundError.
    - Single-document writes are atomic.  Nothing spans documents.

Non-goals:
    - No transactions across documents, no deletes (reminders and fees are
      an audit trail).
"""

from __future__ import annotations

import operator
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Literal, Protocol, Sequence, runtime_checkable

from dunning_kernel.logging_config import get_logger

logger = get_logger("store")

Document = dict[str, Any]

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda value, options: value in options,
}


@dataclass(frozen=True)
class Where:
    """A single field predicate, e.g. ``Where("status", "==", "scheduled")``."""

    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported operator '{self.op}'; use one of {sorted(_OPERATORS)}")
        if self.op == "in" and isinstance(self.value, (str, bytes)):
            raise ValueError("'in' expects a collection of values, not a string")

    def matches(self, document: Document) -> bool:
        # Documents without the field never match, mirroring hosted doc stores
        if self.field not in document:
            return False
        try:
            return bool(_OPERATORS[self.op](document[self.field], self.value))
        except TypeError:
            return False


def matches_all(document: Document, predicates: Iterable[Where]) -> bool:
    return all(p.matches(document) for p in predicates)


def sort_documents(
    documents: list[Document], order_by: str | Sequence[str] | None,
) -> list[Document]:
    """Sort by one or more fields; a leading ``-`` sorts that field descending."""
    if not order_by:
        return documents
    keys = [order_by] if isinstance(order_by, str) else list(order_by)
    # Stable sort applied from the least significant key
    for key in reversed(keys):
        descending = key.startswith("-")
        name = key.lstrip("-")
        documents.sort(
            key=lambda d: (d.get(name) is not None, d.get(name)),
            reverse=descending,
        )
    return documents


@dataclass(frozen=True)
class RecordChange:
    """Notification delivered to subscribers."""

    collection: str
    record_id: str
    kind: Literal["added", "modified"]
    document: Document


ChangeCallback = Callable[[RecordChange], None]
Unsubscribe = Callable[[], None]


@runtime_checkable
class RecordStore(Protocol):
    """Document store interface consumed by the reminder services."""

    def get(self, collection: str, record_id: str) -> Document | None: ...

    def query(
        self,
        collection: str,
        *predicates: Where,
        order_by: str | Sequence[str] | None = None,
        limit: int | None = None,
    ) -> list[Document]: ...

    def put(self, collection: str, record_id: str, document: Document) -> None: ...

    def add(self, collection: str, document: Document) -> str: ...

    def update(self, collection: str, record_id: str, changes: Document) -> Document: ...

    def subscribe(
        self,
        collection: str,
        predicates: Sequence[Where],
        callback: ChangeCallback,
    ) -> Unsubscribe: ...


@dataclass(eq=False)
class _Subscription:
    collection: str
    predicates: tuple[Where, ...]
    callback: ChangeCallback


class SubscriptionHub:
    """In-process fan-out of change notifications, shared by store backends."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: list[_Subscription] = []

    def add(
        self, collection: str, predicates: Sequence[Where], callback: ChangeCallback,
    ) -> Unsubscribe:
        sub = _Subscription(collection, tuple(predicates), callback)
        with self._lock:
            self._subscriptions.append(sub)

        def unsubscribe() -> None:
            with self._lock:
                if sub in self._subscriptions:
                    self._subscriptions.remove(sub)

        return unsubscribe

    def publish(
        self,
        collection: str,
        record_id: str,
        kind: Literal["added", "modified"],
        document: Document,
    ) -> None:
        with self._lock:
            targets = [
                s for s in self._subscriptions
                if s.collection == collection and matches_all(document, s.predicates)
            ]
        for sub in targets:
            change = RecordChange(collection, record_id, kind, dict(document))
            try:
                sub.callback(change)
            except Exception:
                # A faulty listener must not fail the writer
                logger.exception(
                    "subscriber_callback_failed",
                    extra={"collection": collection, "record_id": record_id},
                )
