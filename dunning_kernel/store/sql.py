"""
SQL-backed RecordStore (SQLAlchemy 2.0 ORM).

Contract:
    Documents live in one ``documents`` table keyed by (collection,
    document_id) with the body in a JSON column.  Each public call runs in
    its own transaction; ``update`` locks the row (FOR UPDATE on PostgreSQL)
    so a single-document read-modify-write is atomic.

Non-goals:
    - Predicates are evaluated in Python after the collection filter; the
      per-user collections this serves are small.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator, Sequence
from uuid import uuid4

from sqlalchemy import JSON, Index, String, UniqueConstraint, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapped, Session, mapped_column

from dunning_kernel.db.base import TimestampedBase
from dunning_kernel.db.engine import session_scope
from dunning_kernel.exceptions import RecordNotFoundError, RecordStoreError
from dunning_kernel.logging_config import get_logger
from dunning_kernel.store.base import (
    ChangeCallback,
    Document,
    SubscriptionHub,
    Unsubscribe,
    Where,
    matches_all,
    sort_documents,
)

logger = get_logger("store.sql")


class DocumentModel(TimestampedBase):
    """One stored document."""

    __tablename__ = "documents"

    __table_args__ = (
        UniqueConstraint("collection", "document_id", name="uq_documents_collection_id"),
        Index("ix_documents_collection", "collection"),
    )

    collection: Mapped[str] = mapped_column(String(100), nullable=False)
    document_id: Mapped[str] = mapped_column(String(100), nullable=False)
    data: Mapped[dict] = mapped_column(JSON, nullable=False)

    def to_document(self) -> Document:
        return {**self.data, "id": self.document_id}


class SqlRecordStore:
    """RecordStore over a SQLAlchemy session factory."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory
        self._hub = SubscriptionHub()

    def get(self, collection: str, record_id: str) -> Document | None:
        with self._scope("get", collection) as session:
            row = self._find(session, collection, record_id)
            return row.to_document() if row is not None else None

    def query(
        self,
        collection: str,
        *predicates: Where,
        order_by: str | Sequence[str] | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        with self._scope("query", collection) as session:
            rows = session.execute(
                select(DocumentModel).where(DocumentModel.collection == collection)
            ).scalars().all()
            docs = [row.to_document() for row in rows]
        docs = [d for d in docs if matches_all(d, predicates)]
        docs = sort_documents(docs, order_by)
        return docs[:limit] if limit is not None else docs

    def put(self, collection: str, record_id: str, document: Document) -> None:
        body = {k: v for k, v in document.items() if k != "id"}
        with self._scope("put", collection) as session:
            row = self._find(session, collection, record_id, lock=True)
            if row is None:
                kind = "added"
                session.add(
                    DocumentModel(collection=collection, document_id=record_id, data=body)
                )
            else:
                kind = "modified"
                row.data = body
        self._hub.publish(collection, record_id, kind, {**body, "id": record_id})

    def add(self, collection: str, document: Document) -> str:
        record_id = uuid4().hex
        self.put(collection, record_id, document)
        return record_id

    def update(self, collection: str, record_id: str, changes: Document) -> Document:
        with self._scope("update", collection) as session:
            row = self._find(session, collection, record_id, lock=True)
            if row is None:
                raise RecordNotFoundError(collection, record_id)
            # Assign a new dict so the JSON column is flagged dirty
            row.data = {**row.data, **{k: v for k, v in changes.items() if k != "id"}}
            result = row.to_document()
        self._hub.publish(collection, record_id, "modified", result)
        return dict(result)

    def subscribe(
        self,
        collection: str,
        predicates: Sequence[Where],
        callback: ChangeCallback,
    ) -> Unsubscribe:
        return self._hub.add(collection, predicates, callback)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _find(
        session: Session, collection: str, record_id: str, lock: bool = False,
    ) -> DocumentModel | None:
        stmt = select(DocumentModel).where(
            DocumentModel.collection == collection,
            DocumentModel.document_id == record_id,
        )
        if lock:
            stmt = stmt.with_for_update()
        return session.execute(stmt).scalar_one_or_none()

    @contextmanager
    def _scope(self, operation: str, collection: str) -> Iterator[Session]:
        """session_scope that converts driver errors into RecordStoreError."""
        try:
            with session_scope(self._session_factory) as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error(
                "record_store_operation_failed",
                extra={"operation": operation, "collection": collection},
            )
            raise RecordStoreError(operation, collection, str(exc)) from exc
