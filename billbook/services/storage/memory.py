"""
In-Memory Storage Implementation

Used by the test suite and for local runs without cloud credentials.

The document store reproduces the transaction semantics of a hosted
document database rather than just locking:
- every document carries a version that changes on each write
- a transaction remembers the version of every document (and the result
  set of every query) it read
- commit re-checks those versions; any difference aborts the attempt
  with TransactionConflictError and the transaction function is re-run

Commit itself contains no await, so it is atomic with respect to other
asyncio tasks.
"""

import copy
import itertools
from typing import Any, Awaitable, Callable, Optional, TypeVar
from uuid import UUID

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from billbook.models.audit import AuditEvent
from billbook.services.storage.interface import (
    AuditStorageInterface,
    DocumentStore,
    NotFoundError,
    StorageError,
    StoredDocument,
    Transaction,
    TransactionConflictError,
)


T = TypeVar("T")

_MISSING = object()


def field_value(data: dict[str, Any], path: str) -> Any:
    """Resolve a dotted field path, returning _MISSING when absent."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def matches(data: dict[str, Any], filters: dict[str, Any]) -> bool:
    return all(field_value(data, path) == value for path, value in filters.items())


class _Entry:
    __slots__ = ("version", "data")

    def __init__(self, version: int, data: dict[str, Any]):
        self.version = version
        self.data = data


class InMemoryTransaction(Transaction):
    """A single attempt against an InMemoryDocumentStore."""

    def __init__(self, store: "InMemoryDocumentStore"):
        self._store = store
        self.reads: dict[tuple[str, str], Optional[int]] = {}
        self.queries: list[tuple[str, dict[str, Any], frozenset[str]]] = []
        self.writes: list[tuple[str, str, str, Optional[dict[str, Any]]]] = []

    def _ensure_read_phase(self) -> None:
        if self.writes:
            raise StorageError(
                "Transactions require all reads to be executed before all writes."
            )

    async def get(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        self._ensure_read_phase()
        entry = self._store._entry(collection, doc_id)
        self.reads[(collection, doc_id)] = entry.version if entry else None
        if entry is None:
            return None
        return StoredDocument(id=doc_id, data=copy.deepcopy(entry.data))

    async def query(
        self,
        collection: str,
        filters: dict[str, Any],
    ) -> list[StoredDocument]:
        self._ensure_read_phase()
        found = self._store._match(collection, filters)
        for doc_id, entry in found:
            self.reads[(collection, doc_id)] = entry.version
        self.queries.append(
            (collection, dict(filters), frozenset(doc_id for doc_id, _ in found))
        )
        return [
            StoredDocument(id=doc_id, data=copy.deepcopy(entry.data))
            for doc_id, entry in found
        ]

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self.writes.append(("set", collection, doc_id, copy.deepcopy(data)))

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self.writes.append(("update", collection, doc_id, copy.deepcopy(data)))

    def delete(self, collection: str, doc_id: str) -> None:
        self.writes.append(("delete", collection, doc_id, None))


class InMemoryDocumentStore(DocumentStore):
    """
    Dictionary-backed document store with optimistic transactions.

    Documents are deep-copied on the way in and out, so callers can never
    mutate stored state except through writes.
    """

    def __init__(self, max_attempts: int = 5):
        self._collections: dict[str, dict[str, _Entry]] = {}
        self._versions = itertools.count(1)
        self._max_attempts = max_attempts
        self.commit_count = 0
        self.conflict_count = 0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _entry(self, collection: str, doc_id: str) -> Optional[_Entry]:
        return self._collections.get(collection, {}).get(doc_id)

    def _match(
        self,
        collection: str,
        filters: dict[str, Any],
    ) -> list[tuple[str, _Entry]]:
        return [
            (doc_id, entry)
            for doc_id, entry in self._collections.get(collection, {}).items()
            if matches(entry.data, filters)
        ]

    def _commit(self, tx: InMemoryTransaction) -> None:
        # Validate the snapshot the transaction was computed from
        for (collection, doc_id), version in tx.reads.items():
            entry = self._entry(collection, doc_id)
            current = entry.version if entry else None
            if current != version:
                self.conflict_count += 1
                raise TransactionConflictError(
                    f"{collection}/{doc_id} changed during transaction"
                )
        for collection, filters, ids in tx.queries:
            current_ids = frozenset(doc_id for doc_id, _ in self._match(collection, filters))
            if current_ids != ids:
                self.conflict_count += 1
                raise TransactionConflictError(
                    f"Result of query on {collection} changed during transaction"
                )

        # Stage every write before touching stored state
        staged: dict[tuple[str, str], Any] = {}
        for op, collection, doc_id, data in tx.writes:
            key = (collection, doc_id)
            if key in staged:
                current = staged[key]
            else:
                entry = self._entry(collection, doc_id)
                current = copy.deepcopy(entry.data) if entry else _MISSING

            if op == "set":
                staged[key] = data
            elif op == "update":
                if current is _MISSING:
                    raise NotFoundError(f"No document to update: {collection}/{doc_id}")
                staged[key] = {**current, **data}
            else:
                staged[key] = _MISSING

        for (collection, doc_id), data in staged.items():
            self._write(collection, doc_id, data)
        self.commit_count += 1

    def _write(self, collection: str, doc_id: str, data: Any) -> None:
        docs = self._collections.setdefault(collection, {})
        if data is _MISSING:
            docs.pop(doc_id, None)
        else:
            docs[doc_id] = _Entry(next(self._versions), data)

    # ------------------------------------------------------------------
    # DocumentStore
    # ------------------------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        entry = self._entry(collection, doc_id)
        if entry is None:
            return None
        return StoredDocument(id=doc_id, data=copy.deepcopy(entry.data))

    async def query(
        self,
        collection: str,
        filters: dict[str, Any],
    ) -> list[StoredDocument]:
        return [
            StoredDocument(id=doc_id, data=copy.deepcopy(entry.data))
            for doc_id, entry in self._match(collection, filters)
        ]

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._write(collection, doc_id, copy.deepcopy(data))

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        entry = self._entry(collection, doc_id)
        if entry is None:
            raise NotFoundError(f"No document to update: {collection}/{doc_id}")
        self._write(collection, doc_id, {**copy.deepcopy(entry.data), **copy.deepcopy(data)})

    async def delete(self, collection: str, doc_id: str) -> bool:
        if self._entry(collection, doc_id) is None:
            return False
        self._write(collection, doc_id, _MISSING)
        return True

    async def run_transaction(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
    ) -> T:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            retry=retry_if_exception_type(TransactionConflictError),
            reraise=True,
        ):
            with attempt:
                tx = InMemoryTransaction(self)
                result = await fn(tx)
                self._commit(tx)
        return result


class InMemoryAuditStorage(AuditStorageInterface):
    """Audit log kept in a list. Append-only."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]
