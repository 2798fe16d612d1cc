"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run against Firestore in production
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally small - we're not building an ORM.
It mirrors what a hosted document database offers: point reads and
writes, equality queries, and an optimistic multi-document transaction.

TRANSACTION CONTRACT:
- All reads of a transaction happen before any of its writes.
- Writes are buffered and committed together or not at all.
- If any document read by the transaction changed before commit, the
  store aborts and re-runs the transaction function from scratch.
  Transaction functions must therefore be free of side effects other
  than the writes they stage.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, Field

from billbook.models.audit import AuditEvent


T = TypeVar("T")


class StoredDocument(BaseModel):
    """A document as returned by the store."""

    id: str
    data: dict[str, Any] = Field(default_factory=dict)


class Transaction(ABC):
    """
    One attempt of an atomic read-then-write unit.

    Reads are awaited; writes are staged synchronously and applied on commit.
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        """Read a document, or None if it does not exist."""
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: dict[str, Any],
    ) -> list[StoredDocument]:
        """
        Read every document whose fields equal the given values.

        Dotted keys address nested fields (e.g. "client.id").
        """
        pass

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Create or overwrite a document."""
        pass

    @abstractmethod
    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Merge top-level fields into an existing document."""
        pass

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document (no-op if absent)."""
        pass


class DocumentStore(ABC):
    """
    Abstract interface for the document database.

    Any storage implementation (Firestore, in-memory, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        """
        Retrieve a document by its ID.

        Returns:
            The document if found, None otherwise
        """
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: dict[str, Any],
    ) -> list[StoredDocument]:
        """
        List documents matching all equality filters.

        Raises:
            StorageError: If the backend call fails
        """
        pass

    @abstractmethod
    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Create or overwrite a document."""
        pass

    @abstractmethod
    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """
        Merge fields into an existing document.

        Raises:
            NotFoundError: If the document doesn't exist
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> bool:
        """
        Delete a document by ID.

        Returns:
            True if a document was deleted
        """
        pass

    @abstractmethod
    async def run_transaction(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
    ) -> T:
        """
        Run fn inside an atomic transaction, retrying on conflict.

        Exceptions raised by fn abort the transaction (nothing is written)
        and propagate unchanged.

        Raises:
            TransactionConflictError: If retries are exhausted
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class TransactionConflictError(StorageError):
    """A document read by a transaction changed before it could commit."""
    pass


class StoreConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
