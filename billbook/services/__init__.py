"""Services package."""

from billbook.services.storage import (
    AuditStorageInterface,
    DocumentStore,
    FirestoreDocumentStore,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    InMemoryAuditStorage,
    InMemoryDocumentStore,
    NotFoundError,
    StorageError,
    StoreConnectionError,
    TransactionConflictError,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "DocumentStore",
    "FirestoreDocumentStore",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "InMemoryAuditStorage",
    "InMemoryDocumentStore",
    "NotFoundError",
    "StorageError",
    "StoreConnectionError",
    "TransactionConflictError",
]
