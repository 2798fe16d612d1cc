"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Records live in a document store (Firestore in production, in-memory for
tests); the audit trail lives in Google Sheets.
"""

from billbook.services.storage.interface import (
    AuditStorageInterface,
    DocumentStore,
    NotFoundError,
    StorageError,
    StoreConnectionError,
    StoredDocument,
    Transaction,
    TransactionConflictError,
)
from billbook.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryDocumentStore,
)
from billbook.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
)
from billbook.services.storage.firestore import FirestoreDocumentStore
from billbook.services.storage.repository import (
    CLIENTS,
    EXPENSES,
    INVOICES,
    PAYMENTS,
    PRODUCTS,
    PROFILES,
    ProfileRepository,
    RecordRepository,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "DocumentStore",
    "StoredDocument",
    "Transaction",
    # Exceptions
    "NotFoundError",
    "StorageError",
    "StoreConnectionError",
    "TransactionConflictError",
    # Implementations
    "FirestoreDocumentStore",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "InMemoryAuditStorage",
    "InMemoryDocumentStore",
    # Repositories
    "CLIENTS",
    "EXPENSES",
    "INVOICES",
    "PAYMENTS",
    "PRODUCTS",
    "PROFILES",
    "ProfileRepository",
    "RecordRepository",
]
