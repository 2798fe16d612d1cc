"""
Firestore Storage Implementation

DESIGN DECISION: Firestore is the production backend because:
1. Hosted, nothing to operate for a small business
2. Documents map directly onto our embedded-snapshot records
3. Native optimistic transactions with automatic retry

TRADEOFFS:
- No foreign keys (referential guards live in the service layer)
- No array-of-object queries (product usage checks scan invoices)
- Decimals are stored as strings (Firestore has no decimal type)

Conflict retries are delegated to google-cloud-firestore's
async_transactional; plain reads/writes retry transient API errors
with tenacity.
"""

from typing import Any, Awaitable, Callable, Optional, TypeVar

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from billbook.config import get_settings
from billbook.services.storage.interface import (
    DocumentStore,
    NotFoundError,
    StorageError,
    StoreConnectionError,
    StoredDocument,
    Transaction,
    TransactionConflictError,
)


T = TypeVar("T")

TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
)

transient_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(TRANSIENT_ERRORS),
    reraise=True,
)


def _apply_filters(query, filters: dict[str, Any]):
    for path, value in filters.items():
        query = query.where(filter=FieldFilter(path, "==", value))
    return query


def _to_document(snapshot) -> StoredDocument:
    return StoredDocument(id=snapshot.id, data=snapshot.to_dict() or {})


class FirestoreTransaction(Transaction):
    """Adapter over a google-cloud-firestore AsyncTransaction."""

    def __init__(self, client: firestore.AsyncClient, transaction: firestore.AsyncTransaction):
        self._client = client
        self._transaction = transaction

    def _ref(self, collection: str, doc_id: str):
        return self._client.collection(collection).document(doc_id)

    async def get(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        snapshot = await self._ref(collection, doc_id).get(transaction=self._transaction)
        return _to_document(snapshot) if snapshot.exists else None

    async def query(
        self,
        collection: str,
        filters: dict[str, Any],
    ) -> list[StoredDocument]:
        query = _apply_filters(self._client.collection(collection), filters)
        return [
            _to_document(snapshot)
            async for snapshot in query.stream(transaction=self._transaction)
        ]

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._transaction.set(self._ref(collection, doc_id), data)

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._transaction.update(self._ref(collection, doc_id), data)

    def delete(self, collection: str, doc_id: str) -> None:
        self._transaction.delete(self._ref(collection, doc_id))


class FirestoreDocumentStore(DocumentStore):
    """
    Firestore implementation of the document store.

    The client is created lazily from FirestoreSettings unless one is
    injected.
    """

    def __init__(
        self,
        client: Optional[firestore.AsyncClient] = None,
        max_attempts: Optional[int] = None,
    ):
        self._client = client
        self._max_attempts = max_attempts or get_settings().app.store_transaction_max_attempts

    def _get_client(self) -> firestore.AsyncClient:
        """Get or create the Firestore client."""
        if self._client is None:
            settings = get_settings().firestore
            try:
                credentials = None
                if settings.credentials_path:
                    credentials = Credentials.from_service_account_file(
                        settings.credentials_path,
                        scopes=["https://www.googleapis.com/auth/datastore"],
                    )
                self._client = firestore.AsyncClient(
                    project=settings.project_id,
                    credentials=credentials,
                    database=settings.database,
                )
            except FileNotFoundError:
                raise StoreConnectionError(
                    f"Google credentials file not found: {settings.credentials_path}"
                )
            except Exception as e:
                raise StoreConnectionError(f"Failed to connect to Firestore: {e}")
        return self._client

    @transient_retry
    async def get(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        try:
            snapshot = await self._get_client().collection(collection).document(doc_id).get()
        except TRANSIENT_ERRORS:
            raise
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to get {collection}/{doc_id}: {e}")
        return _to_document(snapshot) if snapshot.exists else None

    @transient_retry
    async def query(
        self,
        collection: str,
        filters: dict[str, Any],
    ) -> list[StoredDocument]:
        query = _apply_filters(self._get_client().collection(collection), filters)
        try:
            return [_to_document(snapshot) async for snapshot in query.stream()]
        except TRANSIENT_ERRORS:
            raise
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to query {collection}: {e}")

    @transient_retry
    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        try:
            await self._get_client().collection(collection).document(doc_id).set(data)
        except TRANSIENT_ERRORS:
            raise
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to save {collection}/{doc_id}: {e}")

    @transient_retry
    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        try:
            await self._get_client().collection(collection).document(doc_id).update(data)
        except google_exceptions.NotFound:
            raise NotFoundError(f"No document to update: {collection}/{doc_id}")
        except TRANSIENT_ERRORS:
            raise
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to update {collection}/{doc_id}: {e}")

    @transient_retry
    async def delete(self, collection: str, doc_id: str) -> bool:
        ref = self._get_client().collection(collection).document(doc_id)
        try:
            snapshot = await ref.get()
            if not snapshot.exists:
                return False
            await ref.delete()
            return True
        except TRANSIENT_ERRORS:
            raise
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to delete {collection}/{doc_id}: {e}")

    async def run_transaction(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
    ) -> T:
        client = self._get_client()

        @firestore.async_transactional
        async def _run(transaction: firestore.AsyncTransaction) -> T:
            return await fn(FirestoreTransaction(client, transaction))

        try:
            return await _run(client.transaction(max_attempts=self._max_attempts))
        except google_exceptions.Aborted as e:
            raise TransactionConflictError(f"Transaction aborted after retries: {e}")
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Transaction failed: {e}")
