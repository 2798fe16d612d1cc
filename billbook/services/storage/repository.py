"""
Owner-Scoped Repositories

Thin typed layer over a DocumentStore. Every document is written with an
owner_id field and every read filters on it, so one owner can never see
or modify another owner's records through this layer.

Each repository offers direct methods (one store round-trip each) and
tx_* methods that take a Transaction for use inside atomic units.
"""

from typing import Any, Generic, Optional, Type, TypeVar

from billbook.models.records import BusinessProfile, StoredRecord
from billbook.services.storage.interface import DocumentStore, StoredDocument, Transaction


CLIENTS = "clients"
PRODUCTS = "products"
INVOICES = "invoices"
PAYMENTS = "payments"
EXPENSES = "expenses"
PROFILES = "business_profiles"

OWNER_FIELD = "owner_id"

R = TypeVar("R", bound=StoredRecord)


class RecordRepository(Generic[R]):
    """Typed access to one collection for one record model."""

    def __init__(self, store: DocumentStore, collection: str, model: Type[R]):
        self._store = store
        self.collection = collection
        self.model = model

    def to_document(self, owner_id: str, record: R) -> dict[str, Any]:
        return {**record.to_document(), OWNER_FIELD: owner_id}

    def from_stored(self, owner_id: str, doc: Optional[StoredDocument]) -> Optional[R]:
        """Rebuild a record, or None if absent or owned by someone else."""
        if doc is None or doc.data.get(OWNER_FIELD) != owner_id:
            return None
        data = {k: v for k, v in doc.data.items() if k != OWNER_FIELD}
        return self.model.from_document(doc.id, data)

    def _filters(self, owner_id: str, filters: dict[str, Any]) -> dict[str, Any]:
        return {OWNER_FIELD: owner_id, **filters}

    # ------------------------------------------------------------------
    # Direct access
    # ------------------------------------------------------------------

    async def get(self, owner_id: str, record_id: str) -> Optional[R]:
        doc = await self._store.get(self.collection, record_id)
        return self.from_stored(owner_id, doc)

    async def find(self, owner_id: str, **filters: Any) -> list[R]:
        docs = await self._store.query(self.collection, self._filters(owner_id, filters))
        return [self.from_stored(owner_id, doc) for doc in docs]

    async def save(self, owner_id: str, record: R) -> R:
        await self._store.set(self.collection, record.id, self.to_document(owner_id, record))
        return record

    async def delete(self, owner_id: str, record_id: str) -> bool:
        """Delete a record the owner holds. Returns False if there was none."""
        if await self.get(owner_id, record_id) is None:
            return False
        return await self._store.delete(self.collection, record_id)

    # ------------------------------------------------------------------
    # Transactional access
    # ------------------------------------------------------------------

    async def tx_get(self, tx: Transaction, owner_id: str, record_id: str) -> Optional[R]:
        doc = await tx.get(self.collection, record_id)
        return self.from_stored(owner_id, doc)

    async def tx_find(self, tx: Transaction, owner_id: str, **filters: Any) -> list[R]:
        docs = await tx.query(self.collection, self._filters(owner_id, filters))
        return [self.from_stored(owner_id, doc) for doc in docs]

    def tx_save(self, tx: Transaction, owner_id: str, record: R) -> None:
        tx.set(self.collection, record.id, self.to_document(owner_id, record))

    def tx_update(self, tx: Transaction, record_id: str, fields: dict[str, Any]) -> None:
        """Merge JSON-compatible top-level fields into a stored record."""
        tx.update(self.collection, record_id, fields)

    def tx_delete(self, tx: Transaction, record_id: str) -> None:
        tx.delete(self.collection, record_id)


class ProfileRepository:
    """The business profile singleton, stored under the owner's ID."""

    def __init__(self, store: DocumentStore):
        self._store = store
        self.collection = PROFILES

    async def get(self, owner_id: str) -> Optional[BusinessProfile]:
        doc = await self._store.get(self.collection, owner_id)
        if doc is None:
            return None
        return BusinessProfile.model_validate(doc.data)

    async def tx_get(self, tx: Transaction, owner_id: str) -> Optional[BusinessProfile]:
        doc = await tx.get(self.collection, owner_id)
        if doc is None:
            return None
        return BusinessProfile.model_validate(doc.data)

    async def save(self, owner_id: str, profile: BusinessProfile) -> BusinessProfile:
        await self._store.set(self.collection, owner_id, profile.model_dump(mode="json"))
        return profile
