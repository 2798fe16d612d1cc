"""
Shared fixtures.

Everything runs against the in-memory document store and audit storage;
no test talks to Firestore, Google Sheets or Gemini.
"""

from datetime import date
from decimal import Decimal

import pytest

from billbook.audit import AuditLogger
from billbook.config import AppSettings
from billbook.models.records import BusinessProfile, Client, Product, ProductVariant
from billbook.orchestrator import BookkeepingService
from billbook.services.storage import InMemoryAuditStorage, InMemoryDocumentStore


TODAY = date(2026, 10, 17)
OWNER = "owner-1"


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def owner_id() -> str:
    return OWNER


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore(max_attempts=5)


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(
        invoice_number_prefix="INV-",
        first_invoice_number=1001,
        default_payment_terms_days=15,
        low_stock_threshold=5,
        tax_interstate_igst=False,
        store_transaction_max_attempts=5,
    )


@pytest.fixture
def service(store, audit_logger, app_settings) -> BookkeepingService:
    return BookkeepingService(
        store,
        audit_logger=audit_logger,
        app_settings=app_settings,
        clock=lambda: TODAY,
    )


@pytest.fixture
def client() -> Client:
    return Client(
        id="client-1",
        name="Sharma Traders",
        gstin="29ABCDE1234F1Z5",
        address="MG Road, Bengaluru",
        state="Karnataka",
    )


@pytest.fixture
def tea() -> Product:
    """Two variants: A with 10 on hand, B with 5."""
    return Product(
        id="tea",
        name="Assam Tea",
        hsn_sac_code="0902",
        gst_rate=Decimal("18"),
        variants=[
            ProductVariant(
                id="A",
                name="250g",
                cost_price=Decimal("60"),
                selling_price=Decimal("100"),
                quantity=10,
            ),
            ProductVariant(
                id="B",
                name="1kg",
                cost_price=Decimal("200"),
                selling_price=Decimal("350"),
                quantity=5,
            ),
        ],
    )


@pytest.fixture
def profile() -> BusinessProfile:
    return BusinessProfile(name="Chai Corner", state="Karnataka", gstin="29AAAAA0000A1Z5")
