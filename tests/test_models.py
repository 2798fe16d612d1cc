"""
Tests for Billbook

Test strategy:
1. Unit tests for individual components (models, tax, ledger, validator)
2. Integration tests for flows (in-memory store, mocked external services)
3. No real API calls in tests (use fakes)
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from billbook.models.records import (
    Client,
    Expense,
    ExpenseCategory,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    Product,
    ProductVariant,
    ValidationIssue,
    ValidationResult,
)
from billbook.models.audit import (
    AUDIT_COLUMNS,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestRecordModels:
    """Tests for record Pydantic models."""

    def test_client_creation(self):
        """Test Client model creation."""
        client = Client(name="Sharma Traders", state="Karnataka")
        assert client.name == "Sharma Traders"
        assert client.gstin == ""
        assert client.id

    def test_client_strips_whitespace(self):
        """Test that whitespace is stripped from client name."""
        client = Client(name="  Sharma Traders  ")
        assert client.name == "Sharma Traders"

    def test_variant_rejects_negative_price(self):
        """Test that negative prices are rejected."""
        with pytest.raises(ValueError):
            ProductVariant(name="Default", selling_price=Decimal("-1"))

    def test_product_document_round_trip(self, tea):
        """Test that a product survives to_document/from_document."""
        doc = tea.to_document()
        assert "id" not in doc
        assert doc["gst_rate"] == "18"

        restored = Product.from_document(tea.id, doc)
        assert restored == tea

    def test_legacy_product_becomes_default_variant(self):
        """Test that a flat legacy document is read as one Default variant."""
        product = Product.from_document("old", {
            "name": "Sugar",
            "gst_rate": "5",
            "cost_price": "30",
            "selling_price": "45",
            "quantity": 12,
        })
        assert len(product.variants) == 1
        variant = product.variants[0]
        assert variant.id == "default_old"
        assert variant.name == "Default"
        assert variant.selling_price == Decimal("45")
        assert variant.quantity == 12

    def test_product_total_stock(self, tea):
        """Test total_stock sums every variant."""
        assert tea.total_stock == 15
        assert tea.find_variant("B").name == "1kg"
        assert tea.find_variant("missing") is None

    def test_invoice_item_snapshots_catalog(self, tea):
        """Test that later catalog edits don't change an invoice line."""
        item = InvoiceItem.from_catalog(tea, tea.variants[0], quantity=2)
        tea.name = "Renamed"
        tea.variants[0].selling_price = Decimal("999")

        assert item.product.name == "Assam Tea"
        assert item.price == Decimal("100")
        assert item.gst_rate == Decimal("18")
        assert item.stock_key == ("tea", "A")
        assert item.line_subtotal == Decimal("200")

    def test_invoice_defaults(self, client):
        """Test Invoice model defaults."""
        invoice = Invoice(client=client)
        assert invoice.status == InvoiceStatus.UNPAID
        assert invoice.invoice_number is None
        assert invoice.balance_due == Decimal("0")

    def test_invoice_references_product(self, client, tea):
        """Test references_product looks at line snapshots."""
        invoice = Invoice(
            client=client,
            items=[InvoiceItem.from_catalog(tea, tea.variants[1], quantity=1)],
        )
        assert invoice.references_product("tea") is True
        assert invoice.references_product("sugar") is False

    def test_expense_dates_stored_as_iso(self):
        """Test that dates are stored as ISO strings (queried by equality)."""
        expense = Expense(
            date=date(2026, 10, 17),
            category=ExpenseCategory.INVENTORY,
            description="Stock",
            amount=Decimal("10"),
        )
        doc = expense.to_document()
        assert doc["date"] == "2026-10-17"
        assert doc["category"] == "inventory"
        assert doc["amount"] == "10"


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.INVOICE_CREATED,
            description="Invoice INV-1001 created",
        )
        assert event.event_type == AuditEventType.INVOICE_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.PRODUCT_SAVED,
            description="Product saved",
            details={"name": "Assam Tea"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "product_saved"
        assert log_dict["details"]["name"] == "Assam Tea"

    def test_audit_event_sheets_row_round_trip(self):
        """Test conversion to and from a sheets row."""
        correlation_id = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.STOCK_REJECTED,
            severity=AuditSeverity.WARNING,
            owner_id="owner-1",
            entity_type="product",
            entity_id="tea",
            correlation_id=correlation_id,
            description="Stock adjustment rejected",
            details={"available": 7, "requested": 10},
            timestamp=datetime(2026, 10, 17, 9, 30),
        )
        row = event.to_sheets_row()
        assert len(row) == len(AUDIT_COLUMNS)
        assert row[2] == "stock_rejected"

        restored = AuditEvent.from_sheets_row(row)
        assert restored.event_id == event.event_id
        assert restored.correlation_id == correlation_id
        assert restored.details == {"available": 7, "requested": 10}
        assert restored.error_message is None

    def test_audit_event_builder_stock_rejected(self):
        """Test AuditEventBuilder.stock_rejected."""
        correlation_id = uuid4()
        event = AuditEventBuilder.stock_rejected(
            owner_id="owner-1",
            product_id="tea",
            variant_id="A",
            available=7,
            requested=10,
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.STOCK_REJECTED
        assert event.severity == AuditSeverity.WARNING
        assert event.entity_id == "tea"
        assert event.correlation_id == correlation_id

    def test_audit_event_builder_payment(self):
        """Test AuditEventBuilder.payment_event."""
        event = AuditEventBuilder.payment_event(
            AuditEventType.PAYMENT_DELETED,
            owner_id="owner-1",
            payment_id="p1",
            amount=Decimal("500.00"),
            invoice_id="inv-1",
        )
        assert event.description == "Payment of 500.00 deleted"
        assert event.details == {"amount": "500.00", "invoice_id": "inv-1"}


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            record_type="invoice",
            issues=[
                ValidationIssue(
                    field="items",
                    issue_type="missing",
                    message="An invoice needs at least one item",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.is_valid is False
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            record_type="expense",
            issues=[
                ValidationIssue(
                    field="date",
                    issue_type="future_date",
                    message="Date in future",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0
        assert result.warnings == ["Date in future"]

    def test_issue_severity_pattern(self):
        """Test that only known severities are accepted."""
        with pytest.raises(ValueError):
            ValidationIssue(field="x", issue_type="y", message="z", severity="fatal")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
