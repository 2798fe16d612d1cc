"""
Data Models Package

This package contains all Pydantic models used in Billbook.
All data flowing through the system must conform to these schemas.
"""

from billbook.models.records import (
    BusinessProfile,
    Client,
    Expense,
    ExpenseCategory,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    Payment,
    PaymentMode,
    Product,
    ProductVariant,
    StoredRecord,
    TaxBreakdown,
    ValidationIssue,
    ValidationResult,
    new_record_id,
)
from billbook.models.audit import (
    AUDIT_COLUMNS,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from billbook.models.reports import (
    DashboardSummary,
    LowStockItem,
    PeriodFigure,
    ProfitLossReport,
)

__all__ = [
    # Record models
    "BusinessProfile",
    "Client",
    "Expense",
    "ExpenseCategory",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "Payment",
    "PaymentMode",
    "Product",
    "ProductVariant",
    "StoredRecord",
    "TaxBreakdown",
    "ValidationIssue",
    "ValidationResult",
    "new_record_id",
    # Audit models
    "AUDIT_COLUMNS",
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Report models
    "DashboardSummary",
    "LowStockItem",
    "PeriodFigure",
    "ProfitLossReport",
]
