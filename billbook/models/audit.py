"""
Audit Models for Billbook

Every mutation of stock, invoices, payments and expenses is logged.
This provides:
1. Complete traceability of stock movements
2. Debugging information when a transaction is rejected
3. Ability to reconstruct why an invoice ended up in a given status

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "owner_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Invoices
    INVOICE_CREATED = "invoice_created"
    INVOICE_UPDATED = "invoice_updated"
    INVOICE_DELETED = "invoice_deleted"

    # Inventory
    STOCK_ADJUSTED = "stock_adjusted"
    STOCK_REJECTED = "stock_rejected"
    PRODUCT_SAVED = "product_saved"
    PRODUCT_DELETED = "product_deleted"
    PRODUCTS_IMPORTED = "products_imported"

    # Payments and settlement
    PAYMENT_RECORDED = "payment_recorded"
    PAYMENT_UPDATED = "payment_updated"
    PAYMENT_DELETED = "payment_deleted"
    STATUS_RECALCULATED = "status_recalculated"
    STATUS_RECALCULATION_FAILED = "status_recalculation_failed"

    # Other records
    CLIENT_SAVED = "client_saved"
    CLIENT_DELETED = "client_deleted"
    EXPENSE_SAVED = "expense_saved"
    EXPENSE_DELETED = "expense_deleted"
    INVENTORY_EXPENSE_POSTED = "inventory_expense_posted"
    PROFILE_UPDATED = "profile_updated"

    # Guards
    VALIDATION_FAILED = "validation_failed"
    DELETE_BLOCKED = "delete_blocked"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    owner_id: Optional[str] = Field(
        default=None,
        description="Account the event belongs to"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'invoice', 'product', 'payment')"
    )
    entity_id: Optional[str] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., a payment and its recompute)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": self.owner_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Columns follow AUDIT_COLUMNS.
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.owner_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]

    @classmethod
    def from_sheets_row(cls, row: list) -> "AuditEvent":
        """Rebuild an event from a Google Sheets row."""
        def safe_get(index: int) -> str:
            try:
                return row[index] or ""
            except IndexError:
                return ""

        return cls(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            owner_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=safe_get(6) or None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
        )


def _money(value: Decimal) -> str:
    return str(value)


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.invoice_created(owner_id, invoice_id, number, total)
        event = AuditEventBuilder.stock_rejected(owner_id, product_id, ...)
    """

    @staticmethod
    def invoice_created(
        owner_id: str,
        invoice_id: str,
        invoice_number: str,
        total: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVOICE_CREATED,
            owner_id=owner_id,
            entity_type="invoice",
            entity_id=invoice_id,
            correlation_id=correlation_id,
            description=f"Invoice {invoice_number} created",
            details={"invoice_number": invoice_number, "total": _money(total)},
        )

    @staticmethod
    def invoice_updated(
        owner_id: str,
        invoice_id: str,
        invoice_number: str,
        total: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVOICE_UPDATED,
            owner_id=owner_id,
            entity_type="invoice",
            entity_id=invoice_id,
            correlation_id=correlation_id,
            description=f"Invoice {invoice_number} updated",
            details={"invoice_number": invoice_number, "total": _money(total)},
        )

    @staticmethod
    def invoice_deleted(
        owner_id: str,
        invoice_id: str,
        invoice_number: str,
        payments_removed: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVOICE_DELETED,
            owner_id=owner_id,
            entity_type="invoice",
            entity_id=invoice_id,
            correlation_id=correlation_id,
            description=f"Invoice {invoice_number} deleted",
            details={
                "invoice_number": invoice_number,
                "payments_removed": payments_removed,
            },
        )

    @staticmethod
    def stock_adjusted(
        owner_id: str,
        changes: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STOCK_ADJUSTED,
            owner_id=owner_id,
            entity_type="product",
            correlation_id=correlation_id,
            description=f"Stock adjusted for {len(changes)} variant(s)",
            details={"changes": changes},
        )

    @staticmethod
    def stock_rejected(
        owner_id: str,
        product_id: str,
        variant_id: str,
        available: int,
        requested: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STOCK_REJECTED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="product",
            entity_id=product_id,
            correlation_id=correlation_id,
            description="Stock adjustment rejected: insufficient stock",
            details={
                "variant_id": variant_id,
                "available": available,
                "requested": requested,
            },
        )

    @staticmethod
    def payment_event(
        event_type: AuditEventType,
        owner_id: str,
        payment_id: str,
        amount: Decimal,
        invoice_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        verb = {
            AuditEventType.PAYMENT_RECORDED: "recorded",
            AuditEventType.PAYMENT_UPDATED: "updated",
            AuditEventType.PAYMENT_DELETED: "deleted",
        }.get(event_type, event_type.value)
        return AuditEvent(
            event_type=event_type,
            owner_id=owner_id,
            entity_type="payment",
            entity_id=payment_id,
            correlation_id=correlation_id,
            description=f"Payment of {_money(amount)} {verb}",
            details={"amount": _money(amount), "invoice_id": invoice_id},
        )

    @staticmethod
    def status_recalculated(
        owner_id: str,
        invoice_id: str,
        paid_amount: Decimal,
        status: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATUS_RECALCULATED,
            owner_id=owner_id,
            entity_type="invoice",
            entity_id=invoice_id,
            correlation_id=correlation_id,
            description=f"Invoice status set to {status}",
            details={"paid_amount": _money(paid_amount), "status": status},
        )

    @staticmethod
    def status_recalculation_failed(
        owner_id: str,
        invoice_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATUS_RECALCULATION_FAILED,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            entity_type="invoice",
            entity_id=invoice_id,
            correlation_id=correlation_id,
            description="Invoice status recalculation failed",
            error_message=error_message,
        )

    @staticmethod
    def record_saved(
        event_type: AuditEventType,
        owner_id: str,
        entity_type: str,
        entity_id: str,
        label: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()} saved: {label}"[:500],
        )

    @staticmethod
    def record_deleted(
        event_type: AuditEventType,
        owner_id: str,
        entity_type: str,
        entity_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()} deleted",
        )

    @staticmethod
    def delete_blocked(
        owner_id: str,
        entity_type: str,
        entity_id: str,
        reason: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DELETE_BLOCKED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"Delete blocked for {entity_type}",
            error_message=reason,
        )

    @staticmethod
    def validation_failed(
        owner_id: str,
        entity_type: str,
        issues: list[dict],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type=entity_type,
            description=f"Validation failed for {entity_type}",
            details={"issues": issues},
        )

    @staticmethod
    def inventory_expense_posted(
        owner_id: str,
        expense_id: str,
        amount: Decimal,
        item_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVENTORY_EXPENSE_POSTED,
            owner_id=owner_id,
            entity_type="expense",
            entity_id=expense_id,
            description=f"Inventory purchase of {_money(amount)} posted",
            details={"amount": _money(amount), "items": item_count},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        owner_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"System error: {error_type}",
            details=details or {},
            error_message=error_message,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        owner_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            entity_type="service",
            description=f"External service error: {service}",
            details={"service": service},
            error_message=error_message,
        )
