"""
Audit Logger

DESIGN DECISION: Every change to stock, invoices, payments and the
catalog is logged.
This provides:
1. Complete traceability of stock movements
2. Debugging capability when a transaction is rejected
3. The owner can see why an invoice has its current status

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from billbook.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from billbook.models.records import Invoice, Payment
from billbook.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, e.g. Google Sheets (for persistence and owner visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("billbook.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_invoice_created(
        self,
        owner_id: str,
        invoice: Invoice,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.invoice_created(
            owner_id=owner_id,
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number or "",
            total=invoice.total,
            correlation_id=correlation_id,
        ))

    async def log_invoice_updated(
        self,
        owner_id: str,
        invoice: Invoice,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.invoice_updated(
            owner_id=owner_id,
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number or "",
            total=invoice.total,
            correlation_id=correlation_id,
        ))

    async def log_invoice_deleted(
        self,
        owner_id: str,
        invoice: Invoice,
        payments_removed: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.invoice_deleted(
            owner_id=owner_id,
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number or "",
            payments_removed=payments_removed,
            correlation_id=correlation_id,
        ))

    async def log_stock_adjusted(
        self,
        owner_id: str,
        changes: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log the per-variant before/after quantities of a committed adjustment."""
        if not changes:
            return
        await self.log(AuditEventBuilder.stock_adjusted(
            owner_id=owner_id,
            changes=changes,
            correlation_id=correlation_id,
        ))

    async def log_stock_rejected(
        self,
        owner_id: str,
        product_id: str,
        variant_id: str,
        available: int,
        requested: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.stock_rejected(
            owner_id=owner_id,
            product_id=product_id,
            variant_id=variant_id,
            available=available,
            requested=requested,
            correlation_id=correlation_id,
        ))

    async def log_payment(
        self,
        event_type: AuditEventType,
        owner_id: str,
        payment: Payment,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a payment being recorded, updated or deleted."""
        await self.log(AuditEventBuilder.payment_event(
            event_type=event_type,
            owner_id=owner_id,
            payment_id=payment.id,
            amount=payment.amount,
            invoice_id=payment.invoice_id,
            correlation_id=correlation_id,
        ))

    async def log_status_recalculated(
        self,
        owner_id: str,
        invoice_id: str,
        paid_amount: Decimal,
        status: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.status_recalculated(
            owner_id=owner_id,
            invoice_id=invoice_id,
            paid_amount=paid_amount,
            status=status,
            correlation_id=correlation_id,
        ))

    async def log_status_recalculation_failed(
        self,
        owner_id: str,
        invoice_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.status_recalculation_failed(
            owner_id=owner_id,
            invoice_id=invoice_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_record_saved(
        self,
        event_type: AuditEventType,
        owner_id: str,
        entity_type: str,
        entity_id: str,
        label: str,
    ) -> None:
        await self.log(AuditEventBuilder.record_saved(
            event_type=event_type,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            label=label,
        ))

    async def log_record_deleted(
        self,
        event_type: AuditEventType,
        owner_id: str,
        entity_type: str,
        entity_id: str,
    ) -> None:
        await self.log(AuditEventBuilder.record_deleted(
            event_type=event_type,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
        ))

    async def log_delete_blocked(
        self,
        owner_id: str,
        entity_type: str,
        entity_id: str,
        reason: str,
    ) -> None:
        await self.log(AuditEventBuilder.delete_blocked(
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            reason=reason,
        ))

    async def log_validation_failed(
        self,
        owner_id: str,
        entity_type: str,
        issues: list[dict],
    ) -> None:
        """Log validation failure."""
        await self.log(AuditEventBuilder.validation_failed(
            owner_id=owner_id,
            entity_type=entity_type,
            issues=issues,
        ))

    async def log_inventory_expense_posted(
        self,
        owner_id: str,
        expense_id: str,
        amount: Decimal,
        item_count: int,
    ) -> None:
        await self.log(AuditEventBuilder.inventory_expense_posted(
            owner_id=owner_id,
            expense_id=expense_id,
            amount=amount,
            item_count=item_count,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        owner_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            owner_id=owner_id,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        owner_id: Optional[str] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            owner_id=owner_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., recording a payment).
    Pass it through all subsequent operations.
    """
    return uuid4()
