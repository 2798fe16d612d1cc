"""
Invoice Status Reconciler

paid_amount and status are derived values. They are computed here and
nowhere else:
- derive_invoice_status() is the pure transition function
- settlement_fields() is the single source of both derived fields
- InvoiceStatusReconciler.recalculate() re-derives them from stored
  payments after a payment changes

CRITICAL: recalculate() is best-effort. A payment that was saved stays
saved even if the follow-up recompute fails; the failure is logged and
audited, and the next payment change (or invoice edit) will repair it.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional
from uuid import UUID

import structlog

from billbook.audit import AuditLogger
from billbook.models.records import Invoice, InvoiceStatus, Payment
from billbook.services.storage import DocumentStore, RecordRepository, Transaction


logger = structlog.get_logger(__name__)


def derive_invoice_status(
    paid_amount: Decimal,
    total: Decimal,
    due_date: date,
    today: date,
) -> InvoiceStatus:
    """
    Status as a pure function of what was paid, what is owed and when.

    A fully paid invoice is Paid even after its due date. Anything short
    of that is Overdue once the due date has passed.
    """
    if paid_amount >= total:
        return InvoiceStatus.PAID
    if due_date < today:
        return InvoiceStatus.OVERDUE
    if paid_amount > 0:
        return InvoiceStatus.PARTIALLY_PAID
    return InvoiceStatus.UNPAID


def settlement_fields(
    invoice: Invoice,
    payments: Iterable[Payment],
    today: date,
) -> dict[str, Any]:
    """paid_amount and status for an invoice given its linked payments."""
    paid_amount = sum((payment.amount for payment in payments), Decimal("0"))
    return {
        "paid_amount": paid_amount,
        "status": derive_invoice_status(paid_amount, invoice.total, invoice.due_date, today),
    }


def settle(invoice: Invoice, payments: Iterable[Payment], today: date) -> Invoice:
    """Copy of the invoice with its derived settlement fields refreshed."""
    return invoice.model_copy(update=settlement_fields(invoice, payments, today))


class InvoiceStatusReconciler:
    """Recomputes an invoice's paid amount and status from stored payments."""

    def __init__(
        self,
        store: DocumentStore,
        invoices: RecordRepository[Invoice],
        payments: RecordRepository[Payment],
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], date] = date.today,
    ):
        self._store = store
        self._invoices = invoices
        self._payments = payments
        self._audit = audit_logger or AuditLogger()
        self._clock = clock

    async def recalculate(
        self,
        owner_id: str,
        invoice_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Invoice]:
        """
        Re-derive and store paid_amount/status for one invoice.

        Returns the updated invoice, or None if it no longer exists or the
        recompute failed. Never raises.
        """
        today = self._clock()

        async def _recalculate(tx: Transaction) -> Optional[Invoice]:
            invoice = await self._invoices.tx_get(tx, owner_id, invoice_id)
            if invoice is None:
                return None
            linked = await self._payments.tx_find(tx, owner_id, invoice_id=invoice_id)
            settled = settle(invoice, linked, today)
            self._invoices.tx_update(tx, invoice_id, {
                "paid_amount": str(settled.paid_amount),
                "status": settled.status.value,
            })
            return settled

        try:
            invoice = await self._store.run_transaction(_recalculate)
        except Exception as e:
            logger.error(
                "invoice_status_recalculation_failed",
                owner_id=owner_id,
                invoice_id=invoice_id,
                error=str(e),
            )
            await self._audit.log_status_recalculation_failed(
                owner_id=owner_id,
                invoice_id=invoice_id,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return None

        if invoice is None:
            logger.warning(
                "invoice_missing_for_recalculation",
                owner_id=owner_id,
                invoice_id=invoice_id,
            )
            return None

        await self._audit.log_status_recalculated(
            owner_id=owner_id,
            invoice_id=invoice_id,
            paid_amount=invoice.paid_amount,
            status=invoice.status.value,
            correlation_id=correlation_id,
        )
        return invoice
