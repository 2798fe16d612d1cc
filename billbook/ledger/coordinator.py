"""
Invoice Transaction Coordinator

Creates, edits and deletes invoices so that stock and invoice data never
diverge. Each operation is ONE store transaction:

    READ   invoice / payments / profile / products / invoice numbers
    PLAN   stock deltas via the ledger (may raise, nothing written yet)
    WRITE  products + invoice (+ payment deletes) together

If another writer touches anything that was read, the store re-runs the
whole function against fresh data. A raised error aborts the attempt and
nothing is written.
"""

from datetime import date
from typing import Callable, Iterable, Optional
from uuid import UUID

import structlog

from billbook.audit import AuditLogger
from billbook.config import get_settings
from billbook.errors import (
    DuplicateInvoiceNumberError,
    InsufficientStockError,
    RecordNotFoundError,
)
from billbook.ledger.inventory import (
    InventoryLedger,
    StockPlan,
    net_quantity_changes,
    return_deltas,
    sale_deltas,
)
from billbook.ledger.status import settle
from billbook.ledger.tax import calculate_invoice_taxes
from billbook.models.records import BusinessProfile, Invoice, Payment
from billbook.services.storage import (
    DocumentStore,
    ProfileRepository,
    RecordRepository,
    Transaction,
)


logger = structlog.get_logger(__name__)


def parse_invoice_number(number: Optional[str], prefix: str) -> Optional[int]:
    """Numeric part of an invoice number, or None if it has another shape."""
    if not number or not number.startswith(prefix):
        return None
    digits = number[len(prefix):]
    return int(digits) if digits.isdigit() else None


def next_invoice_number(
    existing: Iterable[Optional[str]],
    prefix: str = "INV-",
    first: int = 1001,
) -> str:
    """
    The number after the highest existing one with this prefix.

    Numbers in any other format are ignored. The first invoice gets
    <prefix><first>.
    """
    numbers = [n for n in (parse_invoice_number(e, prefix) for e in existing) if n is not None]
    return f"{prefix}{max(numbers) + 1 if numbers else first}"


class InvoiceCoordinator:
    """Atomic invoice create/edit/delete with stock and settlement upkeep."""

    def __init__(
        self,
        store: DocumentStore,
        invoices: RecordRepository[Invoice],
        payments: RecordRepository[Payment],
        profiles: ProfileRepository,
        ledger: InventoryLedger,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], date] = date.today,
        number_prefix: Optional[str] = None,
        first_number: Optional[int] = None,
        interstate_igst: Optional[bool] = None,
    ):
        self._store = store
        self._invoices = invoices
        self._payments = payments
        self._profiles = profiles
        self._ledger = ledger
        self._audit = audit_logger or AuditLogger()
        self._clock = clock
        self._prefix = (
            get_settings().app.invoice_number_prefix
            if number_prefix is None
            else number_prefix
        )
        self._first = (
            get_settings().app.first_invoice_number
            if first_number is None
            else first_number
        )
        self._interstate_igst = (
            get_settings().app.tax_interstate_igst
            if interstate_igst is None
            else interstate_igst
        )

    def _derive_totals(self, invoice: Invoice, profile: Optional[BusinessProfile]) -> Invoice:
        taxes = calculate_invoice_taxes(
            invoice.items,
            seller_state=profile.state if profile else "",
            buyer_state=invoice.client.state,
            interstate_igst=self._interstate_igst,
        )
        return invoice.model_copy(update=taxes.model_dump())

    async def _numbers_in_use(self, tx: Transaction, owner_id: str) -> dict[str, str]:
        """invoice_number -> invoice id, for every invoice of the owner."""
        return {
            inv.invoice_number: inv.id
            for inv in await self._invoices.tx_find(tx, owner_id)
            if inv.invoice_number
        }

    async def _reject_stock(
        self,
        owner_id: str,
        error: InsufficientStockError,
        correlation_id: Optional[UUID],
    ) -> None:
        logger.warning(
            "stock_rejected",
            owner_id=owner_id,
            product_id=error.product_id,
            variant_id=error.variant_id,
            available=error.available,
            requested=error.requested,
        )
        await self._audit.log_stock_rejected(
            owner_id=owner_id,
            product_id=error.product_id,
            variant_id=error.variant_id,
            available=error.available,
            requested=error.requested,
            correlation_id=correlation_id,
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(
        self,
        owner_id: str,
        draft: Invoice,
        correlation_id: Optional[UUID] = None,
    ) -> Invoice:
        """
        Create an invoice, taking its items out of stock.

        Totals and status are derived; an empty invoice_number is
        allocated. Raises InsufficientStockError naming the first line
        that cannot be fulfilled.
        """
        today = self._clock()

        async def _create(tx: Transaction) -> tuple[Invoice, StockPlan]:
            # READ
            profile = await self._profiles.tx_get(tx, owner_id)
            in_use = await self._numbers_in_use(tx, owner_id)
            plan = await self._ledger.plan(tx, owner_id, sale_deltas(draft.items))

            number = draft.invoice_number
            if number:
                if number in in_use:
                    raise DuplicateInvoiceNumberError(number)
            else:
                number = next_invoice_number(in_use, self._prefix, self._first)

            invoice = self._derive_totals(draft, profile)
            invoice = settle(invoice.model_copy(update={"invoice_number": number}), [], today)

            # WRITE
            self._ledger.stage(tx, plan)
            self._invoices.tx_save(tx, owner_id, invoice)
            return invoice, plan

        try:
            invoice, plan = await self._store.run_transaction(_create)
        except InsufficientStockError as e:
            await self._reject_stock(owner_id, e, correlation_id)
            raise

        logger.info(
            "invoice_created",
            owner_id=owner_id,
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
        )
        await self._audit.log_invoice_created(owner_id, invoice, correlation_id)
        await self._audit.log_stock_adjusted(owner_id, plan.audit_details(), correlation_id)
        return invoice

    # ------------------------------------------------------------------
    # Edit
    # ------------------------------------------------------------------

    async def update(
        self,
        owner_id: str,
        draft: Invoice,
        correlation_id: Optional[UUID] = None,
    ) -> Invoice:
        """
        Replace an invoice, moving only the net stock difference.

        paid_amount and status are re-derived from the linked payments in
        the same transaction, so a changed total or due date is reflected
        immediately.
        """
        today = self._clock()

        async def _update(tx: Transaction) -> tuple[Invoice, StockPlan]:
            # READ
            stored = await self._invoices.tx_get(tx, owner_id, draft.id)
            if stored is None:
                raise RecordNotFoundError("invoice", draft.id)
            profile = await self._profiles.tx_get(tx, owner_id)
            linked = await self._payments.tx_find(tx, owner_id, invoice_id=draft.id)

            number = draft.invoice_number or stored.invoice_number
            if number != stored.invoice_number:
                in_use = await self._numbers_in_use(tx, owner_id)
                if in_use.get(number, draft.id) != draft.id:
                    raise DuplicateInvoiceNumberError(number)

            plan = await self._ledger.plan(
                tx, owner_id, net_quantity_changes(stored.items, draft.items)
            )

            invoice = self._derive_totals(draft, profile)
            invoice = settle(invoice.model_copy(update={"invoice_number": number}), linked, today)

            # WRITE
            self._ledger.stage(tx, plan)
            self._invoices.tx_save(tx, owner_id, invoice)
            return invoice, plan

        try:
            invoice, plan = await self._store.run_transaction(_update)
        except InsufficientStockError as e:
            await self._reject_stock(owner_id, e, correlation_id)
            raise

        logger.info("invoice_updated", owner_id=owner_id, invoice_id=invoice.id)
        await self._audit.log_invoice_updated(owner_id, invoice, correlation_id)
        await self._audit.log_stock_adjusted(owner_id, plan.audit_details(), correlation_id)
        return invoice

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete(
        self,
        owner_id: str,
        invoice_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Invoice:
        """
        Delete an invoice, return its stock and delete its payments.

        Stock returns are never rejected. Products or variants removed
        since the sale are skipped.
        """

        async def _delete(tx: Transaction) -> tuple[Invoice, list[Payment], StockPlan]:
            # READ
            invoice = await self._invoices.tx_get(tx, owner_id, invoice_id)
            if invoice is None:
                raise RecordNotFoundError("invoice", invoice_id)
            linked = await self._payments.tx_find(tx, owner_id, invoice_id=invoice_id)
            plan = await self._ledger.plan(
                tx, owner_id, return_deltas(invoice.items), lenient=True
            )

            # WRITE
            self._ledger.stage(tx, plan)
            self._invoices.tx_delete(tx, invoice_id)
            for payment in linked:
                self._payments.tx_delete(tx, payment.id)
            return invoice, linked, plan

        invoice, linked, plan = await self._store.run_transaction(_delete)

        logger.info(
            "invoice_deleted",
            owner_id=owner_id,
            invoice_id=invoice_id,
            payments_removed=len(linked),
        )
        await self._audit.log_invoice_deleted(owner_id, invoice, len(linked), correlation_id)
        await self._audit.log_stock_adjusted(owner_id, plan.audit_details(), correlation_id)
        return invoice
