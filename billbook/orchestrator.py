"""
Bookkeeping Service for Billbook

This module ties together all the components and defines the entry
points for every record type:
1. Clients, products, expenses and the business profile (guarded CRUD)
2. Invoices (delegated to the transaction coordinator)
3. Payments (saved, then the linked invoices are re-settled)
4. Reports and AI insights (read-only)

DESIGN DECISION: The service enforces the boundaries:
- Every draft is validated before anything is written
- Records referenced by an invoice cannot be deleted
- Stock and settlement fields are only written by the ledger and
  the reconciler
- Every change is audited

All entry points take the owner_id explicitly; records of other owners
are invisible.
"""

from datetime import date, timedelta
from typing import Callable, Literal, Optional
from uuid import UUID

import structlog

from billbook.agents import (
    BusinessAnalysis,
    InsightsAgent,
    InsightsError,
    to_product_drafts,
)
from billbook.audit import AuditLogger, create_correlation_id
from billbook.config import AppSettings, get_settings
from billbook.errors import IntegrityGuardError, RecordNotFoundError, RecordValidationError
from billbook.ledger import (
    ExpensePosting,
    InventoryExpensePoster,
    InventoryLedger,
    InventoryPurchase,
    InvoiceCoordinator,
    InvoiceStatusReconciler,
    StockPlan,
    next_invoice_number,
    purchase_for,
    stock_purchases,
)
from billbook.models.audit import AuditEventType
from billbook.models.records import (
    BusinessProfile,
    Client,
    Expense,
    Invoice,
    InvoiceItem,
    Payment,
    Product,
    ProductVariant,
    ValidationResult,
)
from billbook.models.reports import DashboardSummary, LowStockItem, ProfitLossReport
from billbook.queries import ReportBuilder
from billbook.services.storage import (
    CLIENTS,
    EXPENSES,
    INVOICES,
    PAYMENTS,
    PRODUCTS,
    AuditStorageInterface,
    DocumentStore,
    FirestoreDocumentStore,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    InMemoryDocumentStore,
    ProfileRepository,
    RecordRepository,
    Transaction,
)
from billbook.validation import RecordValidator, ensure_valid


logger = structlog.get_logger(__name__)


class BookkeepingService:
    """
    Owner-scoped entry points for all bookkeeping operations.

    Mutations either commit completely or raise a BillbookError
    (or a storage error); the one exception is the post-payment status
    recompute, which is best-effort.
    """

    def __init__(
        self,
        store: DocumentStore,
        audit_logger: Optional[AuditLogger] = None,
        insights_agent: Optional[InsightsAgent] = None,
        app_settings: Optional[AppSettings] = None,
        clock: Callable[[], date] = date.today,
    ):
        settings = app_settings or get_settings().app
        self._store = store
        self._audit = audit_logger or AuditLogger()
        self._insights = insights_agent
        self._settings = settings
        self._clock = clock

        self.clients = RecordRepository(store, CLIENTS, Client)
        self.products = RecordRepository(store, PRODUCTS, Product)
        self.invoices = RecordRepository(store, INVOICES, Invoice)
        self.payments = RecordRepository(store, PAYMENTS, Payment)
        self.expenses = RecordRepository(store, EXPENSES, Expense)
        self.profiles = ProfileRepository(store)

        self.validator = RecordValidator(self.invoices, clock=clock)
        self.ledger = InventoryLedger(self.products)
        self.coordinator = InvoiceCoordinator(
            store,
            self.invoices,
            self.payments,
            self.profiles,
            self.ledger,
            audit_logger=self._audit,
            clock=clock,
            number_prefix=settings.invoice_number_prefix,
            first_number=settings.first_invoice_number,
            interstate_igst=settings.tax_interstate_igst,
        )
        self.reconciler = InvoiceStatusReconciler(
            store,
            self.invoices,
            self.payments,
            audit_logger=self._audit,
            clock=clock,
        )
        self.expense_poster = InventoryExpensePoster(
            self.expenses,
            audit_logger=self._audit,
            clock=clock,
        )
        self.reports = ReportBuilder(
            self.clients,
            self.products,
            self.invoices,
            self.payments,
            self.expenses,
            low_stock_threshold=settings.low_stock_threshold,
            clock=clock,
        )

    async def _check(self, owner_id: str, result: ValidationResult) -> ValidationResult:
        """Audit and raise on error-level issues."""
        if result.has_errors:
            await self._audit.log_validation_failed(
                owner_id=owner_id,
                entity_type=result.record_type,
                issues=[issue.model_dump() for issue in result.issues],
            )
        return ensure_valid(result)

    async def _block_delete(
        self,
        owner_id: str,
        entity_type: str,
        entity_id: str,
        message: str,
    ) -> None:
        await self._audit.log_delete_blocked(owner_id, entity_type, entity_id, message)
        raise IntegrityGuardError(entity_type, entity_id, message)

    # =========================================================================
    # CLIENTS
    # =========================================================================

    async def add_client(self, owner_id: str, client: Client) -> Client:
        await self._check(owner_id, self.validator.validate_client(client))
        await self.clients.save(owner_id, client)
        await self._audit.log_record_saved(
            AuditEventType.CLIENT_SAVED, owner_id, "client", client.id, client.name
        )
        return client

    async def update_client(self, owner_id: str, client: Client) -> Client:
        """
        Update a client's own record.

        Invoices keep the client snapshot taken when they were issued.
        """
        if await self.clients.get(owner_id, client.id) is None:
            raise RecordNotFoundError("client", client.id)
        return await self.add_client(owner_id, client)

    async def delete_client(self, owner_id: str, client_id: str) -> None:
        """
        Delete a client that no invoice refers to.

        Raises:
            IntegrityGuardError: If any invoice was issued to the client
            RecordNotFoundError: If the client doesn't exist
        """

        async def _delete(tx: Transaction) -> int:
            if await self.clients.tx_get(tx, owner_id, client_id) is None:
                raise RecordNotFoundError("client", client_id)
            in_use = await self.invoices.tx_find(tx, owner_id, **{"client.id": client_id})
            if not in_use:
                self.clients.tx_delete(tx, client_id)
            return len(in_use)

        if await self._store.run_transaction(_delete):
            await self._block_delete(
                owner_id,
                "client",
                client_id,
                "This client cannot be deleted as they are associated with one or more invoices.",
            )
        await self._audit.log_record_deleted(
            AuditEventType.CLIENT_DELETED, owner_id, "client", client_id
        )

    async def get_client(self, owner_id: str, client_id: str) -> Optional[Client]:
        return await self.clients.get(owner_id, client_id)

    async def list_clients(self, owner_id: str) -> list[Client]:
        clients = await self.clients.find(owner_id)
        return sorted(clients, key=lambda c: c.name.casefold())

    # =========================================================================
    # PRODUCTS
    # =========================================================================

    async def add_product(self, owner_id: str, product: Product) -> Product:
        """Add a product. Opening stock with a cost price is posted as an expense."""
        await self._check(owner_id, self.validator.validate_product(product))

        async def _add(tx: Transaction) -> Optional[ExpensePosting]:
            posting = await self.expense_poster.plan(tx, owner_id, stock_purchases(product))
            self.products.tx_save(tx, owner_id, product)
            self.expense_poster.stage(tx, owner_id, posting)
            return posting

        posting = await self._store.run_transaction(_add)
        await self._audit.log_record_saved(
            AuditEventType.PRODUCT_SAVED, owner_id, "product", product.id, product.name
        )
        await self.expense_poster.log_posted(owner_id, posting)
        return product

    async def update_product(self, owner_id: str, product: Product) -> Product:
        """
        Replace a product's catalog details.

        Quantities of existing variants are kept as stored: stock only
        moves through invoices and restock(). A variant that is new in
        this edit takes its quantity from the edit, and that opening stock
        is posted as an inventory purchase.

        Returns the product as stored.
        """
        await self._check(owner_id, self.validator.validate_product(product))

        async def _update(tx: Transaction) -> tuple[Product, Optional[ExpensePosting]]:
            previous = await self.products.tx_get(tx, owner_id, product.id)
            if previous is None:
                raise RecordNotFoundError("product", product.id)

            merged = product.model_copy(deep=True)
            ignored = []
            for variant in merged.variants:
                old = previous.find_variant(variant.id)
                if old is not None:
                    if variant.quantity != old.quantity:
                        ignored.append(variant.id)
                    variant.quantity = old.quantity
            if ignored:
                logger.info(
                    "stock_edit_ignored",
                    owner_id=owner_id,
                    product_id=product.id,
                    variant_ids=ignored,
                )

            posting = await self.expense_poster.plan(
                tx, owner_id, stock_purchases(merged, previous)
            )
            self.products.tx_save(tx, owner_id, merged)
            self.expense_poster.stage(tx, owner_id, posting)
            return merged, posting

        merged, posting = await self._store.run_transaction(_update)
        await self._audit.log_record_saved(
            AuditEventType.PRODUCT_SAVED, owner_id, "product", merged.id, merged.name
        )
        await self.expense_poster.log_posted(owner_id, posting)
        return merged

    async def delete_product(self, owner_id: str, product_id: str) -> None:
        """
        Delete a product that appears on no invoice.

        Raises:
            IntegrityGuardError: If any invoice has a line for the product
            RecordNotFoundError: If the product doesn't exist
        """

        async def _delete(tx: Transaction) -> bool:
            if await self.products.tx_get(tx, owner_id, product_id) is None:
                raise RecordNotFoundError("product", product_id)
            invoices = await self.invoices.tx_find(tx, owner_id)
            in_use = any(inv.references_product(product_id) for inv in invoices)
            if not in_use:
                self.products.tx_delete(tx, product_id)
            return in_use

        if await self._store.run_transaction(_delete):
            await self._block_delete(
                owner_id,
                "product",
                product_id,
                "This product cannot be deleted as it is part of one or more invoices. "
                "Please remove it from all invoices first.",
            )
        await self._audit.log_record_deleted(
            AuditEventType.PRODUCT_DELETED, owner_id, "product", product_id
        )

    async def get_product(self, owner_id: str, product_id: str) -> Optional[Product]:
        return await self.products.get(owner_id, product_id)

    async def list_products(self, owner_id: str) -> list[Product]:
        products = await self.products.find(owner_id)
        return sorted(products, key=lambda p: p.name.casefold())

    async def import_products(self, owner_id: str, drafts: list[Product]) -> list[Product]:
        """
        Merge a batch of scanned products into the catalog.

        A draft whose name matches an existing product (case-insensitive)
        adds its variants' quantities to the same-named variants, or adds
        the variant if there is none. Other drafts become new products.
        Added stock with a cost price is posted as an inventory purchase.

        Returns the created and updated products.
        """
        for draft in drafts:
            await self._check(owner_id, self.validator.validate_product(draft))

        async def _import(tx: Transaction) -> tuple[list[Product], Optional[ExpensePosting]]:
            existing = await self.products.tx_find(tx, owner_id)
            by_name = {p.name.casefold(): p for p in existing}
            touched: dict[str, Product] = {}
            purchases: list[InventoryPurchase] = []

            for draft in drafts:
                product = by_name.get(draft.name.casefold())
                if product is None:
                    product = draft.model_copy(deep=True)
                    by_name[product.name.casefold()] = product
                    touched[product.id] = product
                    purchases.extend(stock_purchases(product))
                    continue

                for new_variant in draft.variants:
                    variant = next(
                        (v for v in product.variants
                         if v.name.casefold() == new_variant.name.casefold()),
                        None,
                    )
                    if variant is None:
                        variant = ProductVariant(**new_variant.model_dump(exclude={"id"}))
                        product.variants.append(variant)
                    else:
                        variant.quantity += new_variant.quantity
                    if new_variant.quantity > 0 and new_variant.cost_price > 0:
                        purchases.append(InventoryPurchase(
                            name=f"{product.name} ({variant.name})",
                            quantity=new_variant.quantity,
                            unit_cost=new_variant.cost_price,
                        ))
                touched[product.id] = product

            posting = await self.expense_poster.plan(tx, owner_id, purchases)
            for product in touched.values():
                self.products.tx_save(tx, owner_id, product)
            self.expense_poster.stage(tx, owner_id, posting)
            return list(touched.values()), posting

        products, posting = await self._store.run_transaction(_import)

        logger.info("products_imported", owner_id=owner_id, count=len(products))
        await self._audit.log_record_saved(
            AuditEventType.PRODUCTS_IMPORTED,
            owner_id,
            "product",
            ",".join(p.id for p in products),
            f"{len(drafts)} scanned item(s) into {len(products)} product(s)",
        )
        await self.expense_poster.log_posted(owner_id, posting)
        return products

    async def restock(
        self,
        owner_id: str,
        product_id: str,
        variant_id: str,
        quantity: int,
    ) -> Product:
        """
        Receive stock for one variant through the ledger.

        Posts the purchase at the variant's cost price.
        """

        if quantity <= 0:
            raise RecordValidationError("Restock quantity must be at least 1")

        async def _restock(tx: Transaction) -> tuple[StockPlan, Optional[ExpensePosting]]:
            plan = await self.ledger.plan(tx, owner_id, {(product_id, variant_id): quantity})
            product = plan.products[0]
            posting = await self.expense_poster.plan(
                tx, owner_id, [purchase_for(product, product.find_variant(variant_id), quantity)]
            )
            self.ledger.stage(tx, plan)
            self.expense_poster.stage(tx, owner_id, posting)
            return plan, posting

        plan, posting = await self._store.run_transaction(_restock)
        await self._audit.log_stock_adjusted(owner_id, plan.audit_details())
        await self.expense_poster.log_posted(owner_id, posting)
        return plan.products[0]

    # =========================================================================
    # INVOICES
    # =========================================================================

    async def new_invoice(
        self,
        owner_id: str,
        client: Client,
        items: Optional[list[InvoiceItem]] = None,
    ) -> Invoice:
        """
        An unsaved invoice pre-filled with today's date, the default
        payment terms and the next invoice number.
        """
        today = self._clock()
        return Invoice(
            invoice_number=await self.next_invoice_number(owner_id),
            client=client.model_copy(deep=True),
            items=items or [],
            issue_date=today,
            due_date=today + timedelta(days=self._settings.default_payment_terms_days),
        )

    async def create_invoice(self, owner_id: str, invoice: Invoice) -> Invoice:
        """Validate and create an invoice (stock is taken out atomically)."""
        await self._check(owner_id, self.validator.validate_invoice(invoice))
        return await self.coordinator.create(owner_id, invoice, create_correlation_id())

    async def update_invoice(self, owner_id: str, invoice: Invoice) -> Invoice:
        """Validate and replace an invoice (net stock change applied atomically)."""
        await self._check(owner_id, self.validator.validate_invoice(invoice))
        return await self.coordinator.update(owner_id, invoice, create_correlation_id())

    async def delete_invoice(self, owner_id: str, invoice_id: str) -> Invoice:
        """Delete an invoice, return its stock and delete its payments."""
        return await self.coordinator.delete(owner_id, invoice_id, create_correlation_id())

    async def get_invoice(self, owner_id: str, invoice_id: str) -> Optional[Invoice]:
        return await self.invoices.get(owner_id, invoice_id)

    async def list_invoices(self, owner_id: str) -> list[Invoice]:
        """All invoices, newest first."""
        invoices = await self.invoices.find(owner_id)
        return sorted(
            invoices,
            key=lambda inv: (inv.issue_date, inv.invoice_number or ""),
            reverse=True,
        )

    async def next_invoice_number(self, owner_id: str) -> str:
        """
        The number the next invoice would get.

        For display only; create_invoice allocates the real number inside
        its transaction.
        """
        invoices = await self.invoices.find(owner_id)
        return next_invoice_number(
            (inv.invoice_number for inv in invoices),
            self._settings.invoice_number_prefix,
            self._settings.first_invoice_number,
        )

    # =========================================================================
    # PAYMENTS
    # =========================================================================

    async def _resettle(
        self,
        owner_id: str,
        invoice_ids: list[Optional[str]],
        correlation_id: UUID,
    ) -> None:
        seen = set()
        for invoice_id in invoice_ids:
            if invoice_id and invoice_id not in seen:
                seen.add(invoice_id)
                await self.reconciler.recalculate(owner_id, invoice_id, correlation_id)

    async def add_payment(self, owner_id: str, payment: Payment) -> Payment:
        """Record a payment and re-settle its invoice."""
        correlation_id = create_correlation_id()
        await self._check(owner_id, await self.validator.validate_payment(owner_id, payment))
        await self.payments.save(owner_id, payment)
        await self._audit.log_payment(
            AuditEventType.PAYMENT_RECORDED, owner_id, payment, correlation_id
        )
        await self._resettle(owner_id, [payment.invoice_id], correlation_id)
        return payment

    async def update_payment(self, owner_id: str, payment: Payment) -> Payment:
        """Update a payment and re-settle both the old and the new invoice."""
        correlation_id = create_correlation_id()
        previous = await self.payments.get(owner_id, payment.id)
        if previous is None:
            raise RecordNotFoundError("payment", payment.id)
        await self._check(owner_id, await self.validator.validate_payment(owner_id, payment))
        await self.payments.save(owner_id, payment)
        await self._audit.log_payment(
            AuditEventType.PAYMENT_UPDATED, owner_id, payment, correlation_id
        )
        await self._resettle(owner_id, [previous.invoice_id, payment.invoice_id], correlation_id)
        return payment

    async def delete_payment(self, owner_id: str, payment_id: str) -> None:
        """Delete a payment and re-settle its invoice."""
        correlation_id = create_correlation_id()
        payment = await self.payments.get(owner_id, payment_id)
        if payment is None or not await self.payments.delete(owner_id, payment_id):
            raise RecordNotFoundError(
                "payment",
                payment_id,
                "Could not find the payment to delete. It may have already been removed.",
            )
        await self._audit.log_payment(
            AuditEventType.PAYMENT_DELETED, owner_id, payment, correlation_id
        )
        await self._resettle(owner_id, [payment.invoice_id], correlation_id)

    async def list_payments(
        self,
        owner_id: str,
        invoice_id: Optional[str] = None,
    ) -> list[Payment]:
        """Payments, newest first, optionally only those for one invoice."""
        if invoice_id is None:
            payments = await self.payments.find(owner_id)
        else:
            payments = await self.payments.find(owner_id, invoice_id=invoice_id)
        return sorted(payments, key=lambda p: p.date, reverse=True)

    # =========================================================================
    # EXPENSES
    # =========================================================================

    async def add_expense(self, owner_id: str, expense: Expense) -> Expense:
        await self._check(owner_id, self.validator.validate_expense(expense))
        await self.expenses.save(owner_id, expense)
        await self._audit.log_record_saved(
            AuditEventType.EXPENSE_SAVED, owner_id, "expense", expense.id, expense.description
        )
        return expense

    async def update_expense(self, owner_id: str, expense: Expense) -> Expense:
        if await self.expenses.get(owner_id, expense.id) is None:
            raise RecordNotFoundError("expense", expense.id)
        return await self.add_expense(owner_id, expense)

    async def delete_expense(self, owner_id: str, expense_id: str) -> None:
        if not await self.expenses.delete(owner_id, expense_id):
            raise RecordNotFoundError(
                "expense",
                expense_id,
                "Could not find the expense to delete. It may have already been removed.",
            )
        await self._audit.log_record_deleted(
            AuditEventType.EXPENSE_DELETED, owner_id, "expense", expense_id
        )

    async def list_expenses(self, owner_id: str) -> list[Expense]:
        """Expenses, newest first."""
        expenses = await self.expenses.find(owner_id)
        return sorted(expenses, key=lambda e: e.date, reverse=True)

    # =========================================================================
    # BUSINESS PROFILE
    # =========================================================================

    async def get_business_profile(self, owner_id: str) -> Optional[BusinessProfile]:
        return await self.profiles.get(owner_id)

    async def update_business_profile(
        self,
        owner_id: str,
        profile: BusinessProfile,
    ) -> BusinessProfile:
        await self.profiles.save(owner_id, profile)
        await self._audit.log_record_saved(
            AuditEventType.PROFILE_UPDATED, owner_id, "profile", owner_id, profile.name
        )
        return profile

    # =========================================================================
    # REPORTS AND INSIGHTS
    # =========================================================================

    async def dashboard_summary(self, owner_id: str) -> DashboardSummary:
        return await self.reports.dashboard_summary(owner_id)

    async def profit_loss(
        self,
        owner_id: str,
        period: Literal["month", "year"] = "month",
    ) -> ProfitLossReport:
        return await self.reports.profit_loss(owner_id, period)

    async def low_stock(self, owner_id: str) -> list[LowStockItem]:
        return await self.reports.low_stock(owner_id)

    def _agent(self) -> InsightsAgent:
        if self._insights is None:
            self._insights = InsightsAgent()
        return self._insights

    async def generate_description(self, item_name: str) -> str:
        return await self._agent().generate_description(item_name)

    async def scan_product_drafts(
        self,
        owner_id: str,
        image_bytes: bytes,
        mime_type: str,
    ) -> list[Product]:
        """
        Read a supplier invoice photo into product drafts.

        Nothing is saved: pass the confirmed drafts to import_products.
        """
        try:
            extracted = await self._agent().extract_products(image_bytes, mime_type)
        except InsightsError as e:
            await self._audit.log_external_service_error("gemini", str(e), owner_id)
            raise
        return to_product_drafts(extracted)

    async def business_analysis(self, owner_id: str) -> BusinessAnalysis:
        products = await self.products.find(owner_id)
        invoices = await self.invoices.find(owner_id)
        expenses = await self.expenses.find(owner_id)
        try:
            return await self._agent().generate_business_analysis(products, invoices, expenses)
        except InsightsError as e:
            await self._audit.log_external_service_error("gemini", str(e), owner_id)
            raise


def create_app_components(
    use_firestore: bool = True,
    use_audit_sheet: bool = True,
) -> tuple[BookkeepingService, AuditLogger]:
    """
    Factory function to create all application components.

    Args:
        use_firestore: Store records in Firestore. Set to False to use the
                       in-memory store (tests, local experiments).
        use_audit_sheet: Persist audit events to Google Sheets. Falls back
                         to local-only audit logging if it isn't configured.

    Returns:
        (bookkeeping_service, audit_logger)
    """
    audit_storage: Optional[AuditStorageInterface] = None
    if use_audit_sheet:
        try:
            audit_storage = GoogleSheetsAuditStorage(GoogleSheetsClient())
        except Exception as e:
            logger.warning("audit_sheet_not_configured", error=str(e))
            audit_storage = None
    audit_logger = AuditLogger(audit_storage)

    if use_firestore:
        store: DocumentStore = FirestoreDocumentStore()
    else:
        store = InMemoryDocumentStore(
            max_attempts=get_settings().app.store_transaction_max_attempts
        )

    service = BookkeepingService(store, audit_logger=audit_logger)
    return service, audit_logger
