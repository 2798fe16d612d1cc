"""
Domain Errors for Billbook

Every mutation entry point either commits completely or raises one of
these. The caller (UI, API layer) decides how to present them.

Storage-level failures live in billbook.services.storage.
"""

from typing import Optional


class BillbookError(Exception):
    """Base exception for all business-rule failures."""
    pass


class RecordValidationError(BillbookError):
    """A draft failed validation. Nothing was written."""
    
    def __init__(self, message: str, issues: Optional[list] = None):
        self.issues = issues or []
        super().__init__(message)


class DuplicateInvoiceNumberError(RecordValidationError):
    """The invoice number is already used by this owner."""
    
    def __init__(self, invoice_number: str):
        self.invoice_number = invoice_number
        super().__init__(f"Invoice number {invoice_number} is already in use.")


class IntegrityGuardError(BillbookError):
    """A record is still referenced by an invoice and cannot be deleted."""
    
    def __init__(self, record_type: str, record_id: str, message: str):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(message)


class RecordNotFoundError(BillbookError):
    """A record is missing (never existed or vanished concurrently)."""
    
    def __init__(self, record_type: str, record_id: str, message: Optional[str] = None):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(message or f"{record_type.capitalize()} with ID {record_id} not found.")


class InsufficientStockError(BillbookError):
    """
    Applying a stock adjustment would drive a variant below zero.
    
    Raised inside a transaction, so the whole transaction aborts.
    """
    
    def __init__(
        self,
        product_id: str,
        variant_id: str,
        product_name: str,
        variant_name: str,
        available: int,
        requested: int,
    ):
        self.product_id = product_id
        self.variant_id = variant_id
        self.product_name = product_name
        self.variant_name = variant_name
        self.available = available
        self.requested = requested
        super().__init__(
            f"Not enough stock for {product_name} ({variant_name}): "
            f"{available} available, {requested} requested."
        )
    
    @property
    def shortfall(self) -> int:
        return self.requested - self.available
