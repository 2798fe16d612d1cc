"""
Invoice/inventory consistency engine.

Tax calculation, stock ledger, settlement status, invoice transactions
and inventory expense posting.
"""

from billbook.ledger.coordinator import InvoiceCoordinator, next_invoice_number, parse_invoice_number
from billbook.ledger.expenses import (
    ExpensePosting,
    InventoryExpensePoster,
    InventoryPurchase,
    purchase_for,
    stock_purchases,
)
from billbook.ledger.inventory import (
    InventoryLedger,
    StockChange,
    StockPlan,
    net_quantity_changes,
    return_deltas,
    sale_deltas,
)
from billbook.ledger.status import (
    InvoiceStatusReconciler,
    derive_invoice_status,
    settle,
    settlement_fields,
)
from billbook.ledger.tax import calculate_invoice_taxes, is_interstate

__all__ = [
    "InvoiceCoordinator",
    "next_invoice_number",
    "parse_invoice_number",
    "ExpensePosting",
    "InventoryExpensePoster",
    "InventoryPurchase",
    "purchase_for",
    "stock_purchases",
    "InventoryLedger",
    "StockChange",
    "StockPlan",
    "net_quantity_changes",
    "return_deltas",
    "sale_deltas",
    "InvoiceStatusReconciler",
    "derive_invoice_status",
    "settle",
    "settlement_fields",
    "calculate_invoice_taxes",
    "is_interstate",
]
