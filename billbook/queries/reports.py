"""
Report Builder

DESIGN DECISION: Reports are DETERMINISTIC aggregates over stored records.
Nothing here is estimated or model-generated; the AI analysis lives in
billbook.agents and is labelled as an estimate.

Revenue has two definitions, matching the two screens that show it:
- Dashboard: what has been collected on invoices (paid_amount of Paid and
  Partially Paid invoices), bucketed by invoice issue month.
- Profit/loss: cash received (payments, including standalone ones),
  bucketed by payment date.
"""

import calendar
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Literal, Optional

from billbook.config import get_settings
from billbook.models.records import (
    Client,
    Expense,
    Invoice,
    InvoiceStatus,
    Payment,
    Product,
)
from billbook.models.reports import (
    DashboardSummary,
    LowStockItem,
    PeriodFigure,
    ProfitLossReport,
)
from billbook.services.storage import RecordRepository


COLLECTED_STATUSES = {InvoiceStatus.PAID, InvoiceStatus.PARTIALLY_PAID}
OUTSTANDING_STATUSES = {
    InvoiceStatus.UNPAID,
    InvoiceStatus.OVERDUE,
    InvoiceStatus.PARTIALLY_PAID,
}
RECENT_INVOICE_COUNT = 5
SALES_OVERVIEW_MONTHS = 6


def _sum(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, Decimal("0"))


def _month_shift(day: date, months_back: int) -> tuple[int, int]:
    """(year, month) that lies months_back calendar months before day."""
    index = day.year * 12 + (day.month - 1) - months_back
    return index // 12, index % 12 + 1


def collected_revenue(invoices: Iterable[Invoice]) -> Decimal:
    """Amount collected on paid and partially paid invoices."""
    return _sum(inv.paid_amount for inv in invoices if inv.status in COLLECTED_STATUSES)


def outstanding_balance(invoices: Iterable[Invoice]) -> Decimal:
    """Balance due on unpaid, overdue and partially paid invoices."""
    return _sum(inv.balance_due for inv in invoices if inv.status in OUTSTANDING_STATUSES)


def low_stock_items(products: Iterable[Product], threshold: int) -> list[LowStockItem]:
    """Variants at or below the threshold, lowest stock first."""
    items = [
        LowStockItem(
            product_id=product.id,
            product_name=product.name,
            variant_id=variant.id,
            variant_name=variant.name,
            quantity=variant.quantity,
        )
        for product in products
        for variant in product.variants
        if variant.quantity <= threshold
    ]
    return sorted(items, key=lambda item: (item.quantity, item.product_name, item.variant_name))


def sales_overview(
    invoices: list[Invoice],
    expenses: list[Expense],
    today: date,
    months: int = SALES_OVERVIEW_MONTHS,
) -> list[PeriodFigure]:
    """Collected sales and expenses per month for the last few months, oldest first."""
    figures = []
    for back in range(months - 1, -1, -1):
        year, month = _month_shift(today, back)
        figures.append(PeriodFigure(
            label=f"{calendar.month_abbr[month]} {year}",
            revenue=_sum(
                inv.paid_amount for inv in invoices
                if inv.status in COLLECTED_STATUSES
                and (inv.issue_date.year, inv.issue_date.month) == (year, month)
            ),
            expenses=_sum(
                e.amount for e in expenses
                if (e.date.year, e.date.month) == (year, month)
            ),
        ))
    return figures


def recent_invoices(invoices: list[Invoice], count: int = RECENT_INVOICE_COUNT) -> list[Invoice]:
    """Most recently issued invoices, newest first."""
    ordered = sorted(
        invoices,
        key=lambda inv: (inv.issue_date, inv.invoice_number or ""),
        reverse=True,
    )
    return ordered[:count]


def profit_loss(
    payments: list[Payment],
    expenses: list[Expense],
    today: date,
    period: Literal["month", "year"] = "month",
) -> ProfitLossReport:
    """
    Cash-basis profit and loss for the current month or year.

    Totals cover everything dated on or after the period start. The series
    has one bucket per day (month) or per calendar month (year).
    """
    if period == "month":
        start = today.replace(day=1)
        end = today.replace(day=calendar.monthrange(today.year, today.month)[1])
    elif period == "year":
        start = date(today.year, 1, 1)
        end = date(today.year, 12, 31)
    else:
        raise ValueError(f"Unknown period: {period}")

    period_payments = [p for p in payments if p.date >= start]
    period_expenses = [e for e in expenses if e.date >= start]

    series = []
    if period == "month":
        for day in range(1, end.day + 1):
            bucket = start.replace(day=day)
            series.append(PeriodFigure(
                label=f"Day {day}",
                revenue=_sum(p.amount for p in period_payments if p.date == bucket),
                expenses=_sum(e.amount for e in period_expenses if e.date == bucket),
            ))
    else:
        for month in range(1, 13):
            series.append(PeriodFigure(
                label=calendar.month_abbr[month],
                revenue=_sum(
                    p.amount for p in period_payments
                    if (p.date.year, p.date.month) == (today.year, month)
                ),
                expenses=_sum(
                    e.amount for e in period_expenses
                    if (e.date.year, e.date.month) == (today.year, month)
                ),
            ))

    return ProfitLossReport(
        period=period,
        start_date=start,
        end_date=end,
        total_revenue=_sum(p.amount for p in period_payments),
        total_expenses=_sum(e.amount for e in period_expenses),
        series=series,
    )


class ReportBuilder:
    """
    Loads an owner's records and builds report models from them.

    Only returns figures computed from stored data.
    """

    def __init__(
        self,
        clients: RecordRepository[Client],
        products: RecordRepository[Product],
        invoices: RecordRepository[Invoice],
        payments: RecordRepository[Payment],
        expenses: RecordRepository[Expense],
        low_stock_threshold: Optional[int] = None,
        clock: Callable[[], date] = date.today,
    ):
        self._clients = clients
        self._products = products
        self._invoices = invoices
        self._payments = payments
        self._expenses = expenses
        self._threshold = (
            get_settings().app.low_stock_threshold
            if low_stock_threshold is None
            else low_stock_threshold
        )
        self._clock = clock

    async def dashboard_summary(self, owner_id: str) -> DashboardSummary:
        today = self._clock()
        clients = await self._clients.find(owner_id)
        products = await self._products.find(owner_id)
        invoices = await self._invoices.find(owner_id)
        expenses = await self._expenses.find(owner_id)

        return DashboardSummary(
            as_of=today,
            total_revenue=collected_revenue(invoices),
            outstanding=outstanding_balance(invoices),
            total_expenses=_sum(e.amount for e in expenses),
            client_count=len(clients),
            product_count=len(products),
            recent_invoices=recent_invoices(invoices),
            sales_overview=sales_overview(invoices, expenses, today),
            low_stock=low_stock_items(products, self._threshold),
        )

    async def profit_loss(
        self,
        owner_id: str,
        period: Literal["month", "year"] = "month",
    ) -> ProfitLossReport:
        payments = await self._payments.find(owner_id)
        expenses = await self._expenses.find(owner_id)
        return profit_loss(payments, expenses, self._clock(), period)

    async def low_stock(self, owner_id: str) -> list[LowStockItem]:
        return low_stock_items(await self._products.find(owner_id), self._threshold)
