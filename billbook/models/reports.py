"""
Report Models

Read-only aggregates computed from stored records for the dashboard
and the profit/loss screen. Nothing here is persisted.
"""

from datetime import date
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from billbook.models.records import Invoice


class PeriodFigure(BaseModel):
    """Inflow and outflow for one bucket of a chart series."""

    label: str = Field(
        ...,
        description="Bucket label, e.g. 'Oct 2026' or 'Day 17'"
    )
    revenue: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")


class LowStockItem(BaseModel):
    """A variant at or below the low-stock threshold."""

    product_id: str
    product_name: str
    variant_id: str
    variant_name: str
    quantity: int


class DashboardSummary(BaseModel):
    """Headline numbers for the dashboard."""

    as_of: date
    total_revenue: Decimal = Field(
        ...,
        description="Amount collected on paid and partially paid invoices"
    )
    outstanding: Decimal = Field(
        ...,
        description="Balance still due on unpaid, overdue and partially paid invoices"
    )
    total_expenses: Decimal
    client_count: int = Field(ge=0)
    product_count: int = Field(ge=0)
    recent_invoices: list[Invoice] = Field(default_factory=list)
    sales_overview: list[PeriodFigure] = Field(
        default_factory=list,
        description="Last six months, oldest first"
    )
    low_stock: list[LowStockItem] = Field(default_factory=list)


class ProfitLossReport(BaseModel):
    """Cash-basis profit and loss for the current month or year."""

    period: Literal["month", "year"]
    start_date: date
    end_date: date
    total_revenue: Decimal
    total_expenses: Decimal
    series: list[PeriodFigure] = Field(default_factory=list)

    @property
    def profit_loss(self) -> Decimal:
        return self.total_revenue - self.total_expenses

    @property
    def is_profitable(self) -> bool:
        return self.profit_loss >= 0
