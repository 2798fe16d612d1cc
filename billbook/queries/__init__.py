"""Reporting package."""

from billbook.queries.reports import ReportBuilder, low_stock_items, profit_loss, sales_overview

__all__ = ["ReportBuilder", "low_stock_items", "profit_loss", "sales_overview"]
