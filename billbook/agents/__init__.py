"""AI Agents package."""

from billbook.agents.ai_agents import (
    BusinessAnalysis,
    ExtractedProduct,
    InsightsAgent,
    InsightsError,
    InventoryForecast,
    PredictedSales,
    RestockRecommendation,
    TopSellingProduct,
    to_product_drafts,
)

__all__ = [
    "BusinessAnalysis",
    "ExtractedProduct",
    "InsightsAgent",
    "InsightsError",
    "InventoryForecast",
    "PredictedSales",
    "RestockRecommendation",
    "TopSellingProduct",
    "to_product_drafts",
]
