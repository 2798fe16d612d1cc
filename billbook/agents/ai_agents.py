"""
AI Insights Agent for Billbook

DESIGN DECISION: Gemini is used for three narrow, suggestion-only tasks:
1. Writing a short description for a catalog item
2. Reading line items off a supplier invoice photo
3. Summarising sales, stock and expenses into a business analysis

CRITICAL BOUNDARIES:
- The agent NEVER writes to storage. Extracted products become drafts
  that go through import_products (validation, stock ledger, expense
  posting) like any other product change.
- Financial figures in the analysis are the model's estimates and are
  labelled as such; reports (billbook.queries) are computed from
  records and never from the model.

Structured outputs are requested as JSON and parsed into pydantic models.
"""

import json
from decimal import Decimal
from typing import Any, Optional

import google.generativeai as genai
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from billbook.config import get_settings
from billbook.models.records import Expense, Invoice, Product, ProductVariant


logger = structlog.get_logger(__name__)

DESCRIPTION_FALLBACK = "Error generating description."


class InsightsError(Exception):
    """The model call failed or returned something unusable."""
    pass


class _CamelModel(BaseModel):
    """Accepts the camelCase keys used in model responses."""

    model_config = ConfigDict(populate_by_name=True)


class ExtractedProduct(_CamelModel):
    """One line item read off a supplier invoice."""

    name: str = Field(..., min_length=1)
    description: Optional[str] = ""
    hsn_sac_code: Optional[str] = Field(default="", alias="hsnSacCode")
    price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=0)


class RestockRecommendation(_CamelModel):
    product_name: str = Field(alias="productName")
    variant_name: str = Field(alias="variantName")
    current_stock: int = Field(alias="currentStock")
    reason: str


class TopSellingProduct(_CamelModel):
    product_name: str = Field(alias="productName")
    variant_name: str = Field(alias="variantName")
    units_sold: int = Field(alias="unitsSold")
    total_revenue: Decimal = Field(alias="totalRevenue")


class InventoryForecast(_CamelModel):
    product_name: str = Field(alias="productName")
    variant_name: str = Field(alias="variantName")
    suggested_order_quantity: int = Field(alias="suggestedOrderQuantity")
    reasoning: str


class PredictedSales(_CamelModel):
    next_month: Decimal = Field(alias="nextMonth")
    insight: str


class BusinessAnalysis(_CamelModel):
    """Model-generated analysis of the business. Estimates, not records."""

    restock_recommendations: list[RestockRecommendation] = Field(alias="restockRecommendations")
    top_selling_products: list[TopSellingProduct] = Field(alias="topSellingProducts")
    inventory_forecasts: list[InventoryForecast] = Field(alias="inventoryForecasts")
    predicted_sales: PredictedSales = Field(alias="predictedSales")
    overall_summary: str = Field(alias="overallSummary")


def to_product_drafts(extracted: list[ExtractedProduct]) -> list[Product]:
    """
    Turn extracted lines into product drafts for import_products.

    Each draft has a single "Default" variant priced at the extracted
    price, with no cost price and 0% GST until the owner edits it.
    """
    return [
        Product(
            name=item.name,
            description=item.description or "",
            hsn_sac_code=item.hsn_sac_code or "",
            gst_rate=Decimal("0"),
            variants=[
                ProductVariant(
                    name="Default",
                    cost_price=Decimal("0"),
                    selling_price=item.price,
                    quantity=item.quantity,
                )
            ],
        )
        for item in extracted
    ]


def _parse_json(text: str) -> Any:
    """Parse a JSON response, tolerating markdown fences around it."""
    text = text.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.startswith("json"):
            text = text[4:]
    return json.loads(text)


class InsightsAgent:
    """
    Gemini-backed helper for descriptions, invoice scanning and analysis.

    BOUNDARIES:
    - NEVER persists data
    - Returns drafts and estimates for the owner to confirm
    """

    def __init__(self, model: Optional[Any] = None):
        """
        Args:
            model: Object with an async generate_content_async(). Defaults
                   to a genai.GenerativeModel built from GeminiSettings.
        """
        self._model = model
        self._json_model = model

    def _configure_genai(self) -> None:
        """Configure Google Generative AI."""
        settings = get_settings().gemini
        genai.configure(api_key=settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=settings.model_name,
            generation_config={
                "temperature": settings.temperature,
                "max_output_tokens": settings.max_tokens,
            },
        )
        self._json_model = genai.GenerativeModel(
            model_name=settings.model_name,
            generation_config={
                "temperature": settings.temperature,
                "max_output_tokens": settings.max_tokens,
                "response_mime_type": "application/json",
            },
        )

    def _text_model(self):
        if self._model is None:
            self._configure_genai()
        return self._model

    def _structured_model(self):
        if self._json_model is None:
            self._configure_genai()
        return self._json_model

    async def generate_description(self, item_name: str) -> str:
        """
        Write a short description for a catalog item.

        Returns a fixed fallback string if the model call fails.
        """
        prompt = (
            f"Write a brief, professional description for an invoice item "
            f"named '{item_name}'. Keep it under 15 words."
        )
        try:
            response = await self._text_model().generate_content_async(prompt)
            return response.text.strip()
        except Exception as e:
            logger.warning("description_generation_failed", item_name=item_name, error=str(e))
            return DESCRIPTION_FALLBACK

    async def extract_products(
        self,
        image_bytes: bytes,
        mime_type: str,
    ) -> list[ExtractedProduct]:
        """
        Read line items from a photo of a supplier invoice.

        Entries without a usable name, price or quantity are dropped.

        Raises:
            InsightsError: If the call fails or the response is not a JSON list
        """
        prompt = (
            "Analyze this invoice image. Extract all line items and return them "
            "as a JSON array. For each item, provide 'name', 'description' (if any), "
            "'hsnSacCode' (if any), 'price' (as a number), and 'quantity' (as a number)."
        )
        try:
            response = await self._structured_model().generate_content_async(
                [{"mime_type": mime_type, "data": image_bytes}, prompt]
            )
            data = _parse_json(response.text)
        except Exception as e:
            logger.error("product_extraction_failed", error=str(e))
            raise InsightsError(f"Failed to analyze invoice: {e}")

        if isinstance(data, dict):
            data = data.get("products", [])
        if not isinstance(data, list):
            raise InsightsError("Failed to analyze invoice: expected a list of items")

        products = []
        for entry in data:
            try:
                products.append(ExtractedProduct.model_validate(entry))
            except ValidationError:
                logger.info("extracted_item_dropped", entry=str(entry)[:200])
        return products

    async def generate_business_analysis(
        self,
        products: list[Product],
        invoices: list[Invoice],
        expenses: list[Expense],
    ) -> BusinessAnalysis:
        """
        Ask the model for restock, top seller, forecast and sales insights.

        Raises:
            InsightsError: If the call fails or the response doesn't match
        """
        products_json = json.dumps([
            {
                "name": p.name,
                "variants": [
                    {
                        "name": v.name,
                        "stock": v.quantity,
                        "sellingPrice": str(v.selling_price),
                        "costPrice": str(v.cost_price),
                    }
                    for v in p.variants
                ],
            }
            for p in products
        ])
        invoices_json = json.dumps([
            {
                "date": inv.issue_date.isoformat(),
                "total": str(inv.total),
                "items": [
                    {
                        "productName": item.product.name,
                        "variantName": item.variant.name,
                        "quantity": item.quantity,
                        "price": str(item.price),
                    }
                    for item in inv.items
                ],
            }
            for inv in invoices
        ])
        expenses_json = json.dumps([
            {
                "date": e.date.isoformat(),
                "category": e.category.value,
                "amount": str(e.amount),
            }
            for e in expenses
        ])

        prompt = f"""You are an expert business analyst for a small retail store in India.
Analyze the following business data: current inventory (by variant), recent
sales invoices and business expenses.

Current Product Inventory (by variant): {products_json}
Recent Sales Invoices (by variant): {invoices_json}
Recent Business Expenses: {expenses_json}

Respond with ONLY a JSON object with these keys:
- restockRecommendations: variants low in stock with high sales velocity
  [{{"productName", "variantName", "currentStock", "reason"}}], 2-3 items
- topSellingProducts: top 3 variants by revenue
  [{{"productName", "variantName", "unitsSold", "totalRevenue"}}]
- inventoryForecasts: suggested order quantity next month for the top 3
  [{{"productName", "variantName", "suggestedOrderQuantity", "reasoning"}}]
- predictedSales: {{"nextMonth": number, "insight": string}}
- overallSummary: 2-3 actionable sentences for the owner"""

        try:
            response = await self._structured_model().generate_content_async(prompt)
            return BusinessAnalysis.model_validate(_parse_json(response.text))
        except Exception as e:
            logger.error("business_analysis_failed", error=str(e))
            raise InsightsError(f"Failed to generate analysis: {e}")
