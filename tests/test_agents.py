"""
Tests for the Gemini insights agent.

The model is replaced by a fake with the same generate_content_async
coroutine; nothing here calls the network.
"""

import json
from decimal import Decimal

import pytest

from billbook.agents import (
    BusinessAnalysis,
    ExtractedProduct,
    InsightsAgent,
    InsightsError,
    to_product_drafts,
)
from billbook.agents.ai_agents import DESCRIPTION_FALLBACK
from billbook.models.audit import AuditEventType
from billbook.orchestrator import BookkeepingService


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    """Replies with canned text, or raises the given error."""

    def __init__(self, text="", error=None):
        self.text = text
        self.error = error
        self.calls = []

    async def generate_content_async(self, contents):
        self.calls.append(contents)
        if self.error is not None:
            raise self.error
        return FakeResponse(self.text)


ANALYSIS = {
    "restockRecommendations": [
        {"productName": "Assam Tea", "variantName": "1kg", "currentStock": 2, "reason": "Sells fast"},
    ],
    "topSellingProducts": [
        {"productName": "Assam Tea", "variantName": "250g", "unitsSold": 40, "totalRevenue": 4000},
    ],
    "inventoryForecasts": [
        {"productName": "Assam Tea", "variantName": "250g", "suggestedOrderQuantity": 45,
         "reasoning": "Steady demand"},
    ],
    "predictedSales": {"nextMonth": 52000.5, "insight": "Festive season"},
    "overallSummary": "Restock the 1kg pack.",
}


class TestGenerateDescription:
    """Tests for item descriptions."""

    async def test_returns_model_text(self):
        model = FakeModel("  Premium whole-leaf Assam tea.  \n")
        agent = InsightsAgent(model=model)
        assert await agent.generate_description("Assam Tea") == "Premium whole-leaf Assam tea."
        assert "Assam Tea" in model.calls[0]

    async def test_falls_back_on_error(self):
        agent = InsightsAgent(model=FakeModel(error=RuntimeError("quota")))
        assert await agent.generate_description("Assam Tea") == DESCRIPTION_FALLBACK


class TestExtractProducts:
    """Tests for reading supplier invoice photos."""

    async def test_parses_list_and_sends_image(self):
        model = FakeModel(json.dumps([
            {"name": "Sugar", "description": "1kg bag", "hsnSacCode": "1701", "price": 42.5, "quantity": 10},
            {"name": "Salt", "price": 20, "quantity": 5},
        ]))
        agent = InsightsAgent(model=model)

        products = await agent.extract_products(b"\x89PNG", "image/png")

        assert [p.name for p in products] == ["Sugar", "Salt"]
        assert products[0].hsn_sac_code == "1701"
        assert products[0].price == Decimal("42.5")
        image_part = model.calls[0][0]
        assert image_part == {"mime_type": "image/png", "data": b"\x89PNG"}

    async def test_tolerates_fences_wrapper_and_nulls(self):
        text = "```json\n" + json.dumps({"products": [
            {"name": "Sugar", "description": None, "hsnSacCode": None, "price": 40, "quantity": 1},
        ]}) + "\n```"
        products = await InsightsAgent(model=FakeModel(text)).extract_products(b"x", "image/jpeg")
        assert len(products) == 1
        assert products[0].description is None

    async def test_drops_unusable_entries(self):
        model = FakeModel(json.dumps([
            {"name": "", "price": 10, "quantity": 1},
            {"name": "No price", "quantity": 1},
            {"name": "Negative", "price": 10, "quantity": -2},
            {"name": "Good", "price": 10, "quantity": 2},
        ]))
        products = await InsightsAgent(model=model).extract_products(b"x", "image/jpeg")
        assert [p.name for p in products] == ["Good"]

    async def test_non_list_response(self):
        agent = InsightsAgent(model=FakeModel('"just a string"'))
        with pytest.raises(InsightsError):
            await agent.extract_products(b"x", "image/jpeg")

    async def test_model_error(self):
        agent = InsightsAgent(model=FakeModel(error=RuntimeError("timeout")))
        with pytest.raises(InsightsError, match="timeout"):
            await agent.extract_products(b"x", "image/jpeg")

    def test_to_product_drafts(self):
        drafts = to_product_drafts([
            ExtractedProduct(name="Sugar", hsn_sac_code="1701", price=Decimal("42"), quantity=10),
        ])
        draft = drafts[0]
        assert draft.name == "Sugar"
        assert draft.gst_rate == Decimal("0")
        assert [(v.name, v.cost_price, v.selling_price, v.quantity) for v in draft.variants] == [
            ("Default", Decimal("0"), Decimal("42"), 10),
        ]


class TestBusinessAnalysis:
    """Tests for the model-generated business analysis."""

    async def test_parses_analysis(self, tea):
        model = FakeModel(json.dumps(ANALYSIS))
        analysis = await InsightsAgent(model=model).generate_business_analysis([tea], [], [])

        assert isinstance(analysis, BusinessAnalysis)
        assert analysis.restock_recommendations[0].current_stock == 2
        assert analysis.top_selling_products[0].total_revenue == Decimal("4000")
        assert analysis.predicted_sales.next_month == Decimal("52000.5")
        assert '"name": "Assam Tea"' in model.calls[0]

    async def test_malformed_analysis(self, tea):
        agent = InsightsAgent(model=FakeModel(json.dumps({"overallSummary": "?"})))
        with pytest.raises(InsightsError):
            await agent.generate_business_analysis([tea], [], [])


class TestServiceInsights:
    """Tests for the service entry points that use the agent."""

    async def test_scan_returns_drafts_without_saving(
        self, store, audit_logger, app_settings, owner_id, today
    ):
        model = FakeModel(json.dumps([{"name": "Sugar", "price": 40, "quantity": 3}]))
        service = BookkeepingService(
            store,
            audit_logger=audit_logger,
            insights_agent=InsightsAgent(model=model),
            app_settings=app_settings,
            clock=lambda: today,
        )

        drafts = await service.scan_product_drafts(owner_id, b"img", "image/png")

        assert [d.name for d in drafts] == ["Sugar"]
        assert await service.list_products(owner_id) == []

        await service.import_products(owner_id, drafts)
        assert (await service.list_products(owner_id))[0].total_stock == 3

    async def test_scan_failure_is_audited(
        self, store, audit_logger, audit_storage, app_settings, owner_id
    ):
        service = BookkeepingService(
            store,
            audit_logger=audit_logger,
            insights_agent=InsightsAgent(model=FakeModel(error=RuntimeError("quota"))),
            app_settings=app_settings,
        )

        with pytest.raises(InsightsError):
            await service.scan_product_drafts(owner_id, b"img", "image/png")

        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.EXTERNAL_SERVICE_ERROR
        assert event.details == {"service": "gemini"}
