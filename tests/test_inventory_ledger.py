"""Tests for the inventory ledger and stock delta helpers."""

import pytest

from billbook.errors import InsufficientStockError, RecordNotFoundError
from billbook.ledger.inventory import (
    InventoryLedger,
    net_quantity_changes,
    return_deltas,
    sale_deltas,
)
from billbook.models.records import InvoiceItem, Product
from billbook.services.storage import PRODUCTS, RecordRepository


@pytest.fixture
def products(store):
    return RecordRepository(store, PRODUCTS, Product)


@pytest.fixture
def ledger(products):
    return InventoryLedger(products)


@pytest.fixture
async def stocked(products, owner_id, tea):
    await products.save(owner_id, tea)
    return tea


async def _quantities(products, owner_id, product_id="tea"):
    product = await products.get(owner_id, product_id)
    return {v.id: v.quantity for v in product.variants}


class TestDeltaHelpers:
    """Tests for sale/return/net delta maps."""

    def test_sale_deltas_merge_same_variant(self, tea):
        """Test that two lines of one variant take out their sum."""
        items = [
            InvoiceItem.from_catalog(tea, tea.variants[0], quantity=2),
            InvoiceItem.from_catalog(tea, tea.variants[0], quantity=3),
            InvoiceItem.from_catalog(tea, tea.variants[1], quantity=1),
        ]
        assert sale_deltas(items) == {("tea", "A"): -5, ("tea", "B"): -1}
        assert return_deltas(items) == {("tea", "A"): 5, ("tea", "B"): 1}

    def test_net_changes_old_minus_new(self, tea):
        """Test that editing 3 -> 5 takes out 2 more."""
        old = [InvoiceItem.from_catalog(tea, tea.variants[0], quantity=3)]
        new = [InvoiceItem.from_catalog(tea, tea.variants[0], quantity=5)]
        assert net_quantity_changes(old, new) == {("tea", "A"): -2}

    def test_net_changes_drop_zero(self, tea):
        """Test that unchanged and rebalanced lines produce nothing."""
        old = [
            InvoiceItem.from_catalog(tea, tea.variants[0], quantity=4),
        ]
        new = [
            InvoiceItem.from_catalog(tea, tea.variants[0], quantity=1),
            InvoiceItem.from_catalog(tea, tea.variants[0], quantity=3),
        ]
        assert net_quantity_changes(old, new) == {}

    def test_net_changes_removed_and_added_lines(self, tea):
        """Test that a swapped variant returns one and takes the other."""
        old = [InvoiceItem.from_catalog(tea, tea.variants[0], quantity=2)]
        new = [InvoiceItem.from_catalog(tea, tea.variants[1], quantity=1)]
        assert net_quantity_changes(old, new) == {("tea", "A"): 2, ("tea", "B"): -1}


class TestInventoryLedger:
    """Tests for InventoryLedger.apply against the in-memory store."""

    async def test_sale_reduces_stock(self, store, ledger, products, owner_id, stocked):
        """Selling 3 of A and 2 of B leaves {A: 7, B: 3}."""

        async def _sell(tx):
            return await ledger.apply(tx, owner_id, {("tea", "A"): -3, ("tea", "B"): -2})

        plan = await store.run_transaction(_sell)

        assert await _quantities(products, owner_id) == {"A": 7, "B": 3}
        assert [(c.variant_id, c.before, c.after, c.delta) for c in plan.changes] == [
            ("A", 10, 7, -3),
            ("B", 5, 3, -2),
        ]

    async def test_insufficient_stock_changes_nothing(self, store, ledger, products, owner_id, stocked):
        """A request for 6 of B (5 on hand) fails and A is left untouched."""

        async def _sell(tx):
            return await ledger.apply(tx, owner_id, {("tea", "A"): -3, ("tea", "B"): -6})

        with pytest.raises(InsufficientStockError) as exc_info:
            await store.run_transaction(_sell)

        error = exc_info.value
        assert error.variant_id == "B"
        assert error.available == 5
        assert error.requested == 6
        assert error.shortfall == 1
        assert "1kg" in str(error)
        assert await _quantities(products, owner_id) == {"A": 10, "B": 5}

    async def test_stock_may_reach_zero(self, store, ledger, products, owner_id, stocked):
        """Test that selling exactly what is on hand is allowed."""

        async def _sell(tx):
            return await ledger.apply(tx, owner_id, {("tea", "B"): -5})

        await store.run_transaction(_sell)
        assert await _quantities(products, owner_id) == {"A": 10, "B": 0}

    async def test_missing_product_strict(self, store, ledger, owner_id, stocked):
        """Test that strict mode refuses unknown products."""

        async def _sell(tx):
            return await ledger.apply(tx, owner_id, {("ghost", "A"): -1})

        with pytest.raises(RecordNotFoundError) as exc_info:
            await store.run_transaction(_sell)
        assert exc_info.value.record_type == "product"

    async def test_missing_variant_strict(self, store, ledger, owner_id, stocked):
        """Test that strict mode refuses unknown variants."""

        async def _sell(tx):
            return await ledger.apply(tx, owner_id, {("tea", "Z"): -1})

        with pytest.raises(RecordNotFoundError) as exc_info:
            await store.run_transaction(_sell)
        assert exc_info.value.record_type == "variant"

    async def test_lenient_return_skips_missing(self, store, ledger, products, owner_id, stocked):
        """Test that returns to removed products or variants are skipped."""

        async def _return(tx):
            return await ledger.apply(
                tx,
                owner_id,
                {("tea", "A"): 2, ("tea", "Z"): 1, ("ghost", "A"): 4},
                lenient=True,
            )

        plan = await store.run_transaction(_return)

        assert await _quantities(products, owner_id) == {"A": 12, "B": 5}
        assert sorted(plan.skipped) == [("ghost", "A"), ("tea", "Z")]

    async def test_other_owner_product_is_invisible(self, store, ledger, owner_id, stocked):
        """Test that another owner's product cannot be adjusted."""

        async def _sell(tx):
            return await ledger.apply(tx, "someone-else", {("tea", "A"): -1})

        with pytest.raises(RecordNotFoundError):
            await store.run_transaction(_sell)

    async def test_zero_deltas_write_nothing(self, store, ledger, owner_id, stocked):
        """Test that an empty adjustment stages no product writes."""

        async def _noop(tx):
            return await ledger.apply(tx, owner_id, {("tea", "A"): 0})

        plan = await store.run_transaction(_noop)
        assert plan.products == []
        assert plan.audit_details() == []
