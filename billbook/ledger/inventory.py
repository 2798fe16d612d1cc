"""
Inventory Ledger

The only write path for ProductVariant.quantity.

Adjustments are (product_id, variant_id) -> delta maps: negative deltas
take stock out (a sale), positive deltas put it back (an edit that
reduces a line, or a deleted invoice).

An adjustment runs in two phases inside the caller's transaction:
1. plan()  - read every affected product and compute new quantities
2. stage() - write the changed variant lists

Keeping them separate lets a caller finish all of its own reads before
any write is staged. If any variant would go below zero, plan() raises
InsufficientStockError and nothing is staged, so the whole transaction
aborts with no visible effect.
"""

from collections import defaultdict
from typing import Iterable, Optional

import structlog
from pydantic import BaseModel, Field

from billbook.errors import InsufficientStockError, RecordNotFoundError
from billbook.models.records import InvoiceItem, Product
from billbook.services.storage import RecordRepository, Transaction


logger = structlog.get_logger(__name__)

StockKey = tuple[str, str]


def sale_deltas(items: Iterable[InvoiceItem]) -> dict[StockKey, int]:
    """Stock taken out by a set of invoice lines."""
    deltas: dict[StockKey, int] = defaultdict(int)
    for item in items:
        deltas[item.stock_key] -= item.quantity
    return dict(deltas)


def return_deltas(items: Iterable[InvoiceItem]) -> dict[StockKey, int]:
    """Stock given back when invoice lines are removed."""
    return {key: -delta for key, delta in sale_deltas(items).items()}


def net_quantity_changes(
    old_items: Iterable[InvoiceItem],
    new_items: Iterable[InvoiceItem],
) -> dict[StockKey, int]:
    """
    Net stock change for editing an invoice: old quantity minus new quantity.

    Lines are matched by (product, variant), not by line ID, so moving a
    quantity between two lines of the same variant changes nothing.
    Zero entries are dropped.
    """
    changes: dict[StockKey, int] = defaultdict(int)
    for item in old_items:
        changes[item.stock_key] += item.quantity
    for item in new_items:
        changes[item.stock_key] -= item.quantity
    return {key: change for key, change in changes.items() if change != 0}


class StockChange(BaseModel):
    """One variant's quantity before and after an adjustment."""

    product_id: str
    product_name: str
    variant_id: str
    variant_name: str
    before: int
    after: int

    @property
    def delta(self) -> int:
        return self.after - self.before


class StockPlan(BaseModel):
    """Computed result of plan(), ready to be staged."""

    products: list[Product] = Field(default_factory=list)
    changes: list[StockChange] = Field(default_factory=list)
    skipped: list[StockKey] = Field(default_factory=list)

    def audit_details(self) -> list[dict]:
        return [change.model_dump() for change in self.changes]


class InventoryLedger:
    """
    Applies stock deltas to products inside a transaction.

    Strict mode (the default) raises RecordNotFoundError for a product or
    variant that does not exist. Lenient mode skips them instead; it is
    used when returning stock from a deleted invoice, where the product
    may legitimately have been removed since.
    """

    def __init__(self, products: RecordRepository[Product]):
        self._products = products

    async def plan(
        self,
        tx: Transaction,
        owner_id: str,
        deltas: dict[StockKey, int],
        lenient: bool = False,
    ) -> StockPlan:
        """Read affected products and compute new quantities. Reads only."""
        by_product: dict[str, dict[str, int]] = defaultdict(dict)
        for (product_id, variant_id), delta in deltas.items():
            if delta:
                by_product[product_id][variant_id] = (
                    by_product[product_id].get(variant_id, 0) + delta
                )

        loaded: list[tuple[str, Optional[Product]]] = []
        for product_id in by_product:
            loaded.append((product_id, await self._products.tx_get(tx, owner_id, product_id)))

        plan = StockPlan()
        for product_id, product in loaded:
            variant_deltas = by_product[product_id]
            if product is None:
                if lenient:
                    plan.skipped.extend((product_id, v) for v in variant_deltas)
                    continue
                raise RecordNotFoundError("product", product_id)

            touched = False
            for variant_id, delta in variant_deltas.items():
                if delta == 0:
                    continue
                variant = product.find_variant(variant_id)
                if variant is None:
                    if lenient:
                        plan.skipped.append((product_id, variant_id))
                        continue
                    raise RecordNotFoundError(
                        "variant",
                        variant_id,
                        f"Variant {variant_id} of {product.name} not found.",
                    )

                new_quantity = variant.quantity + delta
                if new_quantity < 0:
                    raise InsufficientStockError(
                        product_id=product_id,
                        variant_id=variant_id,
                        product_name=product.name,
                        variant_name=variant.name,
                        available=variant.quantity,
                        requested=-delta,
                    )

                plan.changes.append(StockChange(
                    product_id=product_id,
                    product_name=product.name,
                    variant_id=variant_id,
                    variant_name=variant.name,
                    before=variant.quantity,
                    after=new_quantity,
                ))
                variant.quantity = new_quantity
                touched = True

            if touched:
                plan.products.append(product)

        if plan.skipped:
            logger.warning(
                "stock_return_skipped",
                owner_id=owner_id,
                skipped=[f"{p}/{v}" for p, v in plan.skipped],
            )
        return plan

    def stage(self, tx: Transaction, plan: StockPlan) -> None:
        """Stage the variant writes computed by plan(). Writes only."""
        for product in plan.products:
            self._products.tx_update(
                tx,
                product.id,
                {"variants": [v.model_dump(mode="json") for v in product.variants]},
            )

    async def apply(
        self,
        tx: Transaction,
        owner_id: str,
        deltas: dict[StockKey, int],
        lenient: bool = False,
    ) -> StockPlan:
        """plan() then stage(), for callers with no other reads to make."""
        plan = await self.plan(tx, owner_id, deltas, lenient=lenient)
        self.stage(tx, plan)
        return plan
