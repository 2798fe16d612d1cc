"""
Inventory Expense Auto-Poster

Stock bought in is an expense. Rather than one expense per product save,
all purchases of a day are folded into a single "Inventory" expense:

    Inventory Purchase: 10 x Tea (250g), 4 x Tea (1kg); 6 x Sugar (Default)

The first posting of the day creates the record, later ones add to its
amount and append "; <items>" to its description.
"""

from datetime import date
from decimal import Decimal
from typing import Callable, Optional

from pydantic import BaseModel

from billbook.audit import AuditLogger
from billbook.models.records import Expense, ExpenseCategory, Product, ProductVariant
from billbook.services.storage import RecordRepository, Transaction


DESCRIPTION_PREFIX = "Inventory Purchase"


class InventoryPurchase(BaseModel):
    """Units of one variant brought into stock at a unit cost."""

    name: str
    quantity: int
    unit_cost: Decimal

    @property
    def cost(self) -> Decimal:
        return self.unit_cost * self.quantity

    @property
    def label(self) -> str:
        return f"{self.quantity} x {self.name}"


def purchase_for(product: Product, variant: ProductVariant, quantity: int) -> InventoryPurchase:
    return InventoryPurchase(
        name=f"{product.name} ({variant.name})",
        quantity=quantity,
        unit_cost=variant.cost_price,
    )


def stock_purchases(product: Product, previous: Optional[Product] = None) -> list[InventoryPurchase]:
    """
    Purchases implied by saving a product.

    Each variant whose quantity went up (from zero for new variants or
    products) and that has a positive cost price is a purchase.
    """
    purchases = []
    for variant in product.variants:
        old = previous.find_variant(variant.id) if previous else None
        increase = variant.quantity - (old.quantity if old else 0)
        if increase > 0 and variant.cost_price > 0:
            purchases.append(purchase_for(product, variant, increase))
    return purchases


class ExpensePosting(BaseModel):
    """Computed result of InventoryExpensePoster.plan(), ready to be staged."""

    expense: Expense
    amount: Decimal
    item_count: int


class InventoryExpensePoster:
    """
    Folds inventory purchases into the day's Inventory expense.

    Runs inside the caller's transaction, in the same two phases as the
    inventory ledger, so the stock change and its expense commit together:
    1. plan()  - read the day's Inventory expense and compute the new one
    2. stage() - write it
    """

    def __init__(
        self,
        expenses: RecordRepository[Expense],
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], date] = date.today,
    ):
        self._expenses = expenses
        self._audit = audit_logger or AuditLogger()
        self._clock = clock

    async def plan(
        self,
        tx: Transaction,
        owner_id: str,
        purchases: list[InventoryPurchase],
        on: Optional[date] = None,
    ) -> Optional[ExpensePosting]:
        """
        Read the day's Inventory expense and add the purchases to it.

        Returns None if there was nothing with a positive cost to post,
        in which case nothing is read.
        """
        purchases = [p for p in purchases if p.quantity > 0 and p.unit_cost > 0]
        if not purchases:
            return None

        day = on or self._clock()
        amount = sum((p.cost for p in purchases), Decimal("0"))
        items = ", ".join(p.label for p in purchases)

        existing = await self._expenses.tx_find(
            tx,
            owner_id,
            date=day.isoformat(),
            category=ExpenseCategory.INVENTORY.value,
        )
        if existing:
            expense = existing[0]
            current = expense.description or DESCRIPTION_PREFIX
            expense = expense.model_copy(update={
                "amount": expense.amount + amount,
                "description": f"{current}; {items}",
            })
        else:
            expense = Expense(
                date=day,
                category=ExpenseCategory.INVENTORY,
                description=f"{DESCRIPTION_PREFIX}: {items}",
                amount=amount,
            )
        return ExpensePosting(expense=expense, amount=amount, item_count=len(purchases))

    def stage(self, tx: Transaction, owner_id: str, posting: Optional[ExpensePosting]) -> None:
        if posting is not None:
            self._expenses.tx_save(tx, owner_id, posting.expense)

    async def log_posted(self, owner_id: str, posting: Optional[ExpensePosting]) -> None:
        """Audit a committed posting."""
        if posting is None:
            return
        await self._audit.log_inventory_expense_posted(
            owner_id=owner_id,
            expense_id=posting.expense.id,
            amount=posting.amount,
            item_count=posting.item_count,
        )
