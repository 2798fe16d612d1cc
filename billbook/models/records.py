"""
Core Data Models for Billbook

These models define the schemas for every record kept in the document store.
They are designed to:
1. Enforce type safety at runtime
2. Be serializable to JSON-compatible documents
3. Keep invoice history immutable (items embed catalog snapshots)

DESIGN DECISION: Models carry types and shapes only. Business rules
(required names, positive amounts, stock limits) are enforced by the
validator and the ledger so that failures surface as domain errors.

Every record is stored with an owner_id field, which is added and
stripped by the repository layer rather than carried on the model.
"""

import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


def new_record_id() -> str:
    """Generate a document ID."""
    return uuid4().hex


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class InvoiceStatus(str, Enum):
    """
    Invoice settlement status.

    CRITICAL: Status is derived from payments, total and due date.
    It is never set directly by the user.
    """
    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"


class PaymentMode(str, Enum):
    """How a payment was received."""
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    UPI = "upi"
    OTHER = "other"


class ExpenseCategory(str, Enum):
    """
    Supported expense categories.

    INVENTORY is also used by the auto-poster for stock purchases.
    """
    INVENTORY = "inventory"
    MARKETING = "marketing"
    UTILITIES = "utilities"
    SALARY = "salary"
    OTHER = "other"


# =============================================================================
# STORAGE MIXIN
# =============================================================================

class StoredRecord(BaseModel):
    """Base for records that live in a collection keyed by ``id``."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_record_id,
        description="Document ID"
    )

    def to_document(self) -> dict[str, Any]:
        """JSON-compatible document body (the ID is the document key)."""
        return self.model_dump(mode="json", exclude={"id"})

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]):
        """Rebuild a record from a stored document."""
        return cls.model_validate({**data, "id": doc_id})


# =============================================================================
# CATALOG
# =============================================================================

class Client(StoredRecord):
    """A customer that invoices are issued to."""

    name: str = Field(
        ...,
        max_length=200,
        description="Client or business name"
    )
    gstin: str = Field(
        default="",
        max_length=15,
        description="GST registration number (blank for unregistered buyers)"
    )
    address: str = ""
    state: str = Field(
        default="",
        description="State used as the place of supply"
    )
    contact: str = ""


class ProductVariant(BaseModel):
    """
    A purchasable configuration of a product (size, colour, pack).

    Carries its own prices and stock count.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_record_id)
    name: str
    cost_price: Decimal = Field(default=Decimal("0"), ge=0)
    selling_price: Decimal = Field(default=Decimal("0"), ge=0)
    quantity: int = Field(
        default=0,
        description="Units on hand"
    )


class Product(StoredRecord):
    """
    A catalog product with one or more variants.

    Documents written before variants existed held prices and quantity
    directly on the product; they are read back as a single "Default"
    variant.
    """

    name: str = Field(..., max_length=200)
    description: str = ""
    hsn_sac_code: str = Field(
        default="",
        max_length=20,
        description="HSN (goods) or SAC (services) tariff code"
    )
    gst_rate: Decimal = Field(
        default=Decimal("0"),
        description="GST percentage"
    )
    variants: list[ProductVariant] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def upgrade_legacy_document(cls, data: Any) -> Any:
        """Convert flat legacy documents into a single default variant."""
        if not isinstance(data, dict):
            return data
        if data.get("variants") or data.get("selling_price") is None:
            return data

        data = dict(data)
        data["variants"] = [{
            "id": f"default_{data.get('id', '')}",
            "name": "Default",
            "cost_price": data.pop("cost_price", None) or 0,
            "selling_price": data.pop("selling_price"),
            "quantity": data.pop("quantity", None) or 0,
        }]
        return data

    def find_variant(self, variant_id: str) -> Optional[ProductVariant]:
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None

    @property
    def total_stock(self) -> int:
        return sum(variant.quantity for variant in self.variants)


# =============================================================================
# INVOICING
# =============================================================================

class InvoiceItem(BaseModel):
    """
    One line on an invoice.

    DESIGN DECISION: product and variant are full copies taken when the
    line was added. Later catalog edits must not rewrite invoice history.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_record_id,
        description="Unique within the invoice"
    )
    product: Product
    variant: ProductVariant
    description: str = ""
    quantity: int
    price: Decimal = Field(
        ...,
        description="Selling price per unit for this invoice"
    )
    gst_rate: Decimal = Field(
        ...,
        description="GST rate at the time of sale"
    )

    @classmethod
    def from_catalog(
        cls,
        product: Product,
        variant: ProductVariant,
        quantity: int,
        price: Optional[Decimal] = None,
    ) -> "InvoiceItem":
        """Snapshot a catalog product/variant into a new line item."""
        return cls(
            product=product.model_copy(deep=True),
            variant=variant.model_copy(deep=True),
            description=product.description,
            quantity=quantity,
            price=variant.selling_price if price is None else price,
            gst_rate=product.gst_rate,
        )

    @property
    def stock_key(self) -> tuple[str, str]:
        return self.product.id, self.variant.id

    @property
    def line_subtotal(self) -> Decimal:
        return self.price * self.quantity


class Invoice(StoredRecord):
    """
    A sales invoice.

    subtotal/cgst/sgst/igst/total are derived from items by the tax
    calculator; paid_amount and status are derived from linked payments.
    Values supplied by callers for these fields are overwritten.
    """

    invoice_number: Optional[str] = Field(
        default=None,
        description="Allocated on creation when left empty"
    )
    client: Client = Field(
        ...,
        description="Snapshot of the client at invoice time"
    )
    items: list[InvoiceItem] = Field(default_factory=list)
    issue_date: datetime.date = Field(default_factory=datetime.date.today)
    due_date: datetime.date = Field(default_factory=datetime.date.today)
    status: InvoiceStatus = InvoiceStatus.UNPAID

    subtotal: Decimal = Decimal("0")
    cgst: Decimal = Decimal("0")
    sgst: Decimal = Decimal("0")
    igst: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    paid_amount: Decimal = Decimal("0")

    @property
    def balance_due(self) -> Decimal:
        return self.total - self.paid_amount

    def references_product(self, product_id: str) -> bool:
        return any(item.product.id == product_id for item in self.items)


class Payment(StoredRecord):
    """
    Money received from a client.

    invoice_id is None for standalone payments (advances, on-account).
    """

    invoice_id: Optional[str] = None
    client_id: str
    amount: Decimal
    date: datetime.date = Field(default_factory=datetime.date.today)
    mode: PaymentMode = PaymentMode.UPI
    notes: Optional[str] = Field(default=None, max_length=1000)


class Expense(StoredRecord):
    """A business expense."""

    date: datetime.date = Field(default_factory=datetime.date.today)
    category: ExpenseCategory
    description: str = ""
    amount: Decimal


class BusinessProfile(BaseModel):
    """
    The seller's own details. One per owner.

    state is the seller jurisdiction used by the tax calculator.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str
    address: str = ""
    gstin: str = ""
    contact: str = ""
    state: str = ""


# =============================================================================
# DERIVED VALUES
# =============================================================================

class TaxBreakdown(BaseModel):
    """Totals produced by the tax calculator."""

    subtotal: Decimal = Decimal("0")
    cgst: Decimal = Decimal("0")
    sgst: Decimal = Decimal("0")
    igst: Decimal = Decimal("0")
    total: Decimal = Decimal("0")


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'not_found')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="How the user can resolve it"
    )


class ValidationResult(BaseModel):
    """Result of validating one draft record."""

    record_type: str
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]
