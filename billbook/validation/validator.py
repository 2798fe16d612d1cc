"""
Record Validation

DESIGN DECISION: Every draft is validated before anything is written.
Checks come in two kinds:

SCHEMA CHECKS (errors):
- Required fields present (names, client, at least one line/variant)
- Values in range (GST 0-100, non-negative prices and stock,
  positive quantities and amounts)
- Date order (due date not before issue date)

SEMANTIC CHECKS (warnings and storage lookups):
- A payment's linked invoice must exist for the owner (error)
- Suspicious but legal values: malformed GSTIN, invoice already overdue,
  payment larger than the balance due, future-dated expenses (warnings)

IMPORTANT: Validation NEVER silently fixes issues.
Errors block the write with RecordValidationError; warnings are
reported back for the user to review.
"""

from datetime import date
from decimal import Decimal
from typing import Callable, Optional

from billbook.errors import RecordValidationError
from billbook.models.records import (
    Client,
    Expense,
    Invoice,
    Payment,
    Product,
    ValidationIssue,
    ValidationResult,
)
from billbook.services.storage import RecordRepository


GSTIN_LENGTH = 15
MAX_GST_RATE = Decimal("100")


def _error(field: str, issue_type: str, message: str, suggested_fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
        suggested_fix=suggested_fix,
    )


def _warning(field: str, issue_type: str, message: str, suggested_fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="warning",
        suggested_fix=suggested_fix,
    )


def ensure_valid(result: ValidationResult) -> ValidationResult:
    """Raise RecordValidationError if the result has any error-level issue."""
    if result.has_errors:
        errors = [issue.message for issue in result.issues if issue.severity == "error"]
        raise RecordValidationError(
            f"Invalid {result.record_type}: " + "; ".join(errors),
            issues=result.issues,
        )
    return result


class RecordValidator:
    """
    Validates client, product, invoice, payment and expense drafts.

    Only payment validation needs storage (to confirm the linked invoice).
    """

    def __init__(
        self,
        invoices: Optional[RecordRepository[Invoice]] = None,
        clock: Callable[[], date] = date.today,
    ):
        self._invoices = invoices
        self._clock = clock

    def validate_client(self, client: Client) -> ValidationResult:
        issues = []

        if not client.name:
            issues.append(_error("name", "missing", "Client name is required"))

        if client.gstin and len(client.gstin) != GSTIN_LENGTH:
            issues.append(_warning(
                "gstin",
                "suspicious_value",
                f"GSTIN should be {GSTIN_LENGTH} characters, got {len(client.gstin)}",
                suggested_fix="Leave it blank for unregistered buyers",
            ))

        if not client.state:
            issues.append(_warning(
                "state",
                "missing",
                "Client state is blank",
                suggested_fix="Add the state so the place of supply is recorded",
            ))

        return ValidationResult(record_type="client", issues=issues)

    def validate_product(self, product: Product) -> ValidationResult:
        issues = []

        if not product.name:
            issues.append(_error("name", "missing", "Product name is required"))

        if product.gst_rate < 0 or product.gst_rate > MAX_GST_RATE:
            issues.append(_error(
                "gst_rate",
                "invalid_value",
                f"GST rate must be between 0 and 100, got {product.gst_rate}",
            ))

        if not product.variants:
            issues.append(_error(
                "variants",
                "missing",
                "A product needs at least one variant",
                suggested_fix="Add a variant named 'Default'",
            ))

        seen_ids = set()
        for index, variant in enumerate(product.variants):
            field = f"variants[{index}]"
            if not variant.name:
                issues.append(_error(f"{field}.name", "missing", "Variant name is required"))
            if variant.id in seen_ids:
                issues.append(_error(f"{field}.id", "duplicate", f"Variant ID {variant.id} is repeated"))
            seen_ids.add(variant.id)
            if variant.cost_price < 0 or variant.selling_price < 0:
                issues.append(_error(f"{field}", "invalid_value", "Prices cannot be negative"))
            if variant.quantity < 0:
                issues.append(_error(
                    f"{field}.quantity",
                    "invalid_value",
                    f"Stock for {variant.name or 'variant'} cannot be negative",
                ))
            if variant.selling_price < variant.cost_price:
                issues.append(_warning(
                    f"{field}.selling_price",
                    "suspicious_value",
                    f"{variant.name or 'Variant'} sells below cost",
                ))

        return ValidationResult(record_type="product", issues=issues)

    def validate_invoice(self, invoice: Invoice) -> ValidationResult:
        issues = []

        if not invoice.client.name:
            issues.append(_error("client", "missing", "Select a client for the invoice"))

        if not invoice.items:
            issues.append(_error("items", "missing", "An invoice needs at least one item"))

        for index, item in enumerate(invoice.items):
            field = f"items[{index}]"
            label = f"{item.product.name} ({item.variant.name})"
            if item.quantity <= 0:
                issues.append(_error(
                    f"{field}.quantity",
                    "invalid_value",
                    f"Quantity for {label} must be at least 1",
                ))
            if item.price < 0:
                issues.append(_error(f"{field}.price", "invalid_value", f"Price for {label} cannot be negative"))
            if item.gst_rate < 0 or item.gst_rate > MAX_GST_RATE:
                issues.append(_error(
                    f"{field}.gst_rate",
                    "invalid_value",
                    f"GST rate for {label} must be between 0 and 100",
                ))

        if invoice.due_date < invoice.issue_date:
            issues.append(_error(
                "due_date",
                "inconsistent",
                "Due date is before issue date",
                suggested_fix="Please verify both dates",
            ))
        elif invoice.due_date < self._clock():
            issues.append(_warning(
                "due_date",
                "past_date",
                f"Due date ({invoice.due_date}) has passed; the invoice will be overdue",
            ))

        return ValidationResult(record_type="invoice", issues=issues)

    async def validate_payment(self, owner_id: str, payment: Payment) -> ValidationResult:
        issues = []

        if not payment.client_id:
            issues.append(_error("client_id", "missing", "A payment must belong to a client"))

        if payment.amount <= 0:
            issues.append(_error("amount", "invalid_value", "Payment amount must be greater than zero"))

        if payment.invoice_id and self._invoices is not None:
            invoice = await self._invoices.get(owner_id, payment.invoice_id)
            if invoice is None:
                issues.append(_error(
                    "invoice_id",
                    "not_found",
                    f"Invoice {payment.invoice_id} does not exist",
                    suggested_fix="Record it as a standalone payment instead",
                ))
            else:
                if invoice.client.id != payment.client_id:
                    issues.append(_warning(
                        "client_id",
                        "inconsistent",
                        f"Invoice {invoice.invoice_number} belongs to a different client",
                    ))
                if payment.amount > invoice.balance_due:
                    issues.append(_warning(
                        "amount",
                        "overpayment",
                        f"Payment exceeds the balance due ({invoice.balance_due})",
                    ))

        return ValidationResult(record_type="payment", issues=issues)

    def validate_expense(self, expense: Expense) -> ValidationResult:
        issues = []

        if not expense.description:
            issues.append(_error("description", "missing", "Expense description is required"))

        if expense.amount <= 0:
            issues.append(_error("amount", "invalid_value", "Expense amount must be greater than zero"))

        if expense.date > self._clock():
            issues.append(_warning(
                "date",
                "future_date",
                f"Expense date ({expense.date}) is in the future",
                suggested_fix="Please verify the date is correct",
            ))

        return ValidationResult(record_type="expense", issues=issues)

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show to non-technical users.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if result.has_errors:
            lines.append("❌ Please fix the following:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
