"""Tests for GST calculation."""

from decimal import Decimal

import pytest

from billbook.ledger.tax import calculate_invoice_taxes, is_interstate
from billbook.models.records import InvoiceItem


def _line(tea, quantity, price, gst_rate="18"):
    item = InvoiceItem.from_catalog(tea, tea.variants[0], quantity=quantity, price=Decimal(price))
    return item.model_copy(update={"gst_rate": Decimal(gst_rate)})


class TestCalculateInvoiceTaxes:
    """Tests for calculate_invoice_taxes."""

    def test_single_line_split_into_cgst_and_sgst(self, tea):
        """1 x 1000 at 18% is 90 + 90 on top of 1000."""
        taxes = calculate_invoice_taxes([_line(tea, 1, "1000")])
        assert taxes.subtotal == Decimal("1000.00")
        assert taxes.cgst == Decimal("90.00")
        assert taxes.sgst == Decimal("90.00")
        assert taxes.igst == Decimal("0.00")
        assert taxes.total == Decimal("1180.00")

    def test_empty_items_give_zeros(self):
        """Test that no lines means all zero totals."""
        taxes = calculate_invoice_taxes([])
        assert taxes.subtotal == 0
        assert taxes.total == 0

    def test_mixed_rates(self, tea):
        """Test that each line is taxed at its own rate."""
        taxes = calculate_invoice_taxes([
            _line(tea, 2, "100", "5"),
            _line(tea, 1, "300", "12"),
        ])
        # 200 @ 5% = 10, 300 @ 12% = 36
        assert taxes.subtotal == Decimal("500.00")
        assert taxes.cgst == Decimal("23.00")
        assert taxes.sgst == Decimal("23.00")
        assert taxes.total == Decimal("546.00")

    def test_rounding_half_up_to_paise(self, tea):
        """Test that halves round up at the second decimal."""
        # 0.25 @ 18% = 0.045 -> 0.0225 per half -> 0.02 each
        taxes = calculate_invoice_taxes([_line(tea, 1, "0.25")])
        assert taxes.cgst == Decimal("0.02")
        # 0.75 @ 18% = 0.135 -> 0.0675 per half -> 0.07 each
        taxes = calculate_invoice_taxes([_line(tea, 1, "0.75")])
        assert taxes.cgst == Decimal("0.07")

    def test_different_states_still_split_by_default(self, tea):
        """Test that IGST is not charged unless the policy is switched on."""
        taxes = calculate_invoice_taxes(
            [_line(tea, 1, "1000")],
            seller_state="Karnataka",
            buyer_state="Maharashtra",
        )
        assert taxes.igst == Decimal("0.00")
        assert taxes.cgst == Decimal("90.00")

    def test_interstate_policy_charges_igst(self, tea):
        """Test the full amount goes to IGST for an interstate supply."""
        taxes = calculate_invoice_taxes(
            [_line(tea, 1, "1000")],
            seller_state="Karnataka",
            buyer_state="Maharashtra",
            interstate_igst=True,
        )
        assert taxes.igst == Decimal("180.00")
        assert taxes.cgst == Decimal("0.00")
        assert taxes.sgst == Decimal("0.00")
        assert taxes.total == Decimal("1180.00")

    def test_interstate_policy_same_state(self, tea):
        """Test that the same state is intra-state even with the policy on."""
        taxes = calculate_invoice_taxes(
            [_line(tea, 1, "1000")],
            seller_state="Karnataka",
            buyer_state=" karnataka ",
            interstate_igst=True,
        )
        assert taxes.igst == Decimal("0.00")
        assert taxes.cgst == Decimal("90.00")


class TestIsInterstate:
    """Tests for is_interstate."""

    @pytest.mark.parametrize("seller,buyer,expected", [
        ("Karnataka", "Maharashtra", True),
        ("Karnataka", "KARNATAKA", False),
        ("", "Maharashtra", False),
        ("Karnataka", "", False),
    ])
    def test_is_interstate(self, seller, buyer, expected):
        assert is_interstate(seller, buyer) is expected
