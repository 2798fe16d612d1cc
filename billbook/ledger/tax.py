"""
GST Calculation

Derives invoice totals from line items.

POLICY: By default every invoice is taxed as an intra-state supply: the
GST on each line is split evenly into CGST and SGST and IGST is always
zero, whatever the buyer and seller states are. Setting
TAX_INTERSTATE_IGST=true switches to the statutory rule, where a supply
between two known, different states carries the full amount as IGST.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Protocol

from billbook.models.records import TaxBreakdown


PAISE = Decimal("0.01")
HUNDRED = Decimal("100")


class TaxableLine(Protocol):
    quantity: int
    price: Decimal
    gst_rate: Decimal


def _round(amount: Decimal) -> Decimal:
    return amount.quantize(PAISE, rounding=ROUND_HALF_UP)


def is_interstate(seller_state: str, buyer_state: str) -> bool:
    """True when both states are known and differ (case-insensitive)."""
    seller = (seller_state or "").strip().casefold()
    buyer = (buyer_state or "").strip().casefold()
    return bool(seller and buyer and seller != buyer)


def calculate_invoice_taxes(
    items: Iterable[TaxableLine],
    seller_state: str = "",
    buyer_state: str = "",
    interstate_igst: bool = False,
) -> TaxBreakdown:
    """
    Compute subtotal, CGST, SGST, IGST and total for a list of lines.

    Pure and total: an empty list gives all zeros.
    """
    subtotal = Decimal("0")
    gst = Decimal("0")

    for item in items:
        line_subtotal = Decimal(item.quantity) * item.price
        subtotal += line_subtotal
        gst += line_subtotal * item.gst_rate / HUNDRED

    subtotal = _round(subtotal)

    if interstate_igst and is_interstate(seller_state, buyer_state):
        cgst = sgst = Decimal("0.00")
        igst = _round(gst)
    else:
        cgst = sgst = _round(gst / 2)
        igst = Decimal("0.00")

    return TaxBreakdown(
        subtotal=subtotal,
        cgst=cgst,
        sgst=sgst,
        igst=igst,
        total=subtotal + cgst + sgst + igst,
    )
