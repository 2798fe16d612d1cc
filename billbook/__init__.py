"""
Billbook - Source Package

Invoicing and bookkeeping backend for small GST-registered businesses:
clients, products with variants, invoices, payments and expenses kept
in a hosted document store.

DESIGN PRINCIPLES:
1. Stock and invoice data never diverge
2. Derived fields are recomputed, never hand-edited
3. Every mutation is all-or-nothing
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Billbook Team"
