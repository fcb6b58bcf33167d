"""
Ledger Kernel - voucher posting and ledger consistency core.

Turns draft financial documents (invoices, credit notes, manual vouchers,
purchase vouchers) into immutable ledger records with:
- Balanced debit/credit lines
- Gap-free numbering per organization and document type
- Period lock enforcement
- Tenant isolation on every read and write
- A hash-chained audit trail
"""

__version__ = "0.1.0"
