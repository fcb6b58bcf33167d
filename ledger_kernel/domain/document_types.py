"""
DocumentTypeClass -- the tagged variant over bookable documents.

Invoices, credit notes, manual vouchers and purchase vouchers share one
Voucher shape and one posting pipeline.  The document type only selects the
numbering sequence and, for reversals, the type of the reversing voucher.
"""

from enum import Enum

from ledger_kernel.exceptions import ValidationError


class DocumentTypeClass(str, Enum):
    """Bookable document types.  Each has its own number sequence per organization."""

    INVOICE = "invoice"
    CREDIT_NOTE = "credit_note"
    MANUAL_VOUCHER = "manual_voucher"
    PURCHASE_VOUCHER = "purchase_voucher"
    PURCHASE_CREDIT_NOTE = "purchase_credit_note"

    @property
    def reversal_type(self) -> "DocumentTypeClass":
        """Document type of the voucher that cancels one of this type."""
        return _REVERSAL_TYPES[self]


_REVERSAL_TYPES = {
    DocumentTypeClass.INVOICE: DocumentTypeClass.CREDIT_NOTE,
    DocumentTypeClass.CREDIT_NOTE: DocumentTypeClass.INVOICE,
    DocumentTypeClass.PURCHASE_VOUCHER: DocumentTypeClass.PURCHASE_CREDIT_NOTE,
    DocumentTypeClass.PURCHASE_CREDIT_NOTE: DocumentTypeClass.PURCHASE_VOUCHER,
    DocumentTypeClass.MANUAL_VOUCHER: DocumentTypeClass.MANUAL_VOUCHER,
}


def parse_document_type(value: "DocumentTypeClass | str") -> DocumentTypeClass:
    """
    Coerce a string to DocumentTypeClass.

    Raises:
        ValidationError: If ``value`` names no document type.
    """
    if isinstance(value, DocumentTypeClass):
        return value
    try:
        return DocumentTypeClass(value)
    except ValueError:
        raise ValidationError({"document_type": f"Unknown document type {value!r}"}) from None
