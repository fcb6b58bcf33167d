"""
Voucher lifecycle.

    DRAFT --book--> BOOKED <--> PAID | OVERDUE | OVERPAID

DRAFT is the only mutable state.  Booking happens exactly once.  The payment
sub-states move freely among themselves and back to BOOKED, but never reopen
amounts and never return to DRAFT.
"""

from enum import Enum

from ledger_kernel.exceptions import ValidationError


class VoucherStatus(str, Enum):
    DRAFT = "draft"
    BOOKED = "booked"
    PAID = "paid"
    OVERDUE = "overdue"
    OVERPAID = "overpaid"

    @property
    def is_booked(self) -> bool:
        """True for BOOKED and every payment sub-state."""
        return self is not VoucherStatus.DRAFT


PAYMENT_STATUSES: frozenset[VoucherStatus] = frozenset({
    VoucherStatus.BOOKED,
    VoucherStatus.PAID,
    VoucherStatus.OVERDUE,
    VoucherStatus.OVERPAID,
})

_TRANSITIONS: dict[VoucherStatus, frozenset[VoucherStatus]] = {
    VoucherStatus.DRAFT: frozenset({VoucherStatus.BOOKED}),
    **{
        status: PAYMENT_STATUSES - {status}
        for status in PAYMENT_STATUSES
    },
}


def can_transition(from_status: VoucherStatus | str, to_status: VoucherStatus | str) -> bool:
    return VoucherStatus(to_status) in _TRANSITIONS[VoucherStatus(from_status)]


def parse_status(value: VoucherStatus | str) -> VoucherStatus:
    """Coerce a string to VoucherStatus.  Raises ValidationError on unknown names."""
    if isinstance(value, VoucherStatus):
        return value
    try:
        return VoucherStatus(value)
    except ValueError:
        raise ValidationError({"status": f"Unknown voucher status {value!r}"}) from None
