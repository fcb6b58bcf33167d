"""
ORM-level immutability enforcement.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | When immutable                       | Allowed changes
----------------|--------------------------------------|---------------------------
Voucher         | once booked                          | status among payment states,
                |                                      | updated_at / updated_by_id
VoucherLine     | once the parent voucher is booked    | none
LedgerEntry     | always                               | none
AuditRecord     | always                               | none
Account         | number, once ledger entries use it   | name, vat_code, is_active
                | delete, once ledger entries use it   |

SQLAlchemy fires ``before_update`` / ``before_delete`` for each row before the
SQL is sent; the listeners raise ImmutabilityViolationError (or
AccountReferencedError) and the flush, and with it the transaction, aborts.

"Was booked" is decided from attribute history, not from the current value:
the booking itself (draft -> booked) must pass, every later change must not.

===============================================================================
USAGE
===============================================================================

    register_immutability_listeners()    # once at startup; idempotent
    unregister_immutability_listeners()  # tests only
"""

from sqlalchemy import event, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import AccountReferencedError, ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_DRAFT = "draft"
_BOOKED_MUTABLE_FIELDS = frozenset({"status", "updated_at", "updated_by_id"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **extra) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **extra,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _was_booked(voucher) -> bool:
    """Status as loaded from the database, before pending changes."""
    history = get_history(voucher, "status")
    if history.deleted:
        return history.deleted[0] != _DRAFT
    if history.unchanged:
        return history.unchanged[0] != _DRAFT
    # Pending INSERT: nothing was persisted yet
    return False


def _check_voucher_update(mapper, connection, target):
    if not _was_booked(target):
        return

    status_history = get_history(target, "status")
    if status_history.added and status_history.added[0] == _DRAFT:
        raise _blocked(
            "Voucher", target.id, "UPDATE",
            "Booked vouchers cannot return to draft",
            field="status",
        )

    from sqlalchemy import inspect

    for attr in inspect(target).attrs:
        if attr.key in _BOOKED_MUTABLE_FIELDS or attr.key == "lines":
            continue
        if attr.history.has_changes():
            raise _blocked(
                "Voucher", target.id, "UPDATE",
                f"Cannot modify field '{attr.key}' on booked voucher",
                field=attr.key,
            )


def _check_voucher_delete(mapper, connection, target):
    if _was_booked(target):
        raise _blocked(
            "Voucher", target.id, "DELETE",
            "Booked vouchers cannot be deleted; post a reversing voucher",
        )


def _parent_was_booked(connection, line) -> bool:
    if line.voucher is not None:
        return _was_booked(line.voucher)
    # Orphaned line: fall back to the stored status of its voucher
    from ledger_kernel.models.voucher import Voucher

    status = connection.execute(
        select(Voucher.status).where(Voucher.id == line.voucher_id)
    ).scalar_one_or_none()
    return status is not None and status != _DRAFT


def _check_voucher_line_insert(mapper, connection, target):
    if _parent_was_booked(connection, target):
        raise _blocked(
            "VoucherLine", target.id, "INSERT",
            "Lines cannot be added to a booked voucher",
        )


def _check_voucher_line_update(mapper, connection, target):
    if _parent_was_booked(connection, target):
        raise _blocked(
            "VoucherLine", target.id, "UPDATE",
            "Lines of a booked voucher cannot be modified",
        )


def _check_voucher_line_delete(mapper, connection, target):
    if _parent_was_booked(connection, target):
        raise _blocked(
            "VoucherLine", target.id, "DELETE",
            "Lines of a booked voucher cannot be deleted",
        )


def _check_ledger_entry_update(mapper, connection, target):
    raise _blocked("LedgerEntry", target.id, "UPDATE", "Ledger entries are append-only")


def _check_ledger_entry_delete(mapper, connection, target):
    raise _blocked("LedgerEntry", target.id, "DELETE", "Ledger entries are append-only")


def _check_audit_record_update(mapper, connection, target):
    raise _blocked("AuditRecord", target.id, "UPDATE", "Audit records are append-only")


def _check_audit_record_delete(mapper, connection, target):
    raise _blocked("AuditRecord", target.id, "DELETE", "Audit records are append-only")


def _account_is_referenced(connection, organization_id, account_number) -> bool:
    from ledger_kernel.models.ledger_entry import LedgerEntry

    return connection.execute(
        select(LedgerEntry.id)
        .where(
            LedgerEntry.organization_id == organization_id,
            LedgerEntry.account_number == account_number,
        )
        .limit(1)
    ).first() is not None


def _check_account_number_update(mapper, connection, target):
    history = get_history(target, "account_number")
    if not history.deleted:
        return
    old_number = history.deleted[0]
    if _account_is_referenced(connection, target.organization_id, old_number):
        raise _blocked(
            "Account", target.id, "UPDATE",
            f"Account {old_number} is referenced by ledger entries; its number is fixed",
            field="account_number",
        )


def _check_account_deletion_before_flush(session, flush_context, instances):
    """
    Refuse deleting accounts that ledger entries reference.

    Runs in before_flush because mapper-level delete events fire after the
    flush plan is fixed.
    """
    from ledger_kernel.models.account import Account

    for obj in list(session.deleted):
        if not isinstance(obj, Account):
            continue
        with session.no_autoflush:
            referenced = _account_is_referenced(
                session.connection(), obj.organization_id, obj.account_number
            )
        if referenced:
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "Account",
                    "entity_id": str(obj.id),
                    "operation": "DELETE",
                    "reason": "account_has_ledger_entries",
                },
            )
            raise AccountReferencedError(str(obj.organization_id), obj.account_number)


def _listeners():
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.audit_record import AuditRecord
    from ledger_kernel.models.ledger_entry import LedgerEntry
    from ledger_kernel.models.voucher import Voucher, VoucherLine

    return (
        (Session, "before_flush", _check_account_deletion_before_flush),
        (Voucher, "before_update", _check_voucher_update),
        (Voucher, "before_delete", _check_voucher_delete),
        (VoucherLine, "before_insert", _check_voucher_line_insert),
        (VoucherLine, "before_update", _check_voucher_line_update),
        (VoucherLine, "before_delete", _check_voucher_line_delete),
        (LedgerEntry, "before_update", _check_ledger_entry_update),
        (LedgerEntry, "before_delete", _check_ledger_entry_delete),
        (AuditRecord, "before_update", _check_audit_record_update),
        (AuditRecord, "before_delete", _check_audit_record_delete),
        (Account, "before_update", _check_account_number_update),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners.  Safe to call more than once."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability listeners.

    WARNING: tests only, for intentionally reaching forbidden states.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
