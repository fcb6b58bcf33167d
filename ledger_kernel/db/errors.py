"""
Module: ledger_kernel.db.errors
Responsibility: Classify driver-level database exceptions raised inside the
    posting transaction so the orchestrator can decide between retrying,
    reporting a timeout, or surfacing a storage error.
Architecture position: Kernel > DB.  Pure inspection of SQLAlchemy exception
    objects; no I/O.

Classification covers PostgreSQL (psycopg2 ``pgcode``) and SQLite (message
text, since pysqlite exposes no SQLSTATE).
"""

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

VOUCHER_NUMBER_CONSTRAINT = "uq_voucher_number"

# PostgreSQL SQLSTATE codes
PG_SERIALIZATION_FAILURE = "40001"
PG_DEADLOCK_DETECTED = "40P01"
PG_LOCK_NOT_AVAILABLE = "55P03"
PG_QUERY_CANCELED = "57014"


def _pgcode(exc: DBAPIError) -> str | None:
    return getattr(exc.orig, "pgcode", None)


def _constraint_name(exc: DBAPIError) -> str | None:
    diag = getattr(exc.orig, "diag", None)
    return getattr(diag, "constraint_name", None)


def is_voucher_number_conflict(exc: BaseException) -> bool:
    """True when ``exc`` is a unique violation on the voucher number index."""
    if not isinstance(exc, IntegrityError):
        return False
    if _constraint_name(exc) == VOUCHER_NUMBER_CONSTRAINT:
        return True
    message = str(exc.orig)
    # SQLite reports the indexed columns instead of the constraint name
    return VOUCHER_NUMBER_CONSTRAINT in message or "vouchers.number" in message


def is_serialization_failure(exc: BaseException) -> bool:
    """True for SERIALIZABLE conflicts and deadlocks; the transaction may be retried."""
    if not isinstance(exc, DBAPIError):
        return False
    return _pgcode(exc) in (PG_SERIALIZATION_FAILURE, PG_DEADLOCK_DETECTED)


def is_lock_timeout(exc: BaseException) -> bool:
    """True when the transaction gave up waiting for a lock or a connection."""
    if isinstance(exc, PoolTimeoutError):
        return True
    if not isinstance(exc, OperationalError):
        return False
    if _pgcode(exc) in (PG_LOCK_NOT_AVAILABLE, PG_QUERY_CANCELED):
        return True
    message = str(exc.orig).lower()
    return "database is locked" in message or "lock timeout" in message


def translate_storage_error(exc: BaseException, operation: str, organization_id) -> Exception:
    """
    Map a database exception onto the kernel's error types.

    Lock and pool timeouts become PostingTimeoutError, everything else a
    StorageError.  Callers raise the result ``from exc``.
    """
    from ledger_kernel.exceptions import PostingTimeoutError, StorageError

    detail = str(getattr(exc, "orig", None) or exc)
    if is_lock_timeout(exc):
        return PostingTimeoutError(organization_id=str(organization_id), reason=detail)
    return StorageError(operation=operation, detail=detail)
