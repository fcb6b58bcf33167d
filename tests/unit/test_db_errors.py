"""
Unit tests for database exception classification.
"""

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from ledger_kernel.db.errors import (
    is_lock_timeout,
    is_serialization_failure,
    is_voucher_number_conflict,
    translate_storage_error,
)
from ledger_kernel.exceptions import PostingTimeoutError, StorageError


class _PgError(Exception):
    def __init__(self, message, pgcode):
        super().__init__(message)
        self.pgcode = pgcode


class TestClassification:
    def test_sqlite_voucher_number_violation(self):
        exc = IntegrityError(
            "INSERT",
            {},
            Exception(
                "UNIQUE constraint failed: vouchers.organization_id, "
                "vouchers.document_type, vouchers.number"
            ),
        )
        assert is_voucher_number_conflict(exc)

    def test_postgres_voucher_number_violation(self):
        exc = IntegrityError(
            "INSERT", {}, Exception('duplicate key value violates unique constraint "uq_voucher_number"')
        )
        assert is_voucher_number_conflict(exc)

    def test_other_integrity_error_is_not_a_number_conflict(self):
        exc = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: accounts.account_number"))
        assert not is_voucher_number_conflict(exc)

    def test_serialization_failure(self):
        exc = OperationalError("SELECT", {}, _PgError("could not serialize", "40001"))
        assert is_serialization_failure(exc)
        assert not is_lock_timeout(exc)

    def test_sqlite_busy_is_lock_timeout(self):
        assert is_lock_timeout(OperationalError("BEGIN", {}, Exception("database is locked")))

    def test_postgres_lock_not_available(self):
        assert is_lock_timeout(OperationalError("SELECT", {}, _PgError("lock timeout", "55P03")))

    def test_pool_timeout(self):
        assert is_lock_timeout(PoolTimeoutError("QueuePool limit reached"))


class TestTranslate:
    def test_lock_timeout_becomes_posting_timeout(self):
        exc = OperationalError("BEGIN", {}, Exception("database is locked"))
        translated = translate_storage_error(exc, "lock_period", "org-1")
        assert isinstance(translated, PostingTimeoutError)
        assert isinstance(translated, TimeoutError)

    def test_anything_else_becomes_storage_error(self):
        exc = OperationalError("SELECT", {}, Exception("disk I/O error"))
        translated = translate_storage_error(exc, "lock_period", "org-1")
        assert isinstance(translated, StorageError)
        assert translated.operation == "lock_period"
        assert "disk I/O error" in translated.detail
