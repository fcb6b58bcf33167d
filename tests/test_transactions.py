"""
Transaction scopes: session_scope and unit_of_work.
"""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from ledger_kernel.db.engine import session_scope
from ledger_kernel.exceptions import PostingTimeoutError, StorageError, ValidationError
from ledger_kernel.models.organization import Organization
from ledger_kernel.services.unit_of_work import unit_of_work


class TestSessionScope:
    def test_commits_on_success(self, session_factory, count_rows):
        with session_scope(session_factory) as session:
            session.add(Organization(name="Scoped ApS", base_currency="DKK"))
        assert count_rows(Organization) == 1

    def test_rolls_back_on_error(self, session_factory, count_rows):
        with pytest.raises(RuntimeError):
            with session_scope(session_factory) as session:
                session.add(Organization(name="Scoped ApS", base_currency="DKK"))
                session.flush()
                raise RuntimeError("boom")
        assert count_rows(Organization) == 0


class TestUnitOfWork:
    def test_kernel_errors_pass_through(self, session_factory, count_rows):
        with pytest.raises(ValidationError):
            with unit_of_work(session_factory, "create_account") as session:
                session.add(Organization(name="Rolled back", base_currency="DKK"))
                session.flush()
                raise ValidationError({"name": "bad"})
        assert count_rows(Organization) == 0

    def test_database_error_becomes_storage_error(self, session_factory, captured_logs):
        with pytest.raises(StorageError) as exc_info:
            with unit_of_work(session_factory, "list_accounts") as session:
                session.execute(text("SELECT * FROM no_such_table"))

        assert exc_info.value.operation == "list_accounts"
        assert exc_info.value.__cause__ is not None
        assert any(r["message"] == "storage_error" for r in captured_logs())

    def test_lock_wait_becomes_timeout(self, session_factory):
        with pytest.raises(PostingTimeoutError):
            with unit_of_work(session_factory, "lock_period", "org-1"):
                raise OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked"))
