"""
PostingOrchestrator -- drives vouchers from Draft to Booked atomically.

Responsibility:
    Composes validation, the balance validator, the period lock guard, the
    numbering authority, the voucher store and the audit recorder into one
    transaction per operation, and maps database failures onto the kernel's
    error types.

Architecture position:
    Kernel > Services.  The only component that opens and commits posting
    transactions.

Posting transaction:
    1. validate fields, balance and period lock (nothing written yet)
    2. claim the next number of the (organization, document type) sequence
    3. persist voucher (Booked, number), lines and ledger entries
    4. write the BOOK audit record
    5. commit

    Steps 1-4 run inside one transaction at SERIALIZABLE (PostgreSQL) or
    under the SQLite write lock, so the checks see the same state the
    writes commit against.  A unique violation on the voucher number or a
    serialization failure rolls the whole transaction back and runs it
    again from step 1, up to ``numbering_max_retries`` attempts.

Failure modes:
    - Kernel errors (validation, balance, period, lifecycle) propagate
      unchanged after rollback.
    - NumberingConflictError once the retries are exhausted.
    - PostingTimeoutError when a lock or connection wait runs out.
    - StorageError for any other database failure, chained to the original.
    - Anything else (including a failing audit write) propagates unchanged
      after rollback.  No failure leaves a trace.
"""

import dataclasses
import time
from collections.abc import Callable
from datetime import date
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.db.engine import is_postgres
from ledger_kernel.db.errors import (
    is_lock_timeout,
    is_serialization_failure,
    is_voucher_number_conflict,
)
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.document_types import DocumentTypeClass, parse_document_type
from ledger_kernel.domain.dtos import PostingResult, VoucherDraft, VoucherInfo
from ledger_kernel.domain.status import VoucherStatus, can_transition, parse_status
from ledger_kernel.exceptions import (
    InvalidStatusTransitionError,
    LedgerKernelError,
    NumberingConflictError,
    PostingTimeoutError,
    StorageError,
    VoucherAlreadyReversedError,
    VoucherNotBookedError,
    VoucherNotDraftError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.audit_record import AuditOperation
from ledger_kernel.models.voucher import Voucher
from ledger_kernel.services.audit_recorder import AuditRecorder
from ledger_kernel.services.numbering_service import VoucherNumberingAuthority
from ledger_kernel.services.voucher_preparation import PreparedVoucher, VoucherPreparer
from ledger_kernel.services.voucher_store import VOUCHER_TABLE, VoucherStore
from ledger_kernel.settings import KernelSettings

logger = get_logger("services.posting")

T = TypeVar("T")


@dataclasses.dataclass
class _Attempt:
    """One run of a posting transaction.

    ``document_type`` is set by the step that claims a voucher number, so a
    conflict on the last attempt is reported against that sequence.
    """

    number: int
    document_type: DocumentTypeClass | None = None

    @property
    def is_retry(self) -> bool:
        return self.number > 1


class PostingOrchestrator:
    """
    Contract:
        Every public method is one atomic operation: it commits on success
        and leaves the database untouched on failure.

    Guarantees:
        - Committed voucher numbers per (organization, document type) are
          1, 2, 3, ... in commit order.
        - Every successful operation writes exactly one audit record per
          changed voucher.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: KernelSettings | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or KernelSettings()
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Transaction handling
    # ------------------------------------------------------------------

    def _begin_posting_transaction(self, session: Session) -> None:
        if is_postgres(session):
            session.connection(execution_options={"isolation_level": "SERIALIZABLE"})
            timeout_ms = int(self._settings.lock_timeout_seconds * 1000)
            session.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))
        else:
            # SQLite: the connection's BEGIN IMMEDIATE takes the write lock
            session.connection()

    def _transact(
        self,
        operation: str,
        organization_id: UUID,
        work: Callable[[Session, _Attempt], T],
    ) -> T:
        max_attempts = self._settings.numbering_max_retries
        attempt = 0
        while True:
            attempt += 1
            session = self._session_factory()
            state = _Attempt(attempt)
            try:
                self._begin_posting_transaction(session)
                result = work(session, state)
                session.commit()
                return result
            except LedgerKernelError:
                session.rollback()
                raise
            except SQLAlchemyError as exc:
                session.rollback()
                if is_voucher_number_conflict(exc) or is_serialization_failure(exc):
                    cause = (
                        "voucher number conflict"
                        if is_voucher_number_conflict(exc)
                        else "serialization failure"
                    )
                    numbered_type = state.document_type
                    logger.warning(
                        "numbering_conflict_retry",
                        extra={
                            "operation": operation,
                            "attempt": attempt,
                            "max_attempts": max_attempts,
                            "cause": cause,
                            "document_type": numbered_type.value if numbered_type else None,
                        },
                    )
                    if attempt < max_attempts:
                        time.sleep(self._settings.retry_backoff_seconds * attempt)
                        continue
                    if numbered_type is None:
                        raise StorageError(operation, f"{cause} after {attempt} attempts") from exc
                    raise NumberingConflictError(
                        organization_id=str(organization_id),
                        document_type=numbered_type.value,
                        attempts=attempt,
                    ) from exc
                if is_lock_timeout(exc):
                    raise PostingTimeoutError(
                        organization_id=str(organization_id),
                        reason=str(getattr(exc, "orig", None) or exc),
                    ) from exc
                raise StorageError(
                    operation, str(getattr(exc, "orig", None) or exc)
                ) from exc
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    def _run(
        self,
        operation: str,
        organization_id: UUID,
        actor_id: UUID | None,
        work: Callable[[Session, _Attempt], T],
        document_type: DocumentTypeClass | None = None,
        voucher_id: UUID | None = None,
    ) -> T:
        """Run ``work`` in a logged, retried transaction."""
        with LogContext.bind(
            correlation_id=str(uuid4()),
            organization_id=organization_id,
            actor_id=actor_id,
            voucher_id=voucher_id,
        ):
            started = time.monotonic()
            logger.info(
                f"{operation}_started",
                extra={"document_type": document_type.value if document_type else None},
            )
            try:
                result = self._transact(operation, organization_id, work)
            except LedgerKernelError as exc:
                logger.info(
                    f"{operation}_rejected",
                    extra={"error_code": exc.code, "error": exc.message},
                )
                raise
            except Exception:
                logger.exception(f"{operation}_failed")
                raise
            logger.info(
                f"{operation}_completed",
                extra={"duration_ms": round((time.monotonic() - started) * 1000, 2)},
            )
            return result

    # ------------------------------------------------------------------
    # Building blocks inside one transaction
    # ------------------------------------------------------------------

    def _book_new(
        self,
        session: Session,
        attempt: _Attempt,
        organization_id: UUID,
        document_type: DocumentTypeClass,
        draft: VoucherDraft,
        actor_id: UUID | None,
    ) -> PostingResult:
        prepared = VoucherPreparer(session, self._settings).prepare(
            organization_id, document_type, draft
        )
        return self._book_prepared(session, attempt, organization_id, prepared, actor_id)

    def _book_prepared(
        self,
        session: Session,
        attempt: _Attempt,
        organization_id: UUID,
        prepared: PreparedVoucher,
        actor_id: UUID | None,
        reverses_id: UUID | None = None,
    ) -> PostingResult:
        """Number, persist and audit a prepared voucher as Booked."""
        document_type = prepared.document_type
        draft = prepared.draft
        attempt.document_type = document_type
        number = VoucherNumberingAuthority(session).next_number(
            organization_id, document_type, resync=attempt.is_retry
        )

        store = VoucherStore(session)
        voucher = store.add_voucher(
            organization_id=organization_id,
            document_type=document_type,
            draft=draft,
            currency=prepared.currency,
            lines=prepared.lines,
            status=VoucherStatus.BOOKED,
            number=number,
            totals=(prepared.total_debit, prepared.total_credit, prepared.total_vat),
            booked_at=self._clock.now(),
            actor_id=actor_id,
            reverses_id=reverses_id,
        )
        store.write_ledger_entries(voucher, prepared.entries)
        self._audit(session).record(
            organization_id=organization_id,
            user_id=actor_id,
            table_name=VOUCHER_TABLE,
            record_id=voucher.id,
            operation=AuditOperation.BOOK,
            changed_data=store.snapshot(voucher),
        )
        logger.info(
            "voucher_booked",
            extra={
                "voucher_guid": str(voucher.id),
                "document_type": document_type.value,
                "number": number,
                "entry_count": len(prepared.entries),
            },
        )
        return PostingResult(guid=voucher.id, number=number, document_type=document_type)

    def _audit(self, session: Session) -> AuditRecorder:
        return AuditRecorder(session, self._clock)

    @staticmethod
    def _require_draft(voucher: Voucher) -> None:
        if voucher.status != VoucherStatus.DRAFT.value:
            raise VoucherNotDraftError(str(voucher.id), voucher.status)

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def post(
        self,
        organization_id: UUID,
        document_type: DocumentTypeClass | str,
        draft: VoucherDraft,
        actor_id: UUID | None = None,
    ) -> PostingResult:
        """
        Validate, number and book a new voucher in one transaction.

        Returns:
            PostingResult with the voucher GUID and its number.

        Raises:
            OrganizationNotFoundError, ValidationError,
            UnbalancedVoucherError, PeriodLockedError, PeriodNotFoundError,
            NumberingConflictError, PostingTimeoutError, StorageError.
        """
        document_type = parse_document_type(document_type)

        def work(session: Session, attempt: _Attempt) -> PostingResult:
            return self._book_new(
                session, attempt, organization_id, document_type, draft, actor_id
            )

        return self._run("posting", organization_id, actor_id, work, document_type)

    def book(
        self,
        organization_id: UUID,
        voucher_id: UUID,
        actor_id: UUID | None = None,
    ) -> PostingResult:
        """
        Book a persisted draft through the posting pipeline.

        Lines are re-priced against the current VAT catalogue before the
        balance check.

        Raises:
            VoucherNotFoundError, VoucherNotDraftError, plus everything
            ``post`` raises.
        """

        def work(session: Session, attempt: _Attempt) -> PostingResult:
            store = VoucherStore(session)
            voucher = store.get_for_update(organization_id, voucher_id)
            self._require_draft(voucher)
            document_type = DocumentTypeClass(voucher.document_type)

            draft = store.draft_from_voucher(voucher)
            prepared = VoucherPreparer(session, self._settings).prepare(
                organization_id, document_type, draft
            )
            store.apply_draft(voucher, draft, prepared.currency, prepared.lines, actor_id)

            attempt.document_type = document_type
            number = VoucherNumberingAuthority(session).next_number(
                organization_id, document_type, resync=attempt.is_retry
            )
            voucher.status = VoucherStatus.BOOKED.value
            voucher.number = number
            voucher.total_debit = prepared.total_debit
            voucher.total_credit = prepared.total_credit
            voucher.total_vat = prepared.total_vat
            voucher.booked_at = self._clock.now()
            voucher.booked_by_id = actor_id
            session.flush()

            store.write_ledger_entries(voucher, prepared.entries)
            self._audit(session).record(
                organization_id=organization_id,
                user_id=actor_id,
                table_name=VOUCHER_TABLE,
                record_id=voucher.id,
                operation=AuditOperation.BOOK,
                changed_data=store.snapshot(voucher),
            )
            logger.info(
                "voucher_booked",
                extra={
                    "voucher_guid": str(voucher.id),
                    "document_type": document_type.value,
                    "number": number,
                },
            )
            return PostingResult(guid=voucher.id, number=number, document_type=document_type)

        return self._run("booking", organization_id, actor_id, work, voucher_id=voucher_id)

    def reverse(
        self,
        organization_id: UUID,
        voucher_id: UUID,
        document_date: date | None = None,
        actor_id: UUID | None = None,
    ) -> PostingResult:
        """
        Cancel a booked voucher by booking its mirror image.

        The reversing voucher has every side flipped, is numbered in the
        sequence of the reversal document type (invoice -> credit note,
        purchase voucher -> purchase credit note, manual -> manual) and
        points back through ``reverses_id``.  The original is left as it
        was, apart from a REVERSE audit record.

        Lines and ledger entries are the stored ones with sides flipped, so
        the reversal nets the original out exactly even if an account was
        deactivated or a VAT rate changed since.

        Args:
            document_date: Date of the reversing voucher; defaults to today.

        Raises:
            VoucherNotBookedError: The voucher is a draft; delete it instead.
            VoucherAlreadyReversedError: A reversing voucher exists already.
            PeriodLockedError: ``document_date`` lies in a locked period.
        """

        def work(session: Session, attempt: _Attempt) -> PostingResult:
            store = VoucherStore(session)
            original = store.get_for_update(organization_id, voucher_id)
            if original.status == VoucherStatus.DRAFT.value:
                raise VoucherNotBookedError(str(original.id), original.status)
            existing = store.find_reversal(organization_id, original.id)
            if existing is not None:
                raise VoucherAlreadyReversedError(str(original.id), str(existing.id))

            source_type = DocumentTypeClass(original.document_type)
            target_type = source_type.reversal_type
            draft = dataclasses.replace(
                store.draft_from_voucher(
                    original,
                    flip_sides=True,
                    document_date=document_date or self._clock.today(),
                ),
                description=f"Reversal of {source_type.value} {original.number}",
            )
            prepared = VoucherPreparer(session, self._settings).mirror(
                organization_id,
                target_type,
                original,
                store.ledger_entries_of(original),
                draft,
            )

            result = self._book_prepared(
                session, attempt, organization_id, prepared, actor_id,
                reverses_id=original.id,
            )
            self._audit(session).record(
                organization_id=organization_id,
                user_id=actor_id,
                table_name=VOUCHER_TABLE,
                record_id=original.id,
                operation=AuditOperation.REVERSE,
                changed_data={
                    "reversed_by": result.guid,
                    "reversal_document_type": target_type.value,
                    "reversal_number": result.number,
                },
            )
            logger.info(
                "voucher_reversed",
                extra={
                    "voucher_guid": str(original.id),
                    "reversal_guid": str(result.guid),
                    "reversal_number": result.number,
                },
            )
            return result

        return self._run("reversal", organization_id, actor_id, work, voucher_id=voucher_id)

    def set_payment_status(
        self,
        organization_id: UUID,
        voucher_id: UUID,
        status: VoucherStatus | str,
        actor_id: UUID | None = None,
    ) -> VoucherInfo:
        """
        Move a booked voucher between Booked, Paid, Overdue and OverPaid.

        Amounts, lines and number are untouched.

        Raises:
            ValidationError: ``status`` names no voucher status.
            VoucherNotBookedError: The voucher is a draft.
            InvalidStatusTransitionError: Same status, or back to draft.
        """
        target = parse_status(status)

        def work(session: Session, attempt: _Attempt) -> VoucherInfo:
            store = VoucherStore(session)
            voucher = store.get_for_update(organization_id, voucher_id)
            current = VoucherStatus(voucher.status)
            if current is VoucherStatus.DRAFT:
                raise VoucherNotBookedError(str(voucher.id), voucher.status)
            if not can_transition(current, target):
                raise InvalidStatusTransitionError(str(voucher.id), current.value, target.value)

            voucher.status = target.value
            voucher.updated_by_id = actor_id
            session.flush()

            self._audit(session).record(
                organization_id=organization_id,
                user_id=actor_id,
                table_name=VOUCHER_TABLE,
                record_id=voucher.id,
                operation=AuditOperation.STATUS,
                changed_data={"from": current.value, "to": target.value},
            )
            return store.to_info(voucher)

        return self._run("status_change", organization_id, actor_id, work, voucher_id=voucher_id)

    # ------------------------------------------------------------------
    # Draft lifecycle
    # ------------------------------------------------------------------

    def create_draft(
        self,
        organization_id: UUID,
        document_type: DocumentTypeClass | str,
        draft: VoucherDraft,
        actor_id: UUID | None = None,
    ) -> VoucherInfo:
        """
        Persist an unnumbered, mutable draft.

        Fields are validated and lines priced, but balance and period lock
        are only checked when the draft is booked.  A draft may have no
        lines yet.
        """
        document_type = parse_document_type(document_type)

        def work(session: Session, attempt: _Attempt) -> VoucherInfo:
            _, currency, lines = VoucherPreparer(session, self._settings).price(
                organization_id, draft, require_lines=False
            )
            store = VoucherStore(session)
            voucher = store.add_voucher(
                organization_id=organization_id,
                document_type=document_type,
                draft=draft,
                currency=currency,
                lines=lines,
                actor_id=actor_id,
            )
            self._audit(session).record(
                organization_id=organization_id,
                user_id=actor_id,
                table_name=VOUCHER_TABLE,
                record_id=voucher.id,
                operation=AuditOperation.INSERT,
                changed_data=store.snapshot(voucher),
            )
            logger.info("draft_created", extra={"voucher_guid": str(voucher.id)})
            return store.to_info(voucher)

        return self._run("draft_creation", organization_id, actor_id, work, document_type)

    def update_draft(
        self,
        organization_id: UUID,
        voucher_id: UUID,
        draft: VoucherDraft,
        actor_id: UUID | None = None,
    ) -> VoucherInfo:
        """Replace header and lines of a draft.  Raises VoucherNotDraftError."""

        def work(session: Session, attempt: _Attempt) -> VoucherInfo:
            store = VoucherStore(session)
            voucher = store.get_for_update(organization_id, voucher_id)
            self._require_draft(voucher)
            before = store.snapshot(voucher)

            _, currency, lines = VoucherPreparer(session, self._settings).price(
                organization_id, draft, require_lines=False
            )
            store.apply_draft(voucher, draft, currency, lines, actor_id)

            self._audit(session).record(
                organization_id=organization_id,
                user_id=actor_id,
                table_name=VOUCHER_TABLE,
                record_id=voucher.id,
                operation=AuditOperation.UPDATE,
                changed_data={"before": before, "after": store.snapshot(voucher)},
            )
            return store.to_info(voucher)

        return self._run("draft_update", organization_id, actor_id, work, voucher_id=voucher_id)

    def delete_draft(
        self,
        organization_id: UUID,
        voucher_id: UUID,
        actor_id: UUID | None = None,
    ) -> None:
        """
        Delete a draft and its lines.

        Booked vouchers are never deleted; reverse them instead.

        Raises:
            VoucherNotDraftError: The voucher is booked.
        """

        def work(session: Session, attempt: _Attempt) -> None:
            store = VoucherStore(session)
            voucher = store.get_for_update(organization_id, voucher_id)
            self._require_draft(voucher)
            snapshot = store.snapshot(voucher)

            session.delete(voucher)
            session.flush()

            self._audit(session).record(
                organization_id=organization_id,
                user_id=actor_id,
                table_name=VOUCHER_TABLE,
                record_id=voucher_id,
                operation=AuditOperation.DELETE,
                changed_data=snapshot,
            )

        self._run("draft_deletion", organization_id, actor_id, work, voucher_id=voucher_id)
