"""
unit_of_work -- one session, one transaction, for administrative operations.

Period administration, account maintenance and the read paths of the kernel
facade run through this scope.  Posting has its own retrying transaction
(services/posting_orchestrator.py).

Database exceptions leave this scope translated: lock waits become
PostingTimeoutError, everything else StorageError, with the original chained
as ``__cause__``.  Kernel errors pass through unchanged.
"""

from contextlib import contextmanager
from typing import Generator
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.db.errors import translate_storage_error
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.unit_of_work")


@contextmanager
def unit_of_work(
    session_factory: sessionmaker[Session],
    operation: str,
    organization_id: UUID | None = None,
) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error(
            "storage_error",
            extra={"operation": operation, "error": str(exc)},
        )
        raise translate_storage_error(exc, operation, organization_id) from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
