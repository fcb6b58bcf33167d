"""
BaseService -- abstract base for kernel services.

Services receive a SQLAlchemy ``Session`` and only ever ``flush()``.  The
caller (PostingOrchestrator, unit_of_work, or a test) owns commit and
rollback, which is what lets numbering, persistence and the audit record of
one posting share a single atomic transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Transaction lifecycle.
        - Reporting queries (those live in ``ledger_kernel/selectors/``).
    """

    def __init__(self, session: Session):
        self.session = session
