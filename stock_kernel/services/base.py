"""
BaseService -- abstract base for kernel services.

Responsibility:
    Common constructor and session contract for write-side services.
    Services use ``session.flush()``; they never commit or roll back.  The
    facade (InventoryService, ReconciliationService) or the caller's
    ``session_scope()`` owns the transaction.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from stock_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Guarantees:
        The service never calls ``session.commit()`` or
        ``session.rollback()``, so several services can take part in one
        atomic unit of work.
    """

    def __init__(self, session: Session):
        self.session = session
