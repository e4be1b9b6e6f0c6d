"""
Collaborator directory -- who may be named responsible for a movement.

Responsibility:
    Defines the CollaboratorDirectory protocol the movement path consumes
    and the default implementation backed by the ``collaborators`` table.

Architecture position:
    Kernel > Services.  InventoryService resolves the responsible party
    through this protocol and hands the result to the pure validator.
"""

from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.dtos import CollaboratorRef
from stock_kernel.logging_config import get_logger
from stock_kernel.models.collaborator import Collaborator
from stock_kernel.services.base import BaseService

logger = get_logger("services.collaborators")

DEFAULT_ACTIVE_STATUSES = ("active",)


@runtime_checkable
class CollaboratorDirectory(Protocol):
    """Resolves a collaborator id, or returns None when unknown."""

    def resolve(self, collaborator_id: UUID) -> CollaboratorRef | None:
        ...


class SqlCollaboratorDirectory(BaseService[Collaborator]):
    """
    CollaboratorDirectory over the ``collaborators`` table.

    A collaborator is active when its status (case-insensitive) is one of
    ``active_statuses``.
    """

    def __init__(self, session: Session, active_statuses: Iterable[str] = DEFAULT_ACTIVE_STATUSES):
        super().__init__(session)
        self._active_statuses = frozenset(s.lower() for s in active_statuses)

    def resolve(self, collaborator_id: UUID) -> CollaboratorRef | None:
        collaborator = self.session.get(Collaborator, collaborator_id)
        if collaborator is None:
            return None
        return CollaboratorRef(
            id=collaborator.id,
            name=collaborator.name,
            is_active=(collaborator.status or "").lower() in self._active_statuses,
        )

    def register(self, name: str, email: str | None = None, status: str = "active") -> CollaboratorRef:
        """Add a collaborator (flush only)."""
        collaborator = Collaborator(name=name, email=email, status=status)
        self.session.add(collaborator)
        self.session.flush()
        logger.info(
            "collaborator_registered",
            extra={"collaborator_id": str(collaborator.id), "status": status},
        )
        return CollaboratorRef(
            id=collaborator.id,
            name=collaborator.name,
            is_active=status.lower() in self._active_statuses,
        )
