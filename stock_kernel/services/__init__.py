"""Services for the stock kernel (write side)."""

from stock_kernel.services.auditor_service import AuditorService, AuditTrace
from stock_kernel.services.collaborator_directory import (
    CollaboratorDirectory,
    SqlCollaboratorDirectory,
)
from stock_kernel.services.sequence_service import SequenceService

__all__ = [
    "AuditTrace",
    "AuditorService",
    "CollaboratorDirectory",
    "SequenceService",
    "SqlCollaboratorDirectory",
]
