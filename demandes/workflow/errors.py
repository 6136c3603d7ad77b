# demandes/workflow/errors.py
from typing import Any, Dict, List, Optional


class WorkflowError(Exception):
    """Base de los errores tipados del workflow. `code` es el que ve la capa HTTP."""

    code = "WF_000"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidTransitionError(WorkflowError):
    code = "WF_001"


class MissingFieldsError(WorkflowError):
    code = "WF_002"

    def __init__(self, missing_fields: List[str], message: Optional[str] = None):
        self.missing_fields = list(missing_fields)
        super().__init__(
            message or f"Champs requis manquants: {', '.join(self.missing_fields)}",
            {"missing_fields": self.missing_fields},
        )


class UnauthorizedTransitionError(WorkflowError):
    code = "WF_003"


class ConcurrentModificationError(WorkflowError):
    code = "WF_004"


class DemandeNotFoundError(WorkflowError):
    code = "RES_001"


class DuplicateDemandeError(WorkflowError):
    code = "RES_002"


class PersistenceError(WorkflowError):
    code = "SRV_001"


class AuditWriteError(WorkflowError):
    """Fallo al escribir el historial. No anula la transición ya guardada."""

    code = "AUD_001"
