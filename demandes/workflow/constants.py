# demandes/workflow/constants.py
"""
Tablas fijas del workflow de demandes: metadatos de estado, grafo de
transiciones, permisos por transición y campos requeridos por estado destino.

Son datos de solo lectura construidos una vez al importar el módulo. El
ejecutor (state_machine.DemandeWorkflow) las recibe empaquetadas en
`WorkflowTables`, de modo que los tests pueden inyectar tablas alternativas.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from demandes.workflow.errors import MissingFieldsError


@dataclass(frozen=True)
class StatusMeta:
    label: str
    color: str
    is_terminal: bool
    description: str = ""


@dataclass(frozen=True)
class Requirement:
    required_fields: FrozenSet[str] = frozenset()
    optional_fields: FrozenSet[str] = frozenset()


STATUSES: Tuple[str, ...] = (
    "SUBMITTED", "RECEIVED", "IN_PROGRESS", "AWAITING_INFO",
    "APPROVED", "REJECTED", "PROCESSED", "ARCHIVED",
)

STATUS_META: Mapping[str, StatusMeta] = MappingProxyType({
    "SUBMITTED": StatusMeta("Soumis", "#6B7280", False, "Demande vient d'être soumise"),
    "RECEIVED": StatusMeta("Reçu", "#3B82F6", False, "Demande reçue par l'administration"),
    "IN_PROGRESS": StatusMeta("En cours", "#F59E0B", False, "Demande en cours de traitement"),
    "AWAITING_INFO": StatusMeta("En attente d'information", "#F59E0B", False, "Information supplémentaire requise"),
    "APPROVED": StatusMeta("Validé", "#10B981", False, "Demande validée par l'administration"),
    "REJECTED": StatusMeta("Rejeté", "#EF4444", True, "Demande rejetée"),
    "PROCESSED": StatusMeta("Traité", "#059669", True, "Demande traitée avec succès"),
    "ARCHIVED": StatusMeta("Archivé", "#6B7280", True, "Demande archivée"),
})

# Ciclo de vida. Los estados finales no tienen salida.
WORKFLOW_TRANSITIONS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "SUBMITTED": ("RECEIVED",),
    "RECEIVED": ("IN_PROGRESS", "REJECTED"),
    "IN_PROGRESS": ("AWAITING_INFO", "APPROVED", "REJECTED"),
    "AWAITING_INFO": ("IN_PROGRESS", "REJECTED"),
    "APPROVED": ("PROCESSED",),
    "REJECTED": (),
    "PROCESSED": (),
    "ARCHIVED": (),
})

# Archivado: única salida de un estado final, vía DemandeWorkflow.archive()
ARCHIVE_TRANSITIONS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "REJECTED": ("ARCHIVED",),
    "PROCESSED": ("ARCHIVED",),
})

VALID_TRANSITIONS: FrozenSet[Tuple[str, str]] = frozenset(
    (src, dst)
    for graph in (WORKFLOW_TRANSITIONS, ARCHIVE_TRANSITIONS)
    for src, targets in graph.items()
    for dst in targets
)

TRANSITION_PERMISSIONS: Mapping[str, FrozenSet[str]] = MappingProxyType({
    "SUBMITTED->RECEIVED": frozenset({"SYSTEM"}),
    "RECEIVED->IN_PROGRESS": frozenset({"ADMIN", "SUPER_ADMIN"}),
    "RECEIVED->REJECTED": frozenset({"ADMIN", "SUPER_ADMIN"}),
    "IN_PROGRESS->AWAITING_INFO": frozenset({"ADMIN", "SUPER_ADMIN"}),
    "IN_PROGRESS->APPROVED": frozenset({"ADMIN", "SUPER_ADMIN"}),
    "IN_PROGRESS->REJECTED": frozenset({"ADMIN", "SUPER_ADMIN"}),
    "AWAITING_INFO->IN_PROGRESS": frozenset({"STUDENT", "ADMIN", "SUPER_ADMIN"}),
    "AWAITING_INFO->REJECTED": frozenset({"ADMIN", "SUPER_ADMIN"}),
    "APPROVED->PROCESSED": frozenset({"ADMIN", "SUPER_ADMIN"}),
    "REJECTED->ARCHIVED": frozenset({"ADMIN", "SUPER_ADMIN"}),
    "PROCESSED->ARCHIVED": frozenset({"ADMIN", "SUPER_ADMIN"}),
})

TRANSITION_REQUIREMENTS: Mapping[str, Requirement] = MappingProxyType({
    "REJECTED": Requirement(
        required_fields=frozenset({"rejection_reason"}),
        optional_fields=frozenset({"admin_comment"}),
    ),
    "IN_PROGRESS": Requirement(optional_fields=frozenset({"assigned_to_id", "admin_comment"})),
    "AWAITING_INFO": Requirement(required_fields=frozenset({"admin_comment"})),
    "APPROVED": Requirement(optional_fields=frozenset({"documents"})),
})


def is_terminal(status: str, graph: Mapping[str, Iterable[str]] = WORKFLOW_TRANSITIONS) -> bool:
    return not graph.get(status)


def allowed_transitions(status: str, graph: Mapping[str, Iterable[str]] = WORKFLOW_TRANSITIONS) -> Tuple[str, ...]:
    return tuple(graph.get(status) or ())


def can_transition(src: str, dst: str, graph: Mapping[str, Iterable[str]] = WORKFLOW_TRANSITIONS) -> bool:
    if src == dst:
        return False
    return dst in allowed_transitions(src, graph)


def transition_key(src: str, dst: str) -> str:
    return f"{src}->{dst}"


def is_authorized(key: str, role: Optional[str], permissions: Mapping[str, FrozenSet[str]] = TRANSITION_PERMISSIONS) -> bool:
    # clave ausente => nunca autorizado
    roles = permissions.get(key)
    return bool(roles) and role in roles


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) > 0
    return True


def missing_fields(
    target: str,
    supplied: Mapping[str, Any],
    requirements: Mapping[str, Requirement] = TRANSITION_REQUIREMENTS,
) -> List[str]:
    req = requirements.get(target)
    if req is None:
        return []
    return sorted(f for f in req.required_fields if not _is_present(supplied.get(f)))


def check_requirements(
    target: str,
    supplied: Mapping[str, Any],
    requirements: Mapping[str, Requirement] = TRANSITION_REQUIREMENTS,
) -> None:
    missing = missing_fields(target, supplied, requirements)
    if missing:
        raise MissingFieldsError(missing)


@dataclass(frozen=True)
class WorkflowTables:
    """Conjunto de tablas que usa el ejecutor."""

    transitions: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: WORKFLOW_TRANSITIONS)
    archive_transitions: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: ARCHIVE_TRANSITIONS)
    permissions: Mapping[str, FrozenSet[str]] = field(default_factory=lambda: TRANSITION_PERMISSIONS)
    requirements: Mapping[str, Requirement] = field(default_factory=lambda: TRANSITION_REQUIREMENTS)
    status_meta: Mapping[str, StatusMeta] = field(default_factory=lambda: STATUS_META)

    def can_transition(self, src: str, dst: str) -> bool:
        return can_transition(src, dst, self.transitions)

    def can_archive(self, src: str) -> bool:
        return can_transition(src, "ARCHIVED", self.archive_transitions)

    def allowed_transitions(self, status: str) -> Tuple[str, ...]:
        return allowed_transitions(status, self.transitions)

    def is_authorized(self, src: str, dst: str, role: Optional[str]) -> bool:
        return is_authorized(transition_key(src, dst), role, self.permissions)

    def missing_fields(self, target: str, supplied: Mapping[str, Any]) -> List[str]:
        return missing_fields(target, supplied, self.requirements)


DEFAULT_TABLES = WorkflowTables()


def available_transitions(status: str, role: Optional[str], tables: WorkflowTables = DEFAULT_TABLES) -> List[str]:
    """Destinos que `role` puede alcanzar desde `status` (ciclo de vida + archivado)."""
    targets = list(tables.allowed_transitions(status))
    targets += list(allowed_transitions(status, tables.archive_transitions))
    return [t for t in targets if tables.is_authorized(status, t, role)]


def can_user_transition(src: str, dst: str, role: Optional[str], tables: WorkflowTables = DEFAULT_TABLES) -> bool:
    reachable = tables.can_transition(src, dst) or (dst == "ARCHIVED" and tables.can_archive(src))
    return reachable and tables.is_authorized(src, dst, role)
