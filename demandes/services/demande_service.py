# demandes/services/demande_service.py
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from demandes.core.config import settings
from demandes.models.actor import Actor
from demandes.models.common import REQUEST_TYPES, STAFF_ROLES
from demandes.models.demande import (
    Demande, DemandeCreate, DemandeUpdate, RequestTypeInfo, StudentRef, TransitionPayload,
)
from demandes.models.historique import AuditActor, AuditRecord
from demandes.repositories.counters_repo import CountersRepository
from demandes.repositories.demandes_repo import DemandesRepository
from demandes.repositories.historique_repo import AuditRepository
from demandes.utils.pagination import page_meta, parse_sort
from demandes.workflow.constants import DEFAULT_TABLES, WorkflowTables, available_transitions
from demandes.workflow.errors import (
    AuditWriteError, ConcurrentModificationError, DemandeNotFoundError, InvalidTransitionError,
    UnauthorizedTransitionError,
)
from demandes.workflow.state_machine import (
    DemandeWorkflow, TransitionContext, build_audit_record, status_info,
)

logger = logging.getLogger(__name__)


@dataclass
class Repositories:
    demandes: Any
    audit: Any
    counters: Any
    tables: WorkflowTables = DEFAULT_TABLES


def default_repositories() -> Repositories:
    return Repositories(DemandesRepository(), AuditRepository(), CountersRepository())


@dataclass
class DemandeOutcome:
    demande: Demande
    warnings: List[str] = field(default_factory=list)


def format_request_number(year: int, seq: int, prefix: str = "DEM") -> str:
    return f"{prefix}-{year:04d}-{seq:06d}"


async def next_request_number(counters, now: Optional[datetime] = None, prefix: Optional[str] = None) -> str:
    """Número DEM-YYYY-NNNNNN. Un contador atómico por año, así que la secuencia reinicia cada enero."""
    year = (now or datetime.now(timezone.utc)).year
    seq = await counters.next_sequence(f"request_number:{year}")
    return format_request_number(year, seq, prefix or settings.request_number_prefix)


def _actor_ref(actor: Actor) -> AuditActor:
    return AuditActor(id=actor.id, role=actor.role, name=actor.name)


async def _append_best_effort(repos: Repositories, record: AuditRecord, warnings: List[str]) -> None:
    try:
        await repos.audit.append(record)
    except AuditWriteError as e:
        logger.warning("Historique %s non écrit pour la demande %s: %s", record.action, record.demande_id, e)
        warnings.append(e.message)


async def load_demande(demande_id: str, repos: Repositories) -> Demande:
    demande = await repos.demandes.find_by_id(demande_id)
    # una demande desactivada se trata como inexistente
    if demande is None or not demande.active:
        raise DemandeNotFoundError("Demande non trouvée", {"demande_id": demande_id})
    return demande


async def _discard_submitted(repos: Repositories, demande: Demande) -> None:
    """Borra la demande recién insertada. Un fallo aquí se registra y no tapa el error original."""
    try:
        await asyncio.shield(repos.demandes.delete(demande.id))
    except Exception:
        logger.exception("Suppression de la demande %s restée en SUBMITTED impossible", demande.id)


async def create_demande(payload: DemandeCreate, actor: Actor, repos: Repositories) -> DemandeOutcome:
    """
    Alta de una demande en SUBMITTED seguida del paso automático a RECEIVED por SYSTEM.
    Si ese paso falla, la demande insertada se elimina y el error se propaga.
    """
    now = datetime.now(timezone.utc)
    type_name, processing_days = REQUEST_TYPES[payload.request_type]
    demande = Demande(
        request_number=await next_request_number(repos.counters, now),
        student=StudentRef(id=actor.id, name=actor.name or actor.id, email=actor.email, matricule=actor.matricule),
        request_type=RequestTypeInfo(code=payload.request_type, name=type_name, processing_days=processing_days),
        subject=payload.subject,
        description=payload.description,
        priority=payload.priority,
        status=status_info("SUBMITTED", repos.tables),
        created_at=now,
        updated_at=now,
    )
    await repos.demandes.insert(demande)

    warnings: List[str] = []
    await _append_best_effort(
        repos,
        build_audit_record(demande, None, demande.status, _actor_ref(actor), action="CREATION"),
        warnings,
    )

    workflow = DemandeWorkflow(demande, TransitionContext.system(), repos.demandes, repos.audit, repos.tables)
    try:
        await workflow.transition("RECEIVED")
    except BaseException:
        # incluye cancelaciones y timeouts del llamador: ninguna demande se queda en SUBMITTED
        logger.exception("Passage automatique à RECEIVED impossible pour %s; création annulée", demande.request_number)
        await _discard_submitted(repos, demande)
        raise
    if workflow.audit_error:
        warnings.append(workflow.audit_error.message)

    logger.info("Demande %s créée par %s", demande.request_number, actor.id)
    return DemandeOutcome(demande, warnings)


def transition_context(actor: Actor, payload: TransitionPayload) -> TransitionContext:
    return TransitionContext(
        actor_id=actor.id,
        actor_role=actor.role,
        actor_name=actor.name,
        comment=payload.comment,
        rejection_reason=payload.rejection_reason,
        assigned_to_id=payload.assigned_to_id,
    )


async def transition_demande(demande_id: str, payload: TransitionPayload, actor: Actor, repos: Repositories) -> DemandeOutcome:
    demande = await load_demande(demande_id, repos)
    workflow = DemandeWorkflow(demande, transition_context(actor, payload), repos.demandes, repos.audit, repos.tables)
    await workflow.transition(payload.to_status)
    warnings = [workflow.audit_error.message] if workflow.audit_error else []
    return DemandeOutcome(demande, warnings)


async def archive_demande(demande_id: str, actor: Actor, repos: Repositories, comment: Optional[str] = None) -> DemandeOutcome:
    demande = await load_demande(demande_id, repos)
    ctx = TransitionContext(actor_id=actor.id, actor_role=actor.role, actor_name=actor.name, comment=comment)
    workflow = DemandeWorkflow(demande, ctx, repos.demandes, repos.audit, repos.tables)
    await workflow.archive()
    warnings = [workflow.audit_error.message] if workflow.audit_error else []
    return DemandeOutcome(demande, warnings)


async def update_demande(demande_id: str, payload: DemandeUpdate, actor: Actor, repos: Repositories) -> DemandeOutcome:
    """Edición de objet/description/priorité. Prohibida en estados finales."""
    demande = await load_demande(demande_id, repos)
    current = demande.status.code
    if demande.status.is_terminal:
        raise InvalidTransitionError(
            f"Une demande au statut {current} ne peut plus être modifiée",
            {"current_status": current},
        )

    diff: Dict[str, Dict[str, Any]] = {}
    for name, value in payload.model_dump(exclude_none=True).items():
        old = getattr(demande, name)
        if old != value:
            diff[name] = {"old": old, "new": value}
    if not diff:
        return DemandeOutcome(demande)

    set_ops: Dict[str, Any] = {name: change["new"] for name, change in diff.items()}
    set_ops["updated_at"] = datetime.now(timezone.utc)
    if not await repos.demandes.update_if_status(demande.id, current, set_ops):
        raise ConcurrentModificationError(
            f"La demande {demande.id} a été modifiée entre-temps (statut attendu: {current})",
            {"demande_id": demande.id, "expected_status": current},
        )
    for name, value in set_ops.items():
        setattr(demande, name, value)

    warnings: List[str] = []
    await _append_best_effort(
        repos,
        build_audit_record(demande, demande.status, demande.status, _actor_ref(actor), action="MODIFICATION", changed_data=diff),
        warnings,
    )
    return DemandeOutcome(demande, warnings)


async def add_comment(demande_id: str, content: str, actor: Actor, repos: Repositories) -> AuditRecord:
    """Comentario sin cambio de estado. El comentario vive solo en el historial, así que aquí el fallo sí se propaga."""
    demande = await load_demande(demande_id, repos)
    record = build_audit_record(
        demande, demande.status, demande.status, _actor_ref(actor), action="COMMENT", comment=content.strip(),
    )
    await repos.audit.append(record)
    return record


async def delete_demande(demande_id: str, actor: Actor, repos: Repositories) -> DemandeOutcome:
    """Baja lógica (`active=False`). Reservada al personal; el historial se conserva."""
    if actor.role not in STAFF_ROLES:
        raise UnauthorizedTransitionError(
            f"Rôle {actor.role} non autorisé à supprimer une demande",
            {"user_role": actor.role, "required_roles": list(STAFF_ROLES)},
        )
    demande = await load_demande(demande_id, repos)
    now = datetime.now(timezone.utc)
    if not await repos.demandes.update_fields(demande.id, {"active": False, "updated_at": now}):
        raise DemandeNotFoundError("Demande non trouvée", {"demande_id": demande_id})
    demande.active = False
    demande.updated_at = now

    warnings: List[str] = []
    await _append_best_effort(
        repos,
        build_audit_record(
            demande, demande.status, demande.status, _actor_ref(actor),
            action="MODIFICATION", changed_data={"active": {"old": True, "new": False}},
        ),
        warnings,
    )
    logger.info("Demande %s désactivée par %s", demande.request_number or demande.id, actor.id)
    return DemandeOutcome(demande, warnings)


async def get_history(demande_id: str, repos: Repositories) -> List[AuditRecord]:
    await load_demande(demande_id, repos)
    return await repos.audit.list_by_demande(demande_id)


SORTABLE_FIELDS = ("created_at", "updated_at", "request_number", "priority", "status.code")


async def list_demandes(
    actor: Actor,
    repos: Repositories,
    page: int = 1,
    page_size: int = 20,
    sort: str = "-created_at",
    status: Optional[str] = None,
    priority: Optional[str] = None,
    request_type: Optional[str] = None,
):
    filt: Dict[str, Any] = {"active": True}
    if actor.is_student:
        filt["student.id"] = actor.id
    if status:
        filt["status.code"] = status
    if priority:
        filt["priority"] = priority
    if request_type:
        filt["request_type.code"] = request_type

    sort_field, sort_dir = parse_sort(sort, SORTABLE_FIELDS)
    meta = page_meta(await repos.demandes.count(filt), page, page_size)
    items = await repos.demandes.list_paginated(filt, sort_field, sort_dir, meta.skip, page_size)
    return items, meta


def transitions_for(demande: Demande, actor: Actor, repos: Repositories) -> List[str]:
    return available_transitions(demande.status.code, actor.role, repos.tables)
