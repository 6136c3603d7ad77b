# demandes/workflow/state_machine.py
"""
Ejecutor del workflow de una demande.

Una llamada a `transition()` es una unidad de trabajo:

1. lee el estado actual de la entidad;
2. comprueba que el destino es alcanzable en el grafo;
3. comprueba que el rol del actor está autorizado para esa transición;
4. comprueba los campos requeridos por el estado destino;
5. aplica los cambios con una escritura condicionada al estado leído en (1);
6. añade una entrada al historial;
7. devuelve la entidad actualizada.

Si falla (2), (3), (4) o (5) la entidad en memoria no se toca. Un fallo en (6)
no deshace (5): queda en `audit_error` y se registra como warning.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

from pydantic import BaseModel

from demandes.models.common import STAFF_ROLES, SYSTEM_ACTOR_ID
from demandes.models.demande import Demande, StatusInfo
from demandes.models.historique import AuditActor, AuditRecord, StatusRef
from demandes.workflow.constants import DEFAULT_TABLES, WorkflowTables, transition_key
from demandes.workflow.errors import (
    AuditWriteError,
    ConcurrentModificationError,
    InvalidTransitionError,
    MissingFieldsError,
    UnauthorizedTransitionError,
)

logger = logging.getLogger(__name__)


class DemandeStore(Protocol):
    async def update_if_status(self, demande_id: str, expected_status: str, set_ops: Dict[str, Any]) -> bool: ...


class AuditStore(Protocol):
    async def append(self, record: AuditRecord) -> None: ...


@dataclass
class TransitionContext:
    actor_id: str
    actor_role: Optional[str]
    actor_name: Optional[str] = None
    comment: Optional[str] = None
    rejection_reason: Optional[str] = None
    assigned_to_id: Optional[str] = None

    @classmethod
    def system(cls) -> "TransitionContext":
        return cls(actor_id=SYSTEM_ACTOR_ID, actor_role="SYSTEM", actor_name="Système")

    def supplied_fields(self) -> Dict[str, Any]:
        """Valores del contexto con el nombre de campo que usan las tablas de requisitos."""
        return {
            "admin_comment": self.comment,
            "rejection_reason": self.rejection_reason,
            "assigned_to_id": self.assigned_to_id,
        }

    def clean_comment(self) -> Optional[str]:
        return (self.comment or "").strip() or None

    def audit_actor(self) -> AuditActor:
        return AuditActor(id=self.actor_id, role=self.actor_role, name=self.actor_name)


def status_info(code: str, tables: WorkflowTables = DEFAULT_TABLES) -> StatusInfo:
    meta = tables.status_meta[code]
    return StatusInfo(code=code, label=meta.label, color=meta.color, is_terminal=meta.is_terminal)


def status_ref(info: Optional[StatusInfo]) -> Optional[StatusRef]:
    return StatusRef(code=info.code, label=info.label) if info else None


def _to_mongo(value: Any) -> Any:
    return value.model_dump() if isinstance(value, BaseModel) else value


def build_audit_record(
    demande: Demande,
    previous: Optional[StatusInfo],
    new: StatusInfo,
    actor: AuditActor,
    action: str = "STATUS_CHANGE",
    comment: Optional[str] = None,
    changed_data: Optional[Dict[str, Any]] = None,
) -> AuditRecord:
    return AuditRecord(
        demande_id=demande.id,
        request_number=demande.request_number,
        previous_status=status_ref(previous),
        new_status=status_ref(new),
        actor=actor,
        action=action,
        comment=comment,
        changed_data=changed_data or None,
    )


class DemandeWorkflow:
    def __init__(
        self,
        demande: Demande,
        context: TransitionContext,
        demandes_repo: DemandeStore,
        audit_repo: AuditStore,
        tables: WorkflowTables = DEFAULT_TABLES,
    ):
        self.demande = demande
        self.context = context
        self.demandes_repo = demandes_repo
        self.audit_repo = audit_repo
        self.tables = tables
        self.audit_record: Optional[AuditRecord] = None
        self.audit_error: Optional[AuditWriteError] = None

    async def transition(self, target: str) -> Demande:
        current = self.demande.status.code

        if not self.tables.can_transition(current, target):
            allowed = self.tables.allowed_transitions(current)
            raise InvalidTransitionError(
                f"Transition invalide: {current} → {target}. "
                f"Transitions autorisées: {', '.join(allowed) or 'aucune'}",
                {"current_status": current, "attempted_status": target, "allowed_transitions": list(allowed)},
            )

        self._check_permission(current, target)

        missing = self.tables.missing_fields(target, self.context.supplied_fields())
        if missing:
            raise MissingFieldsError(missing)

        return await self._apply(current, target, self._changes_for(target))

    async def archive(self) -> Demande:
        """Archiva una demande en estado final (REJECTED o PROCESSED)."""
        current = self.demande.status.code
        if not self.tables.can_archive(current):
            raise InvalidTransitionError(
                f"Seules les demandes rejetées ou traitées peuvent être archivées (statut actuel: {current})",
                {"current_status": current, "attempted_status": "ARCHIVED"},
            )
        self._check_permission(current, "ARCHIVED")
        return await self._apply(current, "ARCHIVED", self._changes_for("ARCHIVED"))

    def _check_permission(self, current: str, target: str) -> None:
        role = self.context.actor_role
        if not role:
            raise UnauthorizedTransitionError("Le rôle de l'utilisateur est requis pour changer le statut")
        if not self.tables.is_authorized(current, target, role):
            key = transition_key(current, target)
            raise UnauthorizedTransitionError(
                f"Rôle {role} non autorisé pour la transition {key}",
                {"user_role": role, "required_roles": sorted(self.tables.permissions.get(key, ()))},
            )

    def _changes_for(self, target: str) -> Dict[str, Any]:
        ctx = self.context
        now = datetime.now(timezone.utc)
        changes: Dict[str, Any] = {"status": status_info(target, self.tables), "updated_at": now}

        # admin_comment y assigned_to_id son campos del personal; el comentario de un
        # estudiante solo queda en el historial
        staff = ctx.actor_role in STAFF_ROLES
        if staff and ctx.clean_comment():
            changes["admin_comment"] = ctx.clean_comment()
        if target == "REJECTED" and ctx.rejection_reason:
            changes["rejection_reason"] = ctx.rejection_reason.strip()
        if staff and ctx.assigned_to_id:
            changes["assigned_to_id"] = ctx.assigned_to_id
        elif staff and target == "APPROVED" and not self.demande.assigned_to_id:
            # quien valida queda como responsable si nadie estaba asignado
            changes["assigned_to_id"] = ctx.actor_id
        if target == "PROCESSED":
            changes["processed_at"] = now
        return changes

    async def _apply(self, current: str, target: str, changes: Dict[str, Any]) -> Demande:
        set_ops = {k: _to_mongo(v) for k, v in changes.items()}
        saved = await self.demandes_repo.update_if_status(self.demande.id, current, set_ops)
        if not saved:
            raise ConcurrentModificationError(
                f"La demande {self.demande.id} a été modifiée entre-temps (statut attendu: {current})",
                {"demande_id": self.demande.id, "expected_status": current, "attempted_status": target},
            )

        previous = self.demande.status
        for name, value in changes.items():
            setattr(self.demande, name, value)
        logger.info(
            "Demande %s: %s → %s par %s (%s)",
            self.demande.request_number or self.demande.id, current, target,
            self.context.actor_id, self.context.actor_role,
        )

        snapshot = {k: v for k, v in set_ops.items() if k not in ("status", "updated_at")}
        await self._write_audit(previous, self.demande.status, snapshot)
        return self.demande

    async def _write_audit(self, previous: StatusInfo, new: StatusInfo, snapshot: Dict[str, Any]) -> None:
        record = build_audit_record(
            self.demande, previous, new, self.context.audit_actor(),
            action="STATUS_CHANGE", comment=self.context.clean_comment(), changed_data=snapshot,
        )
        try:
            await self.audit_repo.append(record)
        except AuditWriteError as e:
            self.audit_error = e
            logger.warning(
                "Historique non écrit pour la demande %s (%s → %s): %s",
                self.demande.id, previous.code, new.code, e,
            )
            return
        self.audit_record = record
