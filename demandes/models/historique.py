# demandes/models/historique.py
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, timezone
from typing import Optional, Dict, Any
import uuid
from demandes.models.common import ActionType, ActorRole, DemandeStatus


class StatusRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: DemandeStatus
    label: str


class AuditActor(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    role: ActorRole
    name: Optional[str] = None


class AuditRecord(BaseModel):
    """Entrada del historial. Inmutable: solo se inserta, nunca se actualiza ni se borra."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    demande_id: str
    request_number: Optional[str] = None
    previous_status: Optional[StatusRef] = None
    new_status: StatusRef
    actor: AuditActor
    action: ActionType = "STATUS_CHANGE"
    comment: Optional[str] = None
    changed_data: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
