# demandes/models/actor.py
from pydantic import BaseModel
from typing import Optional
from demandes.models.common import ActorRole


class Actor(BaseModel):
    """Identidad ya autenticada que llega de la capa de auth (claims del token)."""

    id: str
    role: ActorRole
    name: Optional[str] = None
    email: Optional[str] = None
    matricule: Optional[str] = None

    @property
    def is_student(self) -> bool:
        return self.role == "STUDENT"
