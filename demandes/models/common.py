# demandes/models/common.py
from typing import Literal

DemandeStatus = Literal[
    "SUBMITTED", "RECEIVED", "IN_PROGRESS", "AWAITING_INFO",
    "APPROVED", "REJECTED", "PROCESSED", "ARCHIVED",
]
# SUBMITTED es solo estado inicial: nunca es destino de una transición
TransitionTarget = Literal[
    "RECEIVED", "IN_PROGRESS", "AWAITING_INFO",
    "APPROVED", "REJECTED", "PROCESSED", "ARCHIVED",
]
ActorRole = Literal["STUDENT", "ADMIN", "SUPER_ADMIN", "SYSTEM"]
ActionType = Literal["CREATION", "STATUS_CHANGE", "MODIFICATION", "COMMENT"]
Priority = Literal["LOW", "NORMAL", "HIGH", "URGENT"]
RequestTypeCode = Literal[
    "ATTESTATION_SCOLARITE", "RELEVE_NOTES", "ATTESTATION_REUSSITE",
    "DUPLICATA_CARTE", "CONVENTION_STAGE",
]

SYSTEM_ACTOR_ID = "SYSTEM"
STAFF_ROLES = ("ADMIN", "SUPER_ADMIN")

# code -> (nombre, días de tratamiento)
REQUEST_TYPES = {
    "ATTESTATION_SCOLARITE": ("Attestation de scolarité", 3),
    "RELEVE_NOTES": ("Relevé de notes", 5),
    "ATTESTATION_REUSSITE": ("Attestation de réussite", 7),
    "DUPLICATA_CARTE": ("Duplicata de carte étudiant", 10),
    "CONVENTION_STAGE": ("Convention de stage", 5),
}
