# demandes/models/demande.py
from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
import re
import uuid
from demandes.models.common import DemandeStatus, Priority, RequestTypeCode, TransitionTarget

SUBJECT_RE = re.compile(r"^[a-zA-ZÀ-ÿ0-9\s\-',.:!?()]+$")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_spaces(value: str) -> str:
    return re.sub(r"\s+", " ", value.strip())


class StatusInfo(BaseModel):
    code: DemandeStatus
    label: str
    color: str
    is_terminal: bool = False


class StudentRef(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    matricule: Optional[str] = None


class RequestTypeInfo(BaseModel):
    code: RequestTypeCode
    name: str
    processing_days: int


class DocumentRef(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    file_name: str
    url: str
    mime_type: Optional[str] = None
    size: Optional[int] = None
    category: Optional[str] = None
    uploaded_at: datetime = Field(default_factory=_now)


class Demande(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    request_number: Optional[str] = None
    student: StudentRef
    request_type: RequestTypeInfo
    subject: str
    description: str
    priority: Priority = "NORMAL"
    status: StatusInfo
    documents: List[DocumentRef] = Field(default_factory=list)
    admin_comment: Optional[str] = None
    rejection_reason: Optional[str] = None
    processed_at: Optional[datetime] = None
    assigned_to_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    active: bool = True
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


def clean_subject(v: str) -> str:
    v = normalize_spaces(v)
    if not 5 <= len(v) <= 255:
        raise ValueError("L'objet doit contenir entre 5 et 255 caractères")
    if not SUBJECT_RE.match(v):
        raise ValueError("L'objet contient des caractères non autorisés")
    return v


def clean_description(v: str) -> str:
    v = normalize_spaces(v)
    if not 10 <= len(v) <= 2000:
        raise ValueError("La description doit contenir entre 10 et 2000 caractères")
    return v


class DemandeCreate(BaseModel):
    request_type: RequestTypeCode
    subject: str
    description: str
    priority: Priority = "NORMAL"

    @field_validator("subject")
    @classmethod
    def check_subject(cls, v: str) -> str:
        return clean_subject(v)

    @field_validator("description")
    @classmethod
    def check_description(cls, v: str) -> str:
        return clean_description(v)

    @model_validator(mode="after")
    def subject_differs_from_description(self):
        if self.subject.lower() == self.description.lower()[: len(self.subject)]:
            raise ValueError("L'objet et la description ne peuvent pas être identiques")
        return self


class DemandeUpdate(BaseModel):
    subject: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[Priority] = None

    @field_validator("subject")
    @classmethod
    def check_subject(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else clean_subject(v)

    @field_validator("description")
    @classmethod
    def check_description(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else clean_description(v)


class TransitionPayload(BaseModel):
    to_status: TransitionTarget
    comment: Optional[str] = Field(default=None, max_length=1000)
    rejection_reason: Optional[str] = Field(default=None, max_length=500)
    assigned_to_id: Optional[str] = None


class ArchivePayload(BaseModel):
    comment: Optional[str] = Field(default=None, max_length=1000)


class CommentPayload(BaseModel):
    content: str = Field(min_length=1, max_length=1000)
