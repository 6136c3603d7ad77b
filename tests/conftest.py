import asyncio
import copy
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

# Configura las variables requeridas antes de importar el backend.
os.environ.setdefault("MONGO_URL", "mongodb://localhost:27017/test")
os.environ.setdefault("DB_NAME", "test_db")
os.environ.setdefault("SECRET_KEY", "test-secret")

from demandes.models.actor import Actor  # noqa: E402
from demandes.models.demande import Demande, RequestTypeInfo, StudentRef  # noqa: E402
from demandes.models.historique import AuditRecord  # noqa: E402
from demandes.services.demande_service import Repositories  # noqa: E402
from demandes.workflow.errors import AuditWriteError, DuplicateDemandeError  # noqa: E402
from demandes.workflow.state_machine import TransitionContext, status_info  # noqa: E402


def _get_path(doc: Dict[str, Any], path: str):
    cur: Any = doc
    for part in path.split("."):
        if not isinstance(cur, dict):
            return None
        cur = cur.get(part)
    return cur


class InMemoryDemandes:
    """Sustituto de DemandesRepository: misma interfaz, documentos en un dict."""

    def __init__(self):
        self.docs: Dict[str, Dict[str, Any]] = {}

    def seed(self, demande: Demande) -> Demande:
        self.docs[demande.id] = demande.model_dump()
        return demande

    async def find_by_id(self, demande_id: str) -> Optional[Demande]:
        doc = self.docs.get(demande_id)
        return Demande(**copy.deepcopy(doc)) if doc else None

    async def insert(self, demande: Demande) -> Demande:
        numbers = {d.get("request_number") for d in self.docs.values()}
        if demande.id in self.docs or (demande.request_number and demande.request_number in numbers):
            raise DuplicateDemandeError("Une demande avec ces données existe déjà")
        self.docs[demande.id] = demande.model_dump()
        return demande

    async def update_if_status(self, demande_id: str, expected_status: str, set_ops: Dict[str, Any]) -> bool:
        # punto de suspensión: deja que otra corrutina lea antes de la escritura
        await asyncio.sleep(0)
        doc = self.docs.get(demande_id)
        if doc is None or doc["status"]["code"] != expected_status:
            return False
        doc.update(copy.deepcopy(set_ops))
        return True

    async def update_fields(self, demande_id: str, set_ops: Dict[str, Any]) -> bool:
        doc = self.docs.get(demande_id)
        if doc is None:
            return False
        doc.update(copy.deepcopy(set_ops))
        return True

    async def delete(self, demande_id: str) -> None:
        self.docs.pop(demande_id, None)

    def _match(self, filt: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [d for d in self.docs.values() if all(_get_path(d, k) == v for k, v in filt.items())]

    async def list_paginated(self, filt, sort_field, sort_dir, skip, limit) -> List[Demande]:
        docs = sorted(self._match(filt), key=lambda d: _get_path(d, sort_field), reverse=sort_dir < 0)
        return [Demande(**copy.deepcopy(d)) for d in docs[skip:skip + limit]]

    async def count(self, filt) -> int:
        return len(self._match(filt))


class InMemoryAudit:
    def __init__(self):
        self.records: List[AuditRecord] = []
        self.fail = False

    async def append(self, record: AuditRecord) -> None:
        if self.fail:
            raise AuditWriteError("historique indisponible", {"demande_id": record.demande_id})
        self.records.append(record)

    async def list_by_demande(self, demande_id: str, limit: int = 500) -> List[AuditRecord]:
        return [r for r in self.records if r.demande_id == demande_id][:limit]


class InMemoryCounters:
    def __init__(self):
        self.values: Dict[str, int] = {}

    async def next_sequence(self, name: str) -> int:
        self.values[name] = self.values.get(name, 0) + 1
        return self.values[name]


@pytest.fixture
def repos() -> Repositories:
    return Repositories(InMemoryDemandes(), InMemoryAudit(), InMemoryCounters())


@pytest.fixture
def student() -> Actor:
    return Actor(id="etu-1", role="STUDENT", name="Awa Diallo", email="awa@univ.example", matricule="MAT-2024-001")


@pytest.fixture
def admin() -> Actor:
    return Actor(id="adm-1", role="ADMIN", name="Service Scolarité")


def make_demande(status: str = "RECEIVED", student_id: str = "etu-1", number: Optional[str] = "DEM-2026-000001", **extra) -> Demande:
    now = datetime.now(timezone.utc)
    return Demande(
        request_number=number,
        student=StudentRef(id=student_id, name="Awa Diallo", email="awa@univ.example"),
        request_type=RequestTypeInfo(code="RELEVE_NOTES", name="Relevé de notes", processing_days=5),
        subject="Relevé de notes du semestre 3",
        description="Je souhaite obtenir mon relevé de notes officiel.",
        status=status_info(status),
        created_at=now,
        updated_at=now,
        **extra,
    )


def admin_context(**kwargs) -> TransitionContext:
    return TransitionContext(actor_id="adm-1", actor_role="ADMIN", actor_name="Service Scolarité", **kwargs)
