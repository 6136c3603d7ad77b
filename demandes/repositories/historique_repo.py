# demandes/repositories/historique_repo.py
from typing import List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError
from demandes.core.db import get_db
from demandes.models.historique import AuditRecord
from demandes.utils.mongo_helpers import strip_mongo_id
from demandes.workflow.errors import AuditWriteError, PersistenceError


class AuditRepository:
    """Historial append-only (colección `historique`)."""

    def __init__(self, db: Optional[AsyncIOMotorDatabase] = None):
        self._db = db

    @property
    def collection(self):
        return (self._db if self._db is not None else get_db()).historique

    async def append(self, record: AuditRecord) -> None:
        try:
            await self.collection.insert_one(record.model_dump())
        except PyMongoError as e:
            raise AuditWriteError(f"Écriture de l'historique impossible: {e}", {"demande_id": record.demande_id}) from e

    async def list_by_demande(self, demande_id: str, limit: int = 500) -> List[AuditRecord]:
        try:
            # _id (ObjectId) desempata registros con el mismo created_at
            cur = self.collection.find({"demande_id": demande_id}).sort([("created_at", 1), ("_id", 1)]).limit(limit)
            docs = await cur.to_list(length=limit)
        except PyMongoError as e:
            raise PersistenceError(f"Lecture de l'historique impossible: {e}") from e
        return [AuditRecord(**strip_mongo_id(d)) for d in docs]
