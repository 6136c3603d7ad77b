# demandes/repositories/counters_repo.py
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError
from demandes.core.db import get_db
from demandes.workflow.errors import PersistenceError


class CountersRepository:
    """Secuencias atómicas por nombre (colección `counters`, un documento por secuencia)."""

    def __init__(self, db: Optional[AsyncIOMotorDatabase] = None):
        self._db = db

    @property
    def collection(self):
        return (self._db if self._db is not None else get_db()).counters

    async def next_sequence(self, name: str) -> int:
        try:
            doc = await self.collection.find_one_and_update(
                {"_id": name},
                {"$inc": {"seq": 1}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise PersistenceError(f"Compteur {name} indisponible: {e}") from e
        return int(doc["seq"])
