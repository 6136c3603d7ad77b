# demandes/repositories/demandes_repo.py
from typing import Any, Dict, List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError
from demandes.core.db import get_db
from demandes.models.demande import Demande
from demandes.utils.mongo_helpers import strip_mongo_id
from demandes.workflow.errors import DuplicateDemandeError, PersistenceError


class DemandesRepository:
    """Acceso a la colección `demandes`. Los documentos se identifican por `id`, no por `_id`."""

    def __init__(self, db: Optional[AsyncIOMotorDatabase] = None):
        self._db = db

    @property
    def collection(self):
        return (self._db if self._db is not None else get_db()).demandes

    async def find_by_id(self, demande_id: str) -> Optional[Demande]:
        try:
            doc = await self.collection.find_one({"id": demande_id})
        except PyMongoError as e:
            raise PersistenceError(f"Lecture de la demande {demande_id} impossible: {e}") from e
        return Demande(**strip_mongo_id(doc)) if doc else None

    async def insert(self, demande: Demande) -> Demande:
        try:
            await self.collection.insert_one(demande.model_dump())
        except DuplicateKeyError as e:
            raise DuplicateDemandeError(
                "Une demande avec ces données existe déjà",
                {"key": (e.details or {}).get("keyValue")},
            ) from e
        except PyMongoError as e:
            raise PersistenceError(f"Insertion de la demande impossible: {e}") from e
        return demande

    async def update_if_status(self, demande_id: str, expected_status: str, set_ops: Dict[str, Any]) -> bool:
        """
        Compare-and-swap sobre `status.code`: solo escribe si el documento sigue
        en `expected_status`. Devuelve False si otro proceso cambió el estado antes.
        """
        try:
            res = await self.collection.update_one(
                {"id": demande_id, "status.code": expected_status},
                {"$set": set_ops},
            )
        except PyMongoError as e:
            raise PersistenceError(f"Mise à jour de la demande {demande_id} impossible: {e}") from e
        return res.matched_count == 1

    async def update_fields(self, demande_id: str, set_ops: Dict[str, Any]) -> bool:
        try:
            res = await self.collection.update_one({"id": demande_id}, {"$set": set_ops})
        except PyMongoError as e:
            raise PersistenceError(f"Mise à jour de la demande {demande_id} impossible: {e}") from e
        return res.matched_count == 1

    async def delete(self, demande_id: str) -> None:
        try:
            await self.collection.delete_one({"id": demande_id})
        except PyMongoError as e:
            raise PersistenceError(f"Suppression de la demande {demande_id} impossible: {e}") from e

    async def list_paginated(self, filt: Dict[str, Any], sort_field: str, sort_dir: int, skip: int, limit: int) -> List[Demande]:
        try:
            cur = self.collection.find(filt).sort(sort_field, sort_dir).skip(skip).limit(limit)
            docs = await cur.to_list(length=limit)
        except PyMongoError as e:
            raise PersistenceError(f"Lecture des demandes impossible: {e}") from e
        return [Demande(**strip_mongo_id(d)) for d in docs]

    async def count(self, filt: Dict[str, Any]) -> int:
        try:
            return await self.collection.count_documents(filt)
        except PyMongoError as e:
            raise PersistenceError(f"Comptage des demandes impossible: {e}") from e
