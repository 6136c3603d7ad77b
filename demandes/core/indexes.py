# demandes/core/indexes.py
import logging
from pymongo.errors import PyMongoError
from demandes.core.db import get_db

logger = logging.getLogger(__name__)


async def ensure_demandes_indexes(db):
    await db.demandes.create_index([("id", 1)], unique=True)
    # unicidad del número DEM-YYYY-NNNNNN, además del contador atómico
    await db.demandes.create_index([("request_number", 1)], unique=True, sparse=True)
    await db.demandes.create_index([("student.id", 1)])
    await db.demandes.create_index([("status.code", 1)])
    await db.demandes.create_index([("request_type.code", 1)])
    await db.demandes.create_index([("created_at", -1)])
    await db.demandes.create_index([("student.id", 1), ("status.code", 1)])


async def ensure_historique_indexes(db):
    await db.historique.create_index([("id", 1)], unique=True)
    await db.historique.create_index([("demande_id", 1), ("created_at", 1)])
    await db.historique.create_index([("created_at", -1)])
    await db.historique.create_index([("actor.id", 1)])
    await db.historique.create_index([("request_number", 1)])


async def startup_tasks():
    """Idempotente: se puede ejecutar en cada arranque."""
    db = get_db()
    try:
        await ensure_demandes_indexes(db)
        await ensure_historique_indexes(db)
        logger.info("startup_tasks: índices asegurados")
    except PyMongoError as e:
        logger.exception("Error en startup_tasks: %s", e)
        raise
