# demandes/api/router.py
from fastapi import APIRouter
from demandes.api.routes import demandes, workflow

api_router = APIRouter(prefix="/api")
api_router.include_router(demandes.router, prefix="/demandes", tags=["demandes"])
api_router.include_router(workflow.router, prefix="/workflow", tags=["workflow"])
