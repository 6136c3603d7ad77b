# demandes/api/deps.py
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import List
import jwt
from pydantic import ValidationError
from demandes.core.security import decode_token
from demandes.models.actor import Actor
from demandes.services.demande_service import Repositories, default_repositories

security = HTTPBearer()


async def get_current_actor(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Actor:
    try:
        payload = decode_token(credentials.credentials)
        actor = Actor(
            id=payload["sub"],
            role=payload["role"],
            name=payload.get("name"),
            email=payload.get("email"),
            matricule=payload.get("matricule"),
        )
    except (jwt.PyJWTError, KeyError, ValidationError):
        raise HTTPException(status_code=401, detail="Identifiants invalides")
    if actor.role == "SYSTEM":
        # SYSTEM es un actor interno: nunca llega por HTTP
        raise HTTPException(status_code=401, detail="Identifiants invalides")
    return actor


def require_role(roles: List[str]):
    async def checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(status_code=403, detail="Non autorisé")
        return actor
    return checker


def get_repositories() -> Repositories:
    return default_repositories()
