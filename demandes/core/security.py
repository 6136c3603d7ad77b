# demandes/core/security.py
from datetime import datetime, timedelta, timezone
from typing import Any, Dict
import jwt
from demandes.core.config import settings


def create_access_token(sub: str, role: str, minutes: int | None = None, **claims: Any) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes or settings.access_token_expire_minutes)
    payload: Dict[str, Any] = {"sub": sub, "role": role, "exp": expire}
    payload.update({k: v for k, v in claims.items() if v is not None})
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
