import hmac
from dataclasses import dataclass
from fastapi import Depends, Header, HTTPException, Security
from fastapi.security.api_key import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from estatetrust.core.config import settings
from estatetrust.core.db import get_db
from estatetrust.core.security import hash_api_key, key_prefix
from estatetrust.models.api_key import ApiKey

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


@dataclass(frozen=True)
class Actor:
    api_key_id: str
    user_id: str
    role: str  # "user" | "agent" | "admin"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


async def _lookup_actor(db: AsyncSession, api_key: str) -> Actor | None:
    prefix = key_prefix(api_key)
    if prefix is None:
        return None
    stmt = select(ApiKey).where(
        ApiKey.key_prefix == prefix,
        ApiKey.key_hash == hash_api_key(api_key),
        ApiKey.is_active.is_(True),
    )
    row = (await db.execute(stmt)).scalar_one_or_none()
    if not row:
        return None
    return Actor(api_key_id=row.id, user_id=row.user_id, role=row.role)


async def get_actor(
    api_key: str | None = Security(api_key_header),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    if not api_key:
        raise HTTPException(status_code=401, detail="Missing X-API-Key")

    actor = await _lookup_actor(db, api_key)
    if not actor:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return actor


async def get_optional_actor(
    api_key: str | None = Security(api_key_header),
    db: AsyncSession = Depends(get_db),
) -> Actor | None:
    # Contact disclosure works for anonymous buyers; a key, when sent, must still be valid.
    if not api_key:
        return None
    actor = await _lookup_actor(db, api_key)
    if not actor:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return actor


def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return actor


def require_agent(actor: Actor = Depends(get_actor)) -> Actor:
    if actor.role != "agent":
        raise HTTPException(status_code=403, detail="Agent role required")
    return actor


async def require_internal_admin(x_internal_admin_key: str | None = Header(default=None)) -> None:
    expected = settings.internal_admin_key
    if not x_internal_admin_key or not hmac.compare_digest(x_internal_admin_key, expected):
        raise HTTPException(status_code=403, detail="Internal admin key required")
