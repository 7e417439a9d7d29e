from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from estatetrust.core.security import ApiKeyParts, generate_api_key
from estatetrust.models.api_key import ApiKey
from estatetrust.models.user import User


async def issue_user(
    db: AsyncSession,
    *,
    email: str,
    display_name: str,
    role: str,
    phone: str | None = None,
    created_by: str = "internal",
) -> tuple[User, ApiKeyParts]:
    """Create a user together with its first API key. The plain key is only returned here."""
    user = User(
        email=email.lower(),
        display_name=display_name,
        phone=phone,
        role=role,
        created_by=created_by,
        updated_by=created_by,
    )
    db.add(user)
    await db.flush()  # user row must exist before the key references it

    key = generate_api_key()
    db.add(ApiKey(
        user_id=user.id,
        role=role,
        key_prefix=key.prefix,
        key_hash=key.hashed,
        is_active=True,
    ))
    await db.flush()
    return user, key
