import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from estatetrust.core.db import get_db
from estatetrust.schemas.me import UserCreate, UserIssuedOut
from estatetrust.services.auth import require_internal_admin
from estatetrust.services.users import issue_user


log = logging.getLogger(__name__)
router = APIRouter()


@router.post("/internal/users", response_model=UserIssuedOut, dependencies=[Depends(require_internal_admin)])
async def create_user(payload: UserCreate, db: AsyncSession = Depends(get_db)) -> UserIssuedOut:
    """
    Ops bootstrap: create a user (any role, including the first admin) and
    return its API key. The plain key is not stored and cannot be shown again.
    """
    try:
        user, key = await issue_user(
            db,
            email=payload.email,
            display_name=payload.display_name,
            phone=payload.phone,
            role=payload.role,
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        log.exception("user bootstrap failed: integrity error")
        raise HTTPException(status_code=409, detail="User already exists")

    return UserIssuedOut(user_id=user.id, role=user.role, api_key=key.plain)
