from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from estatetrust.core.db import get_db
from estatetrust.schemas.me import ActivityOut, ActivityPage, MeOut
from estatetrust.services.audit import list_activity
from estatetrust.services.auth import Actor, get_actor

router = APIRouter()

@router.get("/me", response_model=MeOut)
async def me(actor: Actor = Depends(get_actor)) -> MeOut:
    return MeOut(api_key_id=actor.api_key_id, user_id=actor.user_id, role=actor.role)


@router.get("/me/activity", response_model=ActivityPage)
async def my_activity(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ActivityPage:
    rows, has_more = await list_activity(db, actor_user_id=actor.user_id, page=page, page_size=limit)
    return ActivityPage(
        records=[
            ActivityOut(
                id=r.id,
                action=r.action,
                target_type=r.target_type,
                target_id=r.target_id,
                detail=r.detail,
                created_at=r.created_at,
            )
            for r in rows
        ],
        has_more=has_more,
    )
