from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from estatetrust.api.deps import get_notifications
from estatetrust.core.db import get_db
from estatetrust.models.notification import Notification
from estatetrust.schemas.notification import (
    MarkAllReadOut,
    NotificationOut,
    NotificationPageOut,
    UnreadCountOut,
)
from estatetrust.services.auth import Actor, get_actor
from estatetrust.services.notifications import NotificationEmitter, audiences_for

router = APIRouter(prefix="/notifications")


def notification_out(n: Notification) -> NotificationOut:
    return NotificationOut(
        id=n.id,
        audience=n.audience,
        type=n.type,
        title=n.title,
        message=n.message,
        priority=n.priority,
        listing_id=n.listing_id,
        status=n.status,
        metadata=n.meta,
        created_at=n.created_at,
        read_at=n.read_at,
    )


@router.get("", response_model=NotificationPageOut)
async def list_notifications(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status: str = Query(default="all"),
    actor: Actor = Depends(get_actor),
    notifications: NotificationEmitter = Depends(get_notifications),
) -> NotificationPageOut:
    res = await notifications.list(audiences_for(actor), status=status, page=page, page_size=limit)
    return NotificationPageOut(records=[notification_out(n) for n in res.records], has_more=res.has_more)


@router.get("/unread-count", response_model=UnreadCountOut)
async def unread_count(
    actor: Actor = Depends(get_actor),
    notifications: NotificationEmitter = Depends(get_notifications),
) -> UnreadCountOut:
    return UnreadCountOut(count=await notifications.unread_count(audiences_for(actor)))


@router.put("/mark-all-read", response_model=MarkAllReadOut)
async def mark_all_read(
    actor: Actor = Depends(get_actor),
    notifications: NotificationEmitter = Depends(get_notifications),
    db: AsyncSession = Depends(get_db),
) -> MarkAllReadOut:
    updated = await notifications.mark_all_read(audiences_for(actor))
    await db.commit()
    return MarkAllReadOut(updated=updated)


@router.put("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(
    notification_id: str,
    actor: Actor = Depends(get_actor),
    notifications: NotificationEmitter = Depends(get_notifications),
    db: AsyncSession = Depends(get_db),
) -> NotificationOut:
    n = await notifications.mark_read(notification_id, audiences_for(actor))
    resp = notification_out(n)
    await db.commit()
    return resp


@router.put("/{notification_id}/archive", response_model=NotificationOut)
async def archive(
    notification_id: str,
    actor: Actor = Depends(get_actor),
    notifications: NotificationEmitter = Depends(get_notifications),
    db: AsyncSession = Depends(get_db),
) -> NotificationOut:
    n = await notifications.archive(notification_id, audiences_for(actor))
    resp = notification_out(n)
    await db.commit()
    return resp


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    actor: Actor = Depends(get_actor),
    notifications: NotificationEmitter = Depends(get_notifications),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await notifications.delete(notification_id, audiences_for(actor))
    await db.commit()
    return {"status": "deleted", "id": notification_id}
