from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from estatetrust.models.audit_log import AuditLog

async def audit(
    db: AsyncSession,
    *,
    actor_user_id: str | None,
    action: str,
    target_type: str | None = None,
    target_id: str | None = None,
    detail: dict | None = None,
) -> None:
    db.add(AuditLog(
        actor_user_id=actor_user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        detail=detail or {},
    ))


async def list_activity(
    db: AsyncSession,
    *,
    actor_user_id: str,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[AuditLog], bool]:
    """Audit rows written on behalf of ``actor_user_id``, newest first."""
    stmt = (
        select(AuditLog)
        .where(AuditLog.actor_user_id == actor_user_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size + 1)
    )
    rows = list((await db.execute(stmt)).scalars().all())
    return rows[:page_size], len(rows) > page_size
