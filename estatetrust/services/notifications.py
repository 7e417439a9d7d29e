from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from estatetrust.core.clock import Clock, utcnow
from estatetrust.core.errors import NotificationNotFound, ValidationFailed
from estatetrust.models.listing import VERIFIED, Listing
from estatetrust.models.notification import (
    ADMINS_AUDIENCE,
    ARCHIVED,
    READ,
    TYPE_CONTACT_DISCLOSED,
    TYPE_CONTACT_OWNER,
    TYPE_VERIFICATION_RESULT,
    UNREAD,
    Notification,
    user_audience,
)
from estatetrust.services.audit import audit
from estatetrust.services.auth import Actor


STATUS_FILTERS = ("all", "unread", "read", "archived")


def audiences_for(actor: Actor) -> list[str]:
    """Audiences whose records ``actor`` may see and mutate."""
    audiences = [user_audience(actor.user_id)]
    if actor.is_admin:
        audiences.append(ADMINS_AUDIENCE)
    return audiences


@dataclass(frozen=True)
class NotificationPage:
    records: list[Notification]
    has_more: bool


class NotificationEmitter:
    """
    Durable notification records for verification results and contact
    disclosures, plus the read/archive/delete operations the inbox uses.

    Records are only removed by an explicit delete. The unread count is
    always derived from record status, never kept as a counter.
    """

    def __init__(self, db: AsyncSession, *, clock: Clock = utcnow):
        self.db = db
        self._clock = clock

    def _new(self, **kwargs) -> Notification:
        n = Notification(created_at=self._clock(), status=UNREAD, **kwargs)
        self.db.add(n)
        return n

    async def emit_verification_event(self, listing: Listing, new_status: str) -> Notification:
        if new_status == VERIFIED:
            how = "automatically verified" if listing.auto_verified else "verified"
            title = "Property verified"
            message = f'Your property "{listing.title}" has been {how} and is now live.'
        else:
            title = "Property rejected"
            message = f'Your property "{listing.title}" was rejected.'
            if listing.verification_notes:
                message += f" Reason: {listing.verification_notes}"

        n = self._new(
            audience=user_audience(listing.agent_id),
            type=TYPE_VERIFICATION_RESULT,
            title=title,
            message=message,
            priority="high",
            listing_id=listing.id,
            meta={
                "listing_id": listing.id,
                "listing_title": listing.title,
                "new_status": new_status,
                "auto_verified": bool(listing.auto_verified),
            },
        )
        await self.db.flush()
        return n

    async def emit_disclosure_event(
        self,
        listing: Listing,
        viewer_id: str | None,
        *,
        address: str,
    ) -> list[Notification]:
        viewed_at = self._clock()
        meta = {
            "listing_id": listing.id,
            "listing_title": listing.title,
            "viewer_id": viewer_id,
            "viewer_email": address,
            "contact_viewed_at": viewed_at.isoformat(),
        }

        admin_note = self._new(
            audience=ADMINS_AUDIENCE,
            type=TYPE_CONTACT_DISCLOSED,
            title="User contact activity",
            message=f'{address} viewed the owner contact for "{listing.title}"',
            priority="medium",
            listing_id=listing.id,
            meta=meta,
        )
        agent_note = self._new(
            audience=user_audience(listing.agent_id),
            type=TYPE_CONTACT_OWNER,
            title=f"Contact request from {address}",
            message=f'{address} viewed the owner contact details for "{listing.title}".',
            priority="high",
            listing_id=listing.id,
            meta=meta,
        )

        if viewer_id:
            await audit(
                self.db,
                actor_user_id=viewer_id,
                action="contact_disclosed",
                target_type="listing",
                target_id=listing.id,
                detail={"email": address, "listing_title": listing.title},
            )

        await self.db.flush()
        return [admin_note, agent_note]

    async def list(
        self,
        audiences: Sequence[str],
        *,
        status: str = "all",
        page: int = 1,
        page_size: int = 20,
    ) -> NotificationPage:
        if status not in STATUS_FILTERS:
            raise ValidationFailed("status", f"must be one of {', '.join(STATUS_FILTERS)}")
        if page < 1:
            raise ValidationFailed("page", "must be >= 1")
        if page_size < 1:
            raise ValidationFailed("limit", "must be >= 1")

        stmt = select(Notification).where(Notification.audience.in_(audiences))
        if status == "all":
            stmt = stmt.where(Notification.status != ARCHIVED)
        else:
            stmt = stmt.where(Notification.status == status)

        stmt = (
            stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size + 1)
        )
        rows = list((await self.db.execute(stmt)).scalars().all())
        return NotificationPage(records=rows[:page_size], has_more=len(rows) > page_size)

    async def unread_count(self, audiences: Sequence[str]) -> int:
        stmt = select(func.count()).select_from(Notification).where(
            Notification.audience.in_(audiences),
            Notification.status == UNREAD,
        )
        return int((await self.db.execute(stmt)).scalar_one())

    async def _get_visible(self, notification_id: str, audiences: Sequence[str]) -> Notification:
        stmt = (
            select(Notification)
            .where(Notification.id == notification_id, Notification.audience.in_(audiences))
            .execution_options(populate_existing=True)
        )
        row = (await self.db.execute(stmt)).scalar_one_or_none()
        if not row:
            raise NotificationNotFound(notification_id)
        return row

    async def mark_read(self, notification_id: str, audiences: Sequence[str]) -> Notification:
        # conditional: only unread -> read, so repeats and archived rows are left alone
        await self.db.execute(
            update(Notification)
            .where(
                Notification.id == notification_id,
                Notification.audience.in_(audiences),
                Notification.status == UNREAD,
            )
            .values(status=READ, read_at=self._clock())
            .execution_options(synchronize_session=False)
        )
        return await self._get_visible(notification_id, audiences)

    async def mark_all_read(self, audiences: Sequence[str]) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.audience.in_(audiences), Notification.status == UNREAD)
            .values(status=READ, read_at=self._clock())
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)

    async def archive(self, notification_id: str, audiences: Sequence[str]) -> Notification:
        row = await self._get_visible(notification_id, audiences)
        row.status = ARCHIVED
        await self.db.flush()
        return row

    async def delete(self, notification_id: str, audiences: Sequence[str]) -> None:
        result = await self.db.execute(
            delete(Notification)
            .where(Notification.id == notification_id, Notification.audience.in_(audiences))
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            raise NotificationNotFound(notification_id)
