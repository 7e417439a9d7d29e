from datetime import datetime

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from estatetrust.core import ids
from estatetrust.core.clock import utcnow
from estatetrust.models.base import Base, JsonDict


ADMINS_AUDIENCE = "admins"

UNREAD = "unread"
READ = "read"
ARCHIVED = "archived"

TYPE_VERIFICATION_RESULT = "verification_result"
TYPE_CONTACT_DISCLOSED = "contact_disclosed"
TYPE_CONTACT_OWNER = "contact_owner"


def user_audience(user_id: str) -> str:
    return f"user:{user_id}"


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_audience_status_created", "audience", "status", "created_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: ids.gen_id(ids.NOTIFICATION))

    # "user:<id>" or "admins"
    audience: Mapped[str] = mapped_column(String(80), nullable=False)

    type: Mapped[str] = mapped_column(String(40), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    # "low" | "medium" | "high" | "urgent"
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="medium")

    listing_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)

    # "unread" | "read" | "archived"
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=UNREAD)

    # "metadata" is reserved on declarative classes
    meta: Mapped[dict] = mapped_column("metadata", JsonDict, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
