from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from estatetrust.core import ids
from estatetrust.models.base import Base, AuditMixin, JsonDict


PENDING_VERIFICATION = "pending_verification"
VERIFIED = "verified"
REJECTED = "rejected"

VERIFICATION_STATUSES = (PENDING_VERIFICATION, VERIFIED, REJECTED)
TERMINAL_STATUSES = (VERIFIED, REJECTED)

LISTING_TYPES = ("land", "house", "rental")


class Listing(AuditMixin, Base):
    __tablename__ = "listings"
    __table_args__ = (
        # auto verification only ever lands on "verified"
        CheckConstraint(
            "auto_verified = false OR verification_status = 'verified'",
            name="ck_listing_auto_verified_implies_verified",
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: ids.gen_id(ids.LISTING))

    # submitting agent
    agent_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)

    # "land" | "house" | "rental"; subtype fields live in details
    listing_type: Mapped[str] = mapped_column(String(20), nullable=False)
    details: Mapped[dict] = mapped_column(JsonDict, nullable=False, default=dict)

    # official land-record identifier checked in auto mode
    survey_number: Mapped[str | None] = mapped_column(String(80), nullable=True)
    district: Mapped[str | None] = mapped_column(String(120), nullable=True)
    taluk: Mapped[str | None] = mapped_column(String(120), nullable=True)

    # Private owner contact; only released through the one-time-code flow.
    owner_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    owner_phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    owner_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    verification_status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=PENDING_VERIFICATION, index=True
    )
    auto_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # admin User.id, or "system:auto"
    reviewed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # mode read once at submission; later policy changes never touch it
    verification_mode_at_submit: Mapped[str | None] = mapped_column(String(20), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
