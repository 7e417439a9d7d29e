from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from estatetrust.models.base import Base


POLICY_KEY = "verification_mode"

MODE_MANUAL = "manual"
MODE_AUTO = "auto"
MODES = (MODE_MANUAL, MODE_AUTO)


class VerificationPolicySetting(Base):
    """Single-row table; the only row is keyed by ``POLICY_KEY``."""

    __tablename__ = "verification_policy"

    key: Mapped[str] = mapped_column(String(40), primary_key=True, default=POLICY_KEY)
    mode: Mapped[str] = mapped_column(String(20), nullable=False, default=MODE_MANUAL)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_by: Mapped[str] = mapped_column(String, nullable=False)
