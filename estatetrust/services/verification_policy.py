from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from estatetrust.core.clock import Clock, utcnow
from estatetrust.core.errors import ValidationFailed
from estatetrust.models.verification_policy import (
    MODE_MANUAL,
    MODES,
    POLICY_KEY,
    VerificationPolicySetting,
)
from estatetrust.services.auth import Actor


@dataclass(frozen=True)
class PolicyState:
    mode: str
    updated_at: datetime | None
    updated_by: str | None
    changed: bool = False


class VerificationPolicy:
    """
    Global manual/auto switch for new listing submissions.

    Unset means manual. Changing the mode only affects submissions that read
    it afterwards; listings already submitted keep whatever they got.
    Role checks happen in the API layer (require_admin).
    """

    def __init__(self, db: AsyncSession, *, clock: Clock = utcnow):
        self.db = db
        self._clock = clock

    async def _row(self) -> VerificationPolicySetting | None:
        return await self.db.get(VerificationPolicySetting, POLICY_KEY, populate_existing=True)

    async def get_mode(self) -> str:
        row = await self._row()
        return row.mode if row else MODE_MANUAL

    async def get_state(self) -> PolicyState:
        row = await self._row()
        if not row:
            return PolicyState(mode=MODE_MANUAL, updated_at=None, updated_by=None)
        return PolicyState(mode=row.mode, updated_at=row.updated_at, updated_by=row.updated_by)

    async def set_mode(self, new_mode: str, actor: Actor) -> PolicyState:
        if new_mode not in MODES:
            raise ValidationFailed("mode", f"must be one of {', '.join(MODES)}")

        row = await self._row()
        if row and row.mode == new_mode:
            return PolicyState(mode=row.mode, updated_at=row.updated_at, updated_by=row.updated_by)
        now = self._clock()
        if row:
            row.mode = new_mode
            row.updated_at = now
            row.updated_by = actor.user_id
        else:
            row = VerificationPolicySetting(key=POLICY_KEY, mode=new_mode, updated_at=now, updated_by=actor.user_id)
            self.db.add(row)

        await self.db.flush()
        return PolicyState(mode=row.mode, updated_at=row.updated_at, updated_by=row.updated_by, changed=True)
