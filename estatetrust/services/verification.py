from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from estatetrust.core.clock import Clock, utcnow
from estatetrust.core.errors import AccessDenied, ListingNotFound, ValidationFailed
from estatetrust.core.telemetry import tracer
from estatetrust.models.listing import (
    PENDING_VERIFICATION,
    REJECTED,
    TERMINAL_STATUSES,
    VERIFIED,
    Listing,
)
from estatetrust.models.verification_policy import MODE_AUTO
from estatetrust.services.audit import audit
from estatetrust.services.auth import Actor
from estatetrust.services.notifications import NotificationEmitter
from estatetrust.services.survey_check import (
    SurveyCheckOutcome,
    SurveyCheckResult,
    SurveyVerifier,
)
from estatetrust.services.verification_policy import VerificationPolicy


log = logging.getLogger(__name__)

AUTO_REVIEWER = "system:auto"


@dataclass(frozen=True)
class TransitionResult:
    listing: Listing
    changed: bool

    @property
    def status(self) -> str:
        return self.listing.verification_status


@dataclass(frozen=True)
class PendingPage:
    listings: list[Listing]
    has_more: bool


class VerificationStateMachine:
    """
    pending_verification -> verified | rejected, nothing else.

    Every transition is a single conditional UPDATE on (id, status =
    pending_verification). Whoever's UPDATE matches the row wins; anyone
    after that gets the terminal status back unchanged.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        policy: VerificationPolicy,
        notifications: NotificationEmitter,
        survey_verifier: SurveyVerifier | None,
        survey_timeout_seconds: float = 5.0,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.policy = policy
        self.notifications = notifications
        self.survey_verifier = survey_verifier
        self.survey_timeout_seconds = survey_timeout_seconds
        self._clock = clock

    async def _load(self, listing_id: str) -> Listing:
        stmt = (
            select(Listing)
            .where(Listing.id == listing_id, Listing.is_active.is_(True))
            .execution_options(populate_existing=True)
        )
        listing = (await self.db.execute(stmt)).scalar_one_or_none()
        if not listing:
            raise ListingNotFound(listing_id)
        return listing

    async def _compare_and_set(self, listing_id: str, **values) -> bool:
        result = await self.db.execute(
            update(Listing)
            .where(Listing.id == listing_id, Listing.verification_status == PENDING_VERIFICATION)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    async def _run_survey_check(self, listing: Listing) -> SurveyCheckResult:
        if self.survey_verifier is None:
            return SurveyCheckResult(outcome=SurveyCheckOutcome.UNAVAILABLE, reason="NOT_CONFIGURED")

        with tracer.start_as_current_span("survey_check") as span:
            span.set_attribute("listing.id", listing.id)
            try:
                res = await asyncio.wait_for(
                    self.survey_verifier.check(
                        listing.survey_number,
                        district=listing.district,
                        taluk=listing.taluk,
                    ),
                    timeout=self.survey_timeout_seconds,
                )
            except asyncio.TimeoutError:
                log.warning("survey check timed out for listing %s", listing.id)
                res = SurveyCheckResult(outcome=SurveyCheckOutcome.UNAVAILABLE, reason="TIMEOUT")
            except Exception as e:
                log.warning("survey check errored for listing %s: %s: %s", listing.id, type(e).__name__, e)
                res = SurveyCheckResult(outcome=SurveyCheckOutcome.UNAVAILABLE, reason=type(e).__name__)
            span.set_attribute("survey.outcome", res.outcome.value)
        return res

    async def submit(self, listing: Listing) -> Listing:
        """
        Put a new listing into review.

        In auto mode a passing survey check verifies it on the spot. A failed,
        erroring or slow check leaves it pending for an admin; auto mode never
        rejects.
        """
        mode = await self.policy.get_mode()

        listing.verification_status = PENDING_VERIFICATION
        listing.auto_verified = False
        listing.reviewed_at = None
        listing.reviewed_by = None
        listing.verification_mode_at_submit = mode
        await self.db.flush()

        if mode != MODE_AUTO:
            return listing
        if not listing.survey_number:
            log.info("listing %s has no survey number; queued for manual review", listing.id)
            return listing

        res = await self._run_survey_check(listing)
        if not res.passed:
            log.info("auto verification did not pass for listing %s (%s); left pending", listing.id, res.reason)
            return listing

        # status and auto flag land in the same statement
        changed = await self._compare_and_set(
            listing.id,
            verification_status=VERIFIED,
            auto_verified=True,
            reviewed_at=self._clock(),
            reviewed_by=AUTO_REVIEWER,
            verification_notes=f"Auto-verified via survey number {listing.survey_number}",
        )
        listing = await self._load(listing.id)
        if changed:
            await self.notifications.emit_verification_event(listing, VERIFIED)
        return listing

    async def decide(
        self,
        listing_id: str,
        decision: str,
        actor: Actor,
        *,
        notes: str | None = None,
    ) -> TransitionResult:
        if not actor.is_admin:
            raise AccessDenied("Admin role required")
        if decision not in TERMINAL_STATUSES:
            raise ValidationFailed("decision", f"must be one of {', '.join(TERMINAL_STATUSES)}")

        # existence first so an unknown id is never reported as a no-op
        await self._load(listing_id)

        changed = await self._compare_and_set(
            listing_id,
            verification_status=decision,
            reviewed_at=self._clock(),
            reviewed_by=actor.user_id,
            verification_notes=notes,
        )
        listing = await self._load(listing_id)

        if not changed:
            log.info(
                "verification %s on listing %s ignored; already %s",
                decision, listing_id, listing.verification_status,
            )
            return TransitionResult(listing=listing, changed=False)

        await audit(
            self.db,
            actor_user_id=actor.user_id,
            action="listing.verification",
            target_type="listing",
            target_id=listing_id,
            detail={"decision": decision, "notes": notes},
        )
        await self.notifications.emit_verification_event(listing, decision)
        return TransitionResult(listing=listing, changed=True)

    async def approve(self, listing_id: str, actor: Actor, *, notes: str | None = None) -> TransitionResult:
        return await self.decide(listing_id, VERIFIED, actor, notes=notes)

    async def reject(self, listing_id: str, actor: Actor, *, notes: str | None = None) -> TransitionResult:
        return await self.decide(listing_id, REJECTED, actor, notes=notes)

    async def list_pending(self, *, page: int = 1, page_size: int = 20) -> PendingPage:
        """Admin review queue, oldest submission first."""
        stmt = (
            select(Listing)
            .where(Listing.verification_status == PENDING_VERIFICATION, Listing.is_active.is_(True))
            .order_by(Listing.created_at.asc(), Listing.id.asc())
            .offset((page - 1) * page_size)
            .limit(page_size + 1)
        )
        rows = list((await self.db.execute(stmt)).scalars().all())
        return PendingPage(listings=rows[:page_size], has_more=len(rows) > page_size)

    async def count_pending(self) -> int:
        stmt = select(func.count()).select_from(Listing).where(
            Listing.verification_status == PENDING_VERIFICATION, Listing.is_active.is_(True)
        )
        return int((await self.db.execute(stmt)).scalar_one())
