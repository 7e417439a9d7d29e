from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime

from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from estatetrust.core.errors import DeliveryFailed, ListingNotFound, OtpRejected, RateLimited, ValidationFailed
from estatetrust.models.listing import Listing
from estatetrust.models.user import User
from estatetrust.services.audit import audit
from estatetrust.services.auth import Actor
from estatetrust.services.code_delivery import CodeDelivery, DeliveryError
from estatetrust.services.notifications import NotificationEmitter
from estatetrust.services.otp_store import CODE_LENGTH, ChallengeKey, OtpChallengeStore, OtpVerdict
from estatetrust.services.rate_limit import TokenRateLimiter


log = logging.getLogger(__name__)

_email = TypeAdapter(EmailStr)
_code_re = re.compile(rf"^\d{{{CODE_LENGTH}}}$")


@dataclass(frozen=True)
class CodeIssued:
    listing_id: str
    address: str
    expires_at: datetime
    # only handed out when the dev echo is switched on
    code: str | None = None


@dataclass(frozen=True)
class OwnerContact:
    name: str
    phone: str | None
    email: str | None


def _validate_address(address: str) -> str:
    try:
        return _email.validate_python(address.strip())
    except ValidationError:
        raise ValidationFailed("email", "not a valid email address") from None


class ContactDisclosureService:
    """
    Gate on a property owner's contact details.

    request_code mails a one-time code to the address a buyer claims;
    verify_code spends it and hands back name/phone/email and nothing else.
    Any live listing is eligible, whatever its verification status.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        store: OtpChallengeStore,
        delivery: CodeDelivery,
        notifications: NotificationEmitter,
        ttl_seconds: int = 600,
        rate_limiter: TokenRateLimiter | None = None,
        send_limit: int = 5,
        send_window_seconds: int = 3600,
        echo_code: bool = False,
    ):
        self.db = db
        self.store = store
        self.delivery = delivery
        self.notifications = notifications
        self.ttl_seconds = ttl_seconds
        self.rate_limiter = rate_limiter
        self.send_limit = send_limit
        self.send_window_seconds = send_window_seconds
        self.echo_code = echo_code

    async def _listing(self, listing_id: str) -> Listing:
        stmt = select(Listing).where(Listing.id == listing_id, Listing.is_active.is_(True))
        listing = (await self.db.execute(stmt)).scalar_one_or_none()
        if not listing:
            raise ListingNotFound(listing_id)
        return listing

    async def request_code(self, listing_id: str, address: str, caller: Actor | None) -> CodeIssued:
        address = _validate_address(address)
        await self._listing(listing_id)
        key = ChallengeKey.of(address, listing_id)

        if self.rate_limiter is not None:
            rl = await self.rate_limiter.allow(
                key=f"otp-send:{key.listing_id}:{key.address}",
                limit=self.send_limit,
                window_seconds=self.send_window_seconds,
            )
            if not rl.allowed:
                raise RateLimited(retry_after=rl.reset_seconds)

        challenge = await self.store.create(key, self.ttl_seconds)
        try:
            await self.delivery.deliver_code(key.address, challenge.code, ttl_seconds=self.ttl_seconds)
        except DeliveryError as e:
            # never leave a code behind that nobody was told about
            await self.store.discard(key, code=challenge.code)
            raise DeliveryFailed() from e

        await audit(
            self.db,
            actor_user_id=caller.user_id if caller else None,
            action="otp_request",
            target_type="listing",
            target_id=listing_id,
            detail={"email": key.address},
        )
        await self.db.flush()

        return CodeIssued(
            listing_id=listing_id,
            address=key.address,
            expires_at=challenge.expires_at,
            code=challenge.code if self.echo_code else None,
        )

    async def _owner_contact(self, listing: Listing) -> OwnerContact:
        agent = await self.db.get(User, listing.agent_id)
        name = listing.owner_name or (agent.display_name if agent else None) or "Property Owner"
        phone = listing.owner_phone or (agent.phone if agent else None)
        email = listing.owner_email or (agent.email if agent else None)
        return OwnerContact(name=name, phone=phone, email=email)

    async def _known_user_id(self, user_id: str | None) -> str | None:
        # an unauthenticated viewer_id only counts if it names a real user
        if not user_id:
            return None
        user = await self.db.get(User, user_id)
        return user.id if user else None

    async def verify_code(
        self,
        listing_id: str,
        address: str,
        supplied_code: str,
        caller: Actor | None,
        *,
        viewer_id: str | None = None,
    ) -> OwnerContact:
        address = _validate_address(address)
        supplied_code = (supplied_code or "").strip()
        if not _code_re.match(supplied_code):
            raise ValidationFailed("otp", f"must be a {CODE_LENGTH}-digit number")

        listing = await self._listing(listing_id)
        key = ChallengeKey.of(address, listing_id)

        verdict = await self.store.verify(key, supplied_code)
        if verdict is not OtpVerdict.OK:
            log.info("otp for listing %s rejected: %s", listing_id, verdict.value)
            raise OtpRejected(verdict.value)

        contact = await self._owner_contact(listing)

        viewer = caller.user_id if caller else await self._known_user_id(viewer_id)
        await self.notifications.emit_disclosure_event(listing, viewer, address=key.address)
        return contact
