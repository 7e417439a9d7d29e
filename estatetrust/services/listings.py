from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from estatetrust.core.errors import ListingNotFound
from estatetrust.models.listing import Listing
from estatetrust.schemas.listing import ListingCreate
from estatetrust.services.auth import Actor
from estatetrust.services.verification import VerificationStateMachine


async def create_listing(
    *,
    db: AsyncSession,
    actor: Actor,
    data: ListingCreate,
    state_machine: VerificationStateMachine,
) -> Listing:
    """
    Insert a listing for the calling agent and hand it to verification.

    Note: role checks happen in the API layer; commit is the caller's job.
    """
    owner = data.owner
    listing = Listing(
        agent_id=actor.user_id,
        title=data.title,
        listing_type=data.details.type,
        details=data.details.model_dump(mode="json"),
        survey_number=data.survey_number,
        district=data.district,
        taluk=data.taluk,
        owner_name=owner.name if owner else None,
        owner_phone=owner.phone if owner else None,
        owner_email=owner.email if owner else None,
        created_by=actor.user_id,
        updated_by=actor.user_id,
    )
    db.add(listing)
    await db.flush()

    return await state_machine.submit(listing)


async def get_listing(db: AsyncSession, listing_id: str) -> Listing:
    stmt = select(Listing).where(Listing.id == listing_id, Listing.is_active.is_(True))
    listing = (await db.execute(stmt)).scalar_one_or_none()
    if not listing:
        raise ListingNotFound(listing_id)
    return listing
