from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from estatetrust.api.deps import get_state_machine
from estatetrust.core.db import get_db
from estatetrust.models.listing import Listing
from estatetrust.schemas.listing import ListingCreate, ListingVerificationOut
from estatetrust.services.auth import Actor, require_agent
from estatetrust.services.listings import create_listing, get_listing
from estatetrust.services.verification import VerificationStateMachine

router = APIRouter()


def listing_verification_out(listing: Listing) -> ListingVerificationOut:
    return ListingVerificationOut(
        id=listing.id,
        agent_id=listing.agent_id,
        title=listing.title,
        listing_type=listing.listing_type,
        survey_number=listing.survey_number,
        verification_status=listing.verification_status,
        auto_verified=listing.auto_verified,
        reviewed_at=listing.reviewed_at,
        reviewed_by=listing.reviewed_by,
        verification_notes=listing.verification_notes,
        verification_mode_at_submit=listing.verification_mode_at_submit,
    )


@router.post("/listings", response_model=ListingVerificationOut, status_code=201)
async def submit_listing(
    payload: ListingCreate,
    actor: Actor = Depends(require_agent),
    state_machine: VerificationStateMachine = Depends(get_state_machine),
    db: AsyncSession = Depends(get_db),
) -> ListingVerificationOut:
    listing = await create_listing(db=db, actor=actor, data=payload, state_machine=state_machine)
    resp = listing_verification_out(listing)
    await db.commit()
    return resp


@router.get("/listings/{listing_id}", response_model=ListingVerificationOut)
async def read_listing(listing_id: str, db: AsyncSession = Depends(get_db)) -> ListingVerificationOut:
    # owner contact is deliberately absent; it is only released via /contact/verify-code
    return listing_verification_out(await get_listing(db, listing_id))
