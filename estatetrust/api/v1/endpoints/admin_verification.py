from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from estatetrust.api.deps import get_policy, get_state_machine
from estatetrust.api.v1.endpoints.listings import listing_verification_out
from estatetrust.core.db import get_db
from estatetrust.schemas.listing import PendingListingsPage
from estatetrust.schemas.verification import (
    VerificationDecisionIn,
    VerificationDecisionOut,
    VerificationModeIn,
    VerificationModeOut,
    VerificationSettingsOut,
)
from estatetrust.services.audit import audit
from estatetrust.services.auth import Actor, require_admin
from estatetrust.services.verification import VerificationStateMachine
from estatetrust.services.verification_policy import VerificationPolicy

router = APIRouter(prefix="/admin")


@router.get("/settings/verification", response_model=VerificationSettingsOut)
async def get_verification_settings(
    actor: Actor = Depends(require_admin),
    policy: VerificationPolicy = Depends(get_policy),
) -> VerificationSettingsOut:
    state = await policy.get_state()
    return VerificationSettingsOut(mode=state.mode, updated_at=state.updated_at, updated_by=state.updated_by)


@router.put("/settings/verification", response_model=VerificationModeOut)
async def update_verification_settings(
    payload: VerificationModeIn,
    actor: Actor = Depends(require_admin),
    policy: VerificationPolicy = Depends(get_policy),
    db: AsyncSession = Depends(get_db),
) -> VerificationModeOut:
    state = await policy.set_mode(payload.mode, actor)
    if state.changed:
        await audit(
            db,
            actor_user_id=actor.user_id,
            action="settings.verification_mode",
            target_type="verification_policy",
            target_id="verification_mode",
            detail={"new_value": state.mode},
        )
    await db.commit()
    return VerificationModeOut(mode=state.mode, updated_at=state.updated_at)


@router.put("/listings/{listing_id}/verification", response_model=VerificationDecisionOut)
async def decide_listing(
    listing_id: str,
    payload: VerificationDecisionIn,
    actor: Actor = Depends(require_admin),
    state_machine: VerificationStateMachine = Depends(get_state_machine),
    db: AsyncSession = Depends(get_db),
) -> VerificationDecisionOut:
    result = await state_machine.decide(listing_id, payload.decision, actor, notes=payload.notes)
    await db.commit()
    return VerificationDecisionOut(listing_id=listing_id, verification_status=result.status, changed=result.changed)


@router.get("/listings/pending", response_model=PendingListingsPage)
async def pending_listings(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    actor: Actor = Depends(require_admin),
    state_machine: VerificationStateMachine = Depends(get_state_machine),
) -> PendingListingsPage:
    res = await state_machine.list_pending(page=page, page_size=limit)
    return PendingListingsPage(
        records=[listing_verification_out(r) for r in res.listings],
        has_more=res.has_more,
        total=await state_machine.count_pending(),
    )
