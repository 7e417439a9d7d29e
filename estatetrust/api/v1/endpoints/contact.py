from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from estatetrust.api.deps import get_disclosure_service
from estatetrust.core.db import get_db
from estatetrust.schemas.disclosure import OwnerContactOut, SendCodeIn, SendCodeOut, VerifyCodeIn
from estatetrust.services.auth import Actor, get_optional_actor
from estatetrust.services.disclosure import ContactDisclosureService

router = APIRouter(prefix="/contact")


@router.post("/send-code", response_model=SendCodeOut, response_model_exclude_none=True)
async def send_code(
    payload: SendCodeIn,
    actor: Actor | None = Depends(get_optional_actor),
    service: ContactDisclosureService = Depends(get_disclosure_service),
    db: AsyncSession = Depends(get_db),
) -> SendCodeOut:
    issued = await service.request_code(payload.listing_id, payload.email, actor)
    await db.commit()
    return SendCodeOut(success=True, expires_at=issued.expires_at, otp=issued.code)


@router.post("/verify-code", response_model=OwnerContactOut)
async def verify_code(
    payload: VerifyCodeIn,
    actor: Actor | None = Depends(get_optional_actor),
    service: ContactDisclosureService = Depends(get_disclosure_service),
    db: AsyncSession = Depends(get_db),
) -> OwnerContactOut:
    contact = await service.verify_code(
        payload.listing_id,
        payload.email,
        payload.otp,
        actor,
        viewer_id=payload.viewer_id,
    )
    await db.commit()
    return OwnerContactOut(owner_name=contact.name, owner_phone=contact.phone, owner_email=contact.email)
