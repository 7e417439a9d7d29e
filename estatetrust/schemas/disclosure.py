from datetime import datetime

from pydantic import BaseModel, Field


class SendCodeIn(BaseModel):
    listing_id: str
    email: str = Field(max_length=320)


class SendCodeOut(BaseModel):
    success: bool
    expires_at: datetime
    # dev echo only; never set in production
    otp: str | None = None


class VerifyCodeIn(BaseModel):
    listing_id: str
    email: str = Field(max_length=320)
    otp: str = Field(max_length=12)
    viewer_id: str | None = None


class OwnerContactOut(BaseModel):
    owner_name: str
    owner_phone: str | None
    owner_email: str | None
