from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class VerificationModeIn(BaseModel):
    mode: Literal["manual", "auto"]


class VerificationModeOut(BaseModel):
    mode: str
    updated_at: datetime | None


class VerificationSettingsOut(BaseModel):
    mode: str
    updated_at: datetime | None
    updated_by: str | None


class VerificationDecisionIn(BaseModel):
    decision: Literal["verified", "rejected"]
    notes: str | None = Field(default=None, max_length=2000)


class VerificationDecisionOut(BaseModel):
    listing_id: str
    verification_status: str
    # false when the listing was already terminal and the call was a no-op
    changed: bool
