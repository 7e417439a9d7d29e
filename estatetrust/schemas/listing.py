from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, EmailStr, Field


class LandDetails(BaseModel):
    type: Literal["land"] = "land"
    area_sq_ft: float | None = Field(default=None, gt=0)
    land_type: str | None = Field(default=None, max_length=60)  # e.g. "agricultural", "residential plot"


class HouseDetails(BaseModel):
    type: Literal["house"] = "house"
    bedrooms: int | None = Field(default=None, ge=0)
    bathrooms: int | None = Field(default=None, ge=0)
    built_up_area_sq_ft: float | None = Field(default=None, gt=0)


class RentalDetails(BaseModel):
    type: Literal["rental"] = "rental"
    bedrooms: int | None = Field(default=None, ge=0)
    furnished: bool | None = None
    available_from: str | None = None


# Verification and disclosure only ever read the common fields.
ListingDetails = Annotated[Union[LandDetails, HouseDetails, RentalDetails], Field(discriminator="type")]


class OwnerContactIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    phone: str | None = Field(default=None, max_length=40)
    email: EmailStr | None = None


class ListingCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    details: ListingDetails

    survey_number: str | None = Field(default=None, max_length=80)
    district: str | None = Field(default=None, max_length=120)
    taluk: str | None = Field(default=None, max_length=120)

    owner: OwnerContactIn | None = None


class ListingVerificationOut(BaseModel):
    id: str
    agent_id: str
    title: str
    listing_type: str
    survey_number: str | None
    verification_status: str
    auto_verified: bool
    reviewed_at: datetime | None
    reviewed_by: str | None
    verification_notes: str | None
    verification_mode_at_submit: str | None


class PendingListingsPage(BaseModel):
    records: list[ListingVerificationOut]
    has_more: bool
    total: int
