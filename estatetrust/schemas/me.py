from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class MeOut(BaseModel):
    api_key_id: str
    user_id: str
    role: str


class ActivityOut(BaseModel):
    id: str
    action: str
    target_type: str | None
    target_id: str | None
    detail: dict
    created_at: datetime


class ActivityPage(BaseModel):
    records: list[ActivityOut]
    has_more: bool


class UserCreate(BaseModel):
    email: EmailStr
    display_name: str = Field(min_length=1, max_length=200)
    phone: str | None = Field(default=None, max_length=40)
    role: str = Field(default="user", pattern="^(user|agent|admin)$")


class UserIssuedOut(BaseModel):
    user_id: str
    role: str
    api_key: str
