from datetime import datetime

from pydantic import BaseModel


class NotificationOut(BaseModel):
    id: str
    audience: str
    type: str
    title: str
    message: str
    priority: str
    listing_id: str | None
    status: str
    metadata: dict
    created_at: datetime
    read_at: datetime | None


class NotificationPageOut(BaseModel):
    records: list[NotificationOut]
    has_more: bool


class UnreadCountOut(BaseModel):
    count: int


class MarkAllReadOut(BaseModel):
    updated: int
