"""Pydantic request/response schemas for the Board API and the challenge documents."""
from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

TimeSlot = Literal["morning", "afternoon", "evening"]


# ---------------------------------------------------------------------------
# Relational rows
# ---------------------------------------------------------------------------


class CompetitorCreate(BaseModel):
    name: str
    url: str = ""
    category: str | None = None
    notes: str | None = None


class CompetitorOut(CompetitorCreate):
    id: int
    created_at: str | None = None


class TagOut(BaseModel):
    id: int
    name: str
    color: str


class TagResolve(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("tag name must not be blank")
        return v


class ResearchCreate(BaseModel):
    type: Literal["link", "thought"] = "link"
    title: str
    content: str = ""
    url: str | None = None
    category: str | None = None
    tag_ids: list[int] = []


class ResearchOut(BaseModel):
    id: int
    type: str
    title: str
    content: str
    url: str | None = None
    category: str | None = None
    tags: list[TagOut] = []
    created_at: str | None = None


class ResearchTagsUpdate(BaseModel):
    tag_ids: list[int]


class CategoryCreate(BaseModel):
    name: str
    description: str | None = None
    color: str = "#3B82F6"


class CategoryOut(CategoryCreate):
    id: int
    created_at: str | None = None


class ArtistCreate(BaseModel):
    name: str
    profile_url: str = ""
    specialty: str | None = None
    notes: str | None = None


class ArtistOut(ArtistCreate):
    id: int
    created_at: str | None = None


class SmeCreate(BaseModel):
    name: str
    profile_url: str = ""
    expertise: str | None = None
    organization: str | None = None
    notes: str | None = None


class SmeOut(SmeCreate):
    id: int
    created_at: str | None = None


class IdeaCreate(BaseModel):
    title: str
    notes: str | None = None
    category: str | None = None


class IdeaOut(IdeaCreate):
    id: int
    created_at: str | None = None


class InvitationCreate(BaseModel):
    email: str
    note: str | None = None


class InvitationOut(InvitationCreate):
    id: int
    created_at: str | None = None


# ---------------------------------------------------------------------------
# Challenge documents (stored with their camelCase field names)
# ---------------------------------------------------------------------------


class ChallengeCard(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    type: str = "custom"  # intro | instruction | notification | why | custom
    title: str = ""
    content: str = ""
    button_text: str | None = Field(None, alias="buttonText")
    image_url: str | None = Field(None, alias="imageUrl")


class NotificationMessage(BaseModel):
    time: TimeSlot = "morning"
    hour: int = 9
    title: str = ""
    body: str = ""


class Challenge(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    day: int
    title: str = ""
    description: str = ""
    enabled: bool = True
    order: int = 0
    final_button_text: str | None = Field(None, alias="finalButtonText")
    cards: list[ChallengeCard] = []
    notifications: list[NotificationMessage] | None = None


class CourseContent(BaseModel):
    """Reduced projection of a challenge kept in the ``courseContent`` collection."""
    day: int
    title: str
    description: str
    enabled: bool
    order: int


class ChallengeEntry(BaseModel):
    key: str
    challenge: Challenge


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------


class WeekOut(BaseModel):
    number: int
    start: date
    end: date
    current: bool


class TimelineOut(BaseModel):
    start: date
    now: datetime
    total_weeks: int
    weeks: list[WeekOut]
