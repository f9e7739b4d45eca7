"""
Domain records for the matchmaking engine.

These are persisted as JSON in Valkey and returned to the service layer, so they
are plain pydantic models with enum-valued status fields.
"""

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class RelationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class InteractionType(str, Enum):
    CONNECTED = "connected"
    SKIPPED = "skipped"


class ResponseAction(str, Enum):
    CONNECTED = "connected"
    SKIPPED = "skipped"
    HIDDEN = "hidden"


class DropStatus(str, Enum):
    SHOWN = "shown"
    NO_MATCH = "no_match"
    CONNECTED = "connected"
    SKIPPED = "skipped"
    HIDDEN = "hidden"

    @property
    def is_terminal(self) -> bool:
        return self is not DropStatus.SHOWN


class Mode(str, Enum):
    SUGGESTION = "suggestion"
    WEEKLY_DROP = "weekly_drop"


class Profile(BaseModel):
    """Profile fields the engine reads: interests and bio, plus display fields."""

    user_id: str
    full_name: str = ""
    avatar_url: Optional[str] = None
    bio: str = ""
    interests: List[str] = Field(default_factory=list)

    @property
    def first_name(self) -> str:
        parts = self.full_name.split()
        return parts[0] if parts else "User"


class Relation(BaseModel):
    sender_id: str
    receiver_id: str
    status: RelationStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def other_id(self, user_id: str) -> str:
        return self.receiver_id if self.sender_id == user_id else self.sender_id


class SuggestionInteraction(BaseModel):
    user_id: str
    suggested_user_id: str
    interaction_type: InteractionType
    created_at: datetime


class WeeklyDrop(BaseModel):
    user_id: str
    week_start_date: date
    candidate_user_id: Optional[str] = None
    similarity_score: Optional[float] = None
    status: DropStatus
    shown_at: Optional[datetime] = None
    interacted_at: Optional[datetime] = None


class CompatibilityDescription(BaseModel):
    user_a_id: str
    user_b_id: str
    description: str


class ScoredCandidate(BaseModel):
    """A candidate id as produced by one selection tier."""

    id: str
    similarity: Optional[float] = None
    source: str = ""


class Recommendation(BaseModel):
    id: str
    reason: str
    similarity: Optional[float] = None
    name: str = "User"
    avatar_url: Optional[str] = None


class RecommendationResult(BaseModel):
    mode: Mode
    candidates: List[Recommendation] = Field(default_factory=list)
    week_start: Optional[date] = None
    drop_status: Optional[DropStatus] = None
