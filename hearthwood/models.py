"""Core domain models.

All engine stages and storage methods operate on these types.
Pydantic is used for validation and serialisation at every data boundary.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

RelationshipKind = Literal["acquaintance", "friend", "rival"]
ActionSource = Literal["generative", "template"]
LockState = Literal["running", "complete", "failed"]

HISTORY_LENGTH = 5


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class World(BaseModel):
    """The singleton world record."""

    day: int = 1
    paused: bool = False
    last_cycle_at: datetime | None = None


class Location(BaseModel):
    """A named place on the map. Reachable = itself plus its connections."""

    name: str
    description: str = ""
    connections: list[str] = Field(default_factory=list)
    state: str = "normal"

    def reachable(self) -> list[str]:
        return [self.name] + [c for c in self.connections if c != self.name]


class Event(BaseModel):
    """A world event. Owned by world-editing operations, read-only to the cycle."""

    id: str = Field(default_factory=new_id)
    kind: str
    description: str
    locations: list[str] = Field(default_factory=list)
    active: bool = True
    progress: float = 0.0
    start_day: int
    end_day: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class Milestone(BaseModel):
    target_day: int
    description: str
    reached: bool = False


class Destiny(BaseModel):
    """A character's written end and the dated milestones leading to it."""

    end_state: str
    inclination: str
    milestones: list[Milestone] = Field(default_factory=list)
    last_recalculated: int | None = None

    @field_validator("milestones")
    @classmethod
    def _sorted_by_target_day(cls, value: list[Milestone]) -> list[Milestone]:
        return sorted(value, key=lambda m: m.target_day)


class DayRecord(BaseModel):
    """One line of a character's recent history."""

    day: int
    action: str
    location: str
    interactions: list[str] = Field(default_factory=list)


class Relationship(BaseModel):
    target_id: str
    target_name: str
    kind: RelationshipKind = "acquaintance"
    intensity: float = Field(default=0.3, ge=0.0, le=1.0)


class ActionResult(BaseModel):
    """The single action a character takes on a given day."""

    action: str
    location: str
    target: str | None = None
    narrative: str
    source: ActionSource


class Character(BaseModel):
    """A simulated inhabitant of the world."""

    id: str = Field(default_factory=new_id)
    name: str
    traits: list[str] = Field(default_factory=list)
    location: str
    age: int = 0  # in days
    alive: bool = True
    destiny: Destiny | None = None
    recent_days: list[DayRecord] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)
    in_conversation: bool = False
    in_conversation_since: datetime | None = None
    last_action: ActionResult | None = None
    last_action_day: int | None = None
    created_at: datetime = Field(default_factory=utcnow)

    def remember(self, record: DayRecord) -> None:
        """Append a day to the history, dropping the oldest beyond the limit."""
        self.recent_days = (self.recent_days + [record])[-HISTORY_LENGTH:]

    def relationship_with(self, target_id: str) -> Relationship | None:
        for rel in self.relationships:
            if rel.target_id == target_id:
                return rel
        return None


class CycleLock(BaseModel):
    """Per-day mutual-exclusion record for the day cycle."""

    id: str = Field(default_factory=new_id)
    day: int
    state: LockState = "running"
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None
    processed_ids: list[str] = Field(default_factory=list)


class ActionSummary(BaseModel):
    name: str
    action: str
    location: str


class JournalDetails(BaseModel):
    characters_processed: int = 0
    active_events: int = 0
    actions: list[ActionSummary] = Field(default_factory=list)


class JournalEntry(BaseModel):
    """The chronicle of one simulated day. Exactly one per day."""

    id: str = Field(default_factory=new_id)
    day: int
    summary: str
    degraded: bool = False
    details: JournalDetails = Field(default_factory=JournalDetails)
    created_at: datetime = Field(default_factory=utcnow)
