"""Phase outputs and the structured result of one day cycle."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from hearthwood.engine.actions import CharacterContext
from hearthwood.models import ActionResult, Character, Event, Location

CycleState = Literal[
    "idle",
    "collecting",
    "analyzed",
    "executed",
    "resolved",
    "notified",
    "complete",
    "failed",
]

SkipReason = Literal["in_conversation", "already_processed", "error"]


class CollectOutput(BaseModel):
    day: int
    characters: list[Character] = Field(default_factory=list)
    locations: dict[str, Location] = Field(default_factory=dict)
    active_events: list[Event] = Field(default_factory=list)


class Tension(BaseModel):
    """An active event touching characters at one of its locations."""

    kind: str = "event"
    description: str
    location: str
    characters: list[str] = Field(default_factory=list)


class AnalyzeOutput(BaseModel):
    tensions: list[Tension] = Field(default_factory=list)
    to_process: list[str] = Field(default_factory=list)  # character ids


class Decision(BaseModel):
    character_id: str
    name: str
    context: CharacterContext
    action: ActionResult


class Skip(BaseModel):
    character_id: str
    name: str
    reason: SkipReason


class ExecuteOutput(BaseModel):
    decisions: list[Decision] = Field(default_factory=list)
    skipped: list[Skip] = Field(default_factory=list)


class AppliedOutcome(BaseModel):
    character_id: str
    location: str
    action: str


class RelationshipUpdate(BaseModel):
    a: str
    b: str
    kind: str
    intensity: float


class ReachedMilestone(BaseModel):
    character_id: str
    name: str
    description: str


class Recalculation(BaseModel):
    character_id: str
    name: str
    reason: str
    old_end_state: str
    new_end_state: str


class ResolveOutput(BaseModel):
    applied: list[AppliedOutcome] = Field(default_factory=list)
    relationships: list[RelationshipUpdate] = Field(default_factory=list)
    milestones: list[ReachedMilestone] = Field(default_factory=list)
    recalculations: list[Recalculation] = Field(default_factory=list)
    failures: list[str] = Field(default_factory=list)  # character ids


class NotifyOutput(BaseModel):
    summary: str
    message: str
    sent: bool


class LogOutput(BaseModel):
    journal_id: str
    characters_updated: int


class CycleResult(BaseModel):
    success: bool = False
    day: int
    state: CycleState = "idle"
    degraded: bool = False
    error: str | None = None
    collect: CollectOutput | None = None
    analyze: AnalyzeOutput | None = None
    execute: ExecuteOutput | None = None
    resolve: ResolveOutput | None = None
    notify: NotifyOutput | None = None
    log: LogOutput | None = None

    @classmethod
    def failure(cls, day: int, error: str, **kwargs: Any) -> CycleResult:
        return cls(success=False, day=day, state="failed", error=error, **kwargs)

    def summary(self) -> dict[str, Any]:
        """Compact, JSON-friendly view returned by the trigger endpoint and CLI."""
        out: dict[str, Any] = {
            "success": self.success,
            "day": self.day,
            "state": self.state,
            "degraded": self.degraded,
        }
        if self.error:
            out["error"] = self.error
        if self.execute is not None:
            out["decisions"] = len(self.execute.decisions)
            out["skipped"] = len(self.execute.skipped)
        if self.resolve is not None:
            out["recalculations"] = len(self.resolve.recalculations)
            out["milestones"] = len(self.resolve.milestones)
        if self.notify is not None:
            out["summary"] = self.notify.summary
            out["notified"] = self.notify.sent
        return out
