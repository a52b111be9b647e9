"""Shape checks for generated output, with the action fallback.

Three kinds of output come back from the LLM: a character action, a destiny,
and a day summary. Each is checked against a small pydantic model. The
`check_*` functions return a tagged Checked result (value, or the list of
violated constraints); the `validate_*` functions raise
ResponseValidationError on a hard rejection.

Only actions have a built-in fallback (validate_action_with_fallback): the
cycle must always produce one action per character. Destiny and summary
callers apply their own fallback.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Annotated, Any, Generic, TypeVar

from pydantic import BaseModel, Field, StringConstraints
from pydantic import ValidationError as SchemaError

from hearthwood.errors import ResponseValidationError
from hearthwood.models import ActionResult, Destiny, Milestone

logger = logging.getLogger(__name__)

T = TypeVar("T")

NonEmpty = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


# ---------------------------------------------------------------------------
# Response shapes
# ---------------------------------------------------------------------------

class ActionResponse(BaseModel):
    action: NonEmpty
    location: NonEmpty
    target: str | None
    narrative: NonEmpty


class MilestoneResponse(BaseModel):
    target_day: int = Field(gt=0)
    description: NonEmpty


class DestinyResponse(BaseModel):
    end_state: NonEmpty
    milestones: list[MilestoneResponse] = Field(min_length=1, max_length=5)
    inclination: NonEmpty


class SummaryResponse(BaseModel):
    summary: NonEmpty


@dataclass
class Checked(Generic[T]):
    """Either an accepted value or the constraints it violated."""

    value: T | None = None
    violations: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations


def _violations(error: SchemaError) -> list[str]:
    out = []
    for err in error.errors():
        where = ".".join(str(p) for p in err["loc"]) or "response"
        out.append(f"{where}: {err['msg']}")
    return out


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

def check_action(raw: Any, reachable: list[str], present: list[str]) -> Checked[ActionResult]:
    try:
        data = ActionResponse.model_validate(raw)
    except SchemaError as e:
        return Checked(violations=_violations(e))

    if data.location not in reachable:
        return Checked(violations=[
            f"location: {data.location!r} is not reachable (reachable: {', '.join(reachable)})"
        ])

    target = data.target
    if target is not None and target not in present:
        # Soft fail: an unknown target is dropped, the action stands
        logger.debug("Dropping unknown action target %r", target)
        target = None

    return Checked(value=ActionResult(
        action=data.action,
        location=data.location,
        target=target,
        narrative=data.narrative,
        source="generative",
    ))


def validate_action(raw: Any, reachable: list[str], present: list[str]) -> ActionResult:
    checked = check_action(raw, reachable, present)
    if not checked.ok:
        raise ResponseValidationError("Invalid action response", checked.violations, raw)
    return checked.value


def fallback_action(name: str, location: str) -> ActionResult:
    return ActionResult(
        action="stay",
        location=location,
        target=None,
        narrative=f"{name} stays put, undecided.",
        source="template",
    )


def validate_action_with_fallback(
    raw: Any,
    reachable: list[str],
    present: list[str],
    name: str,
    current_location: str,
) -> ActionResult:
    """Like validate_action, but a rejection yields a stay-in-place action."""
    try:
        return validate_action(raw, reachable, present)
    except ResponseValidationError as e:
        logger.warning("Action validation failed for %s, using fallback: %s", name, e)
        return fallback_action(name, current_location)


# ---------------------------------------------------------------------------
# Destiny
# ---------------------------------------------------------------------------

def check_destiny(raw: Any) -> Checked[Destiny]:
    try:
        data = DestinyResponse.model_validate(raw)
    except SchemaError as e:
        return Checked(violations=_violations(e))

    milestones = sorted(
        (Milestone(target_day=m.target_day, description=m.description, reached=False)
         for m in data.milestones),
        key=lambda m: m.target_day,
    )
    return Checked(value=Destiny(
        end_state=data.end_state,
        inclination=data.inclination,
        milestones=milestones,
        last_recalculated=None,
    ))


def validate_destiny(raw: Any) -> Destiny:
    checked = check_destiny(raw)
    if not checked.ok:
        raise ResponseValidationError("Invalid destiny response", checked.violations, raw)
    return checked.value


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

def check_summary(raw: Any) -> Checked[str]:
    try:
        data = SummaryResponse.model_validate(raw)
    except SchemaError as e:
        return Checked(violations=_violations(e))
    return Checked(value=data.summary)


def validate_summary(raw: Any) -> str:
    checked = check_summary(raw)
    if not checked.ok:
        raise ResponseValidationError("Invalid summary response", checked.violations, raw)
    return checked.value


# ---------------------------------------------------------------------------
# Raw text → JSON
# ---------------------------------------------------------------------------

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def parse_json_output(text: str) -> Any:
    """Parse JSON from LLM output, stripping markdown fences and stray prose."""
    cleaned = _FENCE.sub("", text.strip()).strip()
    match = _OBJECT.search(cleaned)
    if match:
        cleaned = match.group(0)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ResponseValidationError(
            "LLM output is not valid JSON", [f"json: {e.msg}"], text
        ) from e
