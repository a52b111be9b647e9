"""Character decisions: context assembly, the day's action, and its outcome.

decide() picks one of two paths per character:
  template   — forced in degraded mode, otherwise chosen by should_use_template()
  generative — action prompt → LLM → JSON → validate_action_with_fallback();
               any transport, timeout or validation failure falls back to the
               template path and is never raised to the caller.
"""

from __future__ import annotations

import logging
import random

from pydantic import BaseModel, Field

from hearthwood.engine.templates import execute_template, should_use_template
from hearthwood.engine.validation import validate_action_with_fallback
from hearthwood.errors import ResponseValidationError, TransportError
from hearthwood.llm import GenerationParams, Generator
from hearthwood.models import (
    ActionResult,
    Character,
    DayRecord,
    Event,
    Location,
    Relationship,
)
from hearthwood.prompts import PromptError, action_prompts
from hearthwood.storage import Storage

logger = logging.getLogger(__name__)

MAX_AGE = 100  # natural death, in days
INTERACTION_DELTA = 0.1
NEW_RELATIONSHIP_INTENSITY = 0.3
FRIEND_THRESHOLD = 0.5

ACTION_PARAMS = GenerationParams(max_tokens=400, temperature=0.8)


class CharacterContext(BaseModel):
    """Everything a character can perceive when deciding their day."""

    character: Character
    location: Location
    present: list[Character] = Field(default_factory=list)
    reachable: list[str] = Field(default_factory=list)
    local_events: list[Event] = Field(default_factory=list)

    @property
    def present_names(self) -> list[str]:
        return [c.name for c in self.present]


def build_context(storage: Storage, character: Character) -> CharacterContext:
    location = storage.get_location(character.location)
    present = [c for c in storage.get_characters_at(character.location) if c.id != character.id]
    return CharacterContext(
        character=character,
        location=location,
        present=present,
        reachable=location.reachable(),
        local_events=storage.get_events_at(character.location),
    )


async def decide(
    character: Character,
    context: CharacterContext,
    day: int,
    generator: Generator,
    degraded: bool = False,
    rng: random.Random | None = None,
) -> ActionResult:
    """Return the character's action for the day. Never raises on LLM trouble."""
    if degraded or should_use_template(character, rng):
        return execute_template(character, context.reachable, rng)

    try:
        system, prompt = action_prompts(
            character, context.location, context.present,
            context.reachable, context.local_events, day,
        )
        raw = await generator.generate_json("action", system, prompt, ACTION_PARAMS)
    except (TransportError, ResponseValidationError, PromptError) as e:
        logger.warning("LLM failed for %s, using template: %s", character.name, e)
        return execute_template(character, context.reachable, rng)

    return validate_action_with_fallback(
        raw,
        context.reachable,
        context.present_names,
        character.name,
        character.location,
    )


def apply_outcome(storage: Storage, character: Character, action: ActionResult, day: int) -> Character:
    """Persist the day's action: location, last action, history, age."""
    fresh = storage.get_character(character.id)
    fresh.last_action = action
    fresh.last_action_day = day
    fresh.location = action.location
    fresh.remember(DayRecord(
        day=day,
        action=action.action,
        location=action.location,
        interactions=[action.target] if action.target else [],
    ))
    fresh.age += 1
    if fresh.age >= MAX_AGE and fresh.alive:
        fresh.alive = False
        logger.info("%s died of old age at %d days", fresh.name, fresh.age)
    return storage.save_character(fresh)


def _strengthen(storage: Storage, source_id: str, target: Character) -> Relationship:
    # Always re-read: the other side of the pair may have been written just before
    source = storage.get_character(source_id)
    rel = source.relationship_with(target.id)
    if rel is None:
        rel = Relationship(
            target_id=target.id,
            target_name=target.name,
            kind="acquaintance",
            intensity=NEW_RELATIONSHIP_INTENSITY,
        )
        source.relationships.append(rel)
    else:
        rel.intensity = min(1.0, round(rel.intensity + INTERACTION_DELTA, 4))
        if rel.intensity > FRIEND_THRESHOLD and rel.kind == "acquaintance":
            rel.kind = "friend"
    storage.save_character(source)
    return rel


def update_relationships(storage: Storage, a: Character, b: Character) -> tuple[Relationship, Relationship]:
    """Record an interaction on both characters' relationship lists."""
    return _strengthen(storage, a.id, b), _strengthen(storage, b.id, a)
