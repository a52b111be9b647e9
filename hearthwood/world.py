"""World administration: pause/resume, births, deaths and world events.

These are the operations an operator (API or CLI) performs between cycles.
The day cycle itself never creates characters or events.
"""

from __future__ import annotations

import logging

from hearthwood.engine.destiny import create_destiny
from hearthwood.errors import ResponseValidationError, TransportError
from hearthwood.llm import Generator
from hearthwood.models import Character, Event, World
from hearthwood.prompts import PromptError
from hearthwood.storage import Storage

logger = logging.getLogger(__name__)

NAME_MIN, NAME_MAX = 2, 20
TRAITS_MIN, TRAITS_MAX = 1, 5
DESCRIPTION_MAX = 500

EVENT_KINDS = {
    "catastrophe": "Natural disaster (storm, quake, fire)",
    "blessing": "A period of grace",
    "migration": "New creatures arrive",
    "sickness": "An epidemic or strange illness",
    "abundance": "A time of plenty",
}


def pause(storage: Storage) -> World:
    world = storage.get_world()
    world.paused = True
    logger.info("World paused on day %d", world.day)
    return storage.save_world(world)


def resume(storage: Storage) -> World:
    world = storage.get_world()
    world.paused = False
    logger.info("World resumed on day %d", world.day)
    return storage.save_world(world)


def normalize_traits(traits: list[str]) -> list[str]:
    return [t.strip().lower() for t in traits if t.strip()]


async def create_character(
    storage: Storage,
    generator: Generator | None,
    name: str,
    traits: list[str],
    location: str,
) -> Character:
    """Validate, persist and give a destiny to a newborn character.

    A failed destiny generation is logged and leaves the character without a
    destiny; the birth itself still stands. Pass generator=None to skip it.
    """
    name = name.strip()
    if not NAME_MIN <= len(name) <= NAME_MAX:
        raise ValueError(f"Name must be between {NAME_MIN} and {NAME_MAX} characters")
    if storage.find_character_by_name(name) is not None:
        raise ValueError(f"A character named {name!r} already exists")

    traits = normalize_traits(traits)
    if not TRAITS_MIN <= len(traits) <= TRAITS_MAX:
        raise ValueError(f"Give between {TRAITS_MIN} and {TRAITS_MAX} traits")

    storage.get_location(location)  # NotFoundError for unknown places

    character = storage.save_character(Character(name=name, traits=traits, location=location))
    logger.info("%s was born in %s", character.name, character.location)

    if generator is None:
        return character
    try:
        await create_destiny(storage, generator, character)
    except (TransportError, ResponseValidationError, PromptError) as e:
        logger.warning("Destiny creation failed for %s: %s", character.name, e)
    return storage.get_character(character.id)


def kill_character(storage: Storage, character_id: str) -> Character:
    character = storage.get_character(character_id)
    if not character.alive:
        raise ValueError(f"{character.name} is already dead")
    character.alive = False
    character.in_conversation = False
    character.in_conversation_since = None
    logger.info("%s died at %d days in %s", character.name, character.age, character.location)
    return storage.save_character(character)


def create_event(
    storage: Storage,
    kind: str,
    locations: list[str],
    description: str,
) -> Event:
    kind = kind.strip().lower()
    if kind not in EVENT_KINDS:
        raise ValueError(f"Unknown event kind {kind!r} (known: {', '.join(EVENT_KINDS)})")

    known = storage.get_location_map()
    valid = [loc for loc in (name.strip() for name in locations) if loc in known]
    if not valid:
        raise ValueError(f"No valid location (known: {', '.join(known)})")

    description = description.strip()[:DESCRIPTION_MAX]
    if not description:
        raise ValueError("Event description is empty")

    world = storage.get_world()
    event = storage.save_event(Event(
        kind=kind, description=description, locations=valid, start_day=world.day,
    ))
    logger.info("Event %s (%s) started on day %d in %s", event.id, kind, world.day, ", ".join(valid))
    return event


def resolve_event(storage: Storage, event_id: str) -> Event:
    event = storage.get_event(event_id)
    if not event.active:
        raise ValueError(f"Event {event_id} is already resolved")
    event.active = False
    event.progress = 1.0
    event.end_day = storage.get_world().day
    return storage.save_event(event)

