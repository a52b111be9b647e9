"""Destiny system — creation, deviation scoring, milestones, recalculation.

Constants:
  MILESTONE_TOLERANCE  ±5 days around a milestone's target day
  DEVIATION_THRESHOLD  0.3 deviation triggers a recalculation
  RECALC_COOLDOWN      5 days between two recalculations

Deviation rules (matched against the inclination by keyword; every matching
rule adds its contradiction score, the sum is clamped to [0, 1]):
  location affinity  "drawn toward X" but a recent day was spent elsewhere  +0.4
  social seeking     each recent day without any interaction                +0.1
  danger avoidance   a recent day spent in a dangerous place                +0.5
  calm seeking       more than two distinct places visited                  +0.2
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from hearthwood.engine.validation import validate_destiny
from hearthwood.llm import GenerationParams, Generator
from hearthwood.models import Character, DayRecord, Destiny, HISTORY_LENGTH
from hearthwood.prompts import destiny_prompts, recalculation_prompts
from hearthwood.storage import Storage

logger = logging.getLogger(__name__)

MILESTONE_TOLERANCE = 5
DEVIATION_THRESHOLD = 0.3
RECALC_COOLDOWN = 5
DANGER_ZONES = {"marsh"}

RecalcReason = Literal["milestone_missed", "deviation_threshold"]

DESTINY_PARAMS = GenerationParams(max_tokens=800, temperature=0.9)


# ---------------------------------------------------------------------------
# Deviation
# ---------------------------------------------------------------------------

def _location_affinity(days: list[DayRecord], inclination: str) -> float:
    match = re.search(r"\btowards?\s+(?:the\s+)?(\w+)", inclination, re.IGNORECASE)
    if not match:
        return 0.0
    target = match.group(1).lower()
    lowered = inclination.lower()
    went_elsewhere = any(
        d.location.lower() != target and d.location.lower() not in lowered
        for d in days
    )
    return 0.4 if went_elsewhere else 0.0


def _social_seeking(days: list[DayRecord], inclination: str) -> float:
    return 0.1 * sum(1 for d in days if not d.interactions)


def _danger_avoidance(days: list[DayRecord], inclination: str) -> float:
    return 0.5 if any(d.location.lower() in DANGER_ZONES for d in days) else 0.0


def _calm_seeking(days: list[DayRecord], inclination: str) -> float:
    return 0.2 if len({d.location for d in days}) > 2 else 0.0


@dataclass(frozen=True)
class DeviationRule:
    name: str
    keywords: tuple[str, ...]
    contradiction: Callable[[list[DayRecord], str], float]

    def applies(self, inclination: str) -> bool:
        words = re.findall(r"\w+", inclination.lower())
        return any(w.startswith(kw) for kw in self.keywords for w in words)


DEVIATION_RULES: list[DeviationRule] = [
    DeviationRule("location_affinity", ("drawn", "toward", "place"), _location_affinity),
    DeviationRule("social_seeking", ("company", "social", "seek"), _social_seeking),
    DeviationRule("danger_avoidance", ("avoid", "danger", "cautious", "flee"), _danger_avoidance),
    DeviationRule("calm_seeking", ("rest", "calm", "quiet"), _calm_seeking),
]


def deviation_score(recent_days: list[DayRecord], inclination: str) -> float:
    """How strongly the last days contradict the inclination, in [0, 1]."""
    days = recent_days[-HISTORY_LENGTH:]
    if not days:
        return 0.0
    total = 0.0
    for rule in DEVIATION_RULES:
        if rule.applies(inclination):
            total += rule.contradiction(days, inclination)
    return max(0.0, min(1.0, round(total, 6)))


def character_deviation(character: Character) -> float:
    if character.destiny is None:
        return 0.0
    return deviation_score(character.recent_days, character.destiny.inclination)


# ---------------------------------------------------------------------------
# Recalculation trigger
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RecalculationCheck:
    needed: bool
    reason: RecalcReason | None = None


NO_RECALC = RecalculationCheck(needed=False)


def should_recalculate(character: Character, day: int) -> RecalculationCheck:
    destiny = character.destiny
    if destiny is None:
        return NO_RECALC

    if destiny.last_recalculated is not None and day - destiny.last_recalculated < RECALC_COOLDOWN:
        return NO_RECALC

    for milestone in destiny.milestones:
        if not milestone.reached and day > milestone.target_day + MILESTONE_TOLERANCE:
            return RecalculationCheck(needed=True, reason="milestone_missed")

    if character_deviation(character) >= DEVIATION_THRESHOLD:
        return RecalculationCheck(needed=True, reason="deviation_threshold")

    return NO_RECALC


# ---------------------------------------------------------------------------
# Milestones
# ---------------------------------------------------------------------------

def find_reached_milestone(character: Character, day: int, action: str, location: str) -> int | None:
    """Index of the first unreached milestone the day's action fulfils, if any."""
    destiny = character.destiny
    if destiny is None:
        return None

    action_l = action.lower()
    location_l = location.lower()
    for index, milestone in enumerate(destiny.milestones):
        if milestone.reached:
            continue
        if abs(day - milestone.target_day) > MILESTONE_TOLERANCE:
            continue
        description = milestone.description.lower()
        keywords = [w for w in re.findall(r"\w+", description) if len(w) > 3]
        if any(w in action_l or w in location_l for w in keywords):
            return index
        if location_l and location_l in description:
            return index
    return None


def mark_milestone_reached(storage: Storage, character: Character, index: int) -> Destiny:
    fresh = storage.get_character(character.id)
    if fresh.destiny is None:
        raise ValueError(f"{fresh.name} has no destiny")
    fresh.destiny.milestones[index].reached = True
    storage.save_character(fresh)
    return fresh.destiny


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

async def create_destiny(storage: Storage, generator: Generator, character: Character) -> Destiny:
    """Generate, validate and persist a newborn character's destiny."""
    system, prompt = destiny_prompts(character)
    raw = await generator.generate_json("destiny_create", system, prompt, DESTINY_PARAMS)
    destiny = validate_destiny(raw)

    fresh = storage.get_character(character.id)
    fresh.destiny = destiny
    storage.save_character(fresh)
    return destiny


def merge_milestones(old: Destiny | None, new: Destiny, day: int) -> Destiny:
    """Keep reached milestones, add the new ones still in the future."""
    reached = [m for m in old.milestones if m.reached] if old else []
    upcoming = [m for m in new.milestones if m.target_day > day]
    return Destiny(
        end_state=new.end_state,
        inclination=new.inclination,
        milestones=reached + upcoming,
        last_recalculated=day,
    )


async def recalculate_destiny(
    storage: Storage,
    generator: Generator,
    character: Character,
    reason: RecalcReason,
    day: int,
) -> Destiny:
    system, prompt = recalculation_prompts(character, reason, day)
    raw = await generator.generate_json("destiny_recalculate", system, prompt, DESTINY_PARAMS)
    destiny = merge_milestones(character.destiny, validate_destiny(raw), day)

    fresh = storage.get_character(character.id)
    fresh.destiny = destiny
    storage.save_character(fresh)
    logger.info("Destiny of %s recalculated on day %d (%s)", character.name, day, reason)
    return destiny
