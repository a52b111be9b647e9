"""Deterministic action templates — the no-LLM decision path.

Categories and base weights:
  eat 20 · sleep 15 · stay 25 · explore 25 · socialize 15

Traits shift weights (floored at 0), e.g. "curious" adds 15 to explore and
removes 10 from stay. A weighted draw picks the category, then one of three
canned narratives with the character's name substituted. Exploring moves the
character to a random other reachable place half of the time.

Path selection: the template path is used with probability
0.3 + 0.1 if the character has no destiny + 0.1 if younger than 10 days.
"""

from __future__ import annotations

import random

from hearthwood.models import ActionResult, Character

CATEGORY_WEIGHTS: dict[str, int] = {
    "eat": 20,
    "sleep": 15,
    "stay": 25,
    "explore": 25,
    "socialize": 15,
}

NARRATIVES: dict[str, list[str]] = {
    "eat": [
        "{name} forages for food nearby.",
        "{name} makes do with what the land offers.",
        "{name} takes a moment to eat in peace.",
    ],
    "sleep": [
        "{name} rests under cover.",
        "{name} finds a quiet corner to sleep.",
        "{name} sleeps to recover their strength.",
    ],
    "stay": [
        "{name} stays put, watching the world.",
        "{name} meditates in silence.",
        "{name} studies the surroundings without moving.",
    ],
    "explore": [
        "{name} explores the area with curiosity.",
        "{name} discovers a few new nooks.",
        "{name} roams the land in search of something new.",
    ],
    "socialize": [
        "{name} looks for the company of others.",
        "{name} tries to make contact.",
        "{name} watches the others from a distance.",
    ],
}

TRAIT_MODIFIERS: dict[str, dict[str, int]] = {
    "curious": {"explore": 15, "stay": -10},
    "cautious": {"stay": 15, "explore": -10},
    "sociable": {"socialize": 20, "stay": -10},
    "solitary": {"stay": 15, "socialize": -15},
    "lazy": {"sleep": 20, "explore": -15},
    "energetic": {"explore": 15, "sleep": -10},
    "greedy": {"eat": 20},
    "contemplative": {"stay": 20, "explore": -10},
}

BASE_TEMPLATE_CHANCE = 0.3
NO_DESTINY_BONUS = 0.1
YOUNG_BONUS = 0.1
YOUNG_AGE = 10


def category_weights(traits: list[str]) -> dict[str, int]:
    weights = dict(CATEGORY_WEIGHTS)
    for trait in traits:
        for category, delta in TRAIT_MODIFIERS.get(trait.lower(), {}).items():
            weights[category] = max(0, weights[category] + delta)
    return weights


def select_category(character: Character, rng: random.Random | None = None) -> str:
    rng = rng or random
    weights = category_weights(character.traits)
    total = sum(weights.values())
    if total <= 0:
        return "eat"
    roll = rng.random() * total
    for category, weight in weights.items():
        if roll < weight:
            return category
        roll -= weight
    return "eat"


def execute_template(
    character: Character,
    reachable: list[str],
    rng: random.Random | None = None,
) -> ActionResult:
    rng = rng or random
    category = select_category(character, rng)
    narrative = rng.choice(NARRATIVES[category]).format(name=character.name)

    location = character.location
    if category == "explore" and rng.random() < 0.5:
        others = [name for name in reachable if name != character.location]
        if others:
            location = rng.choice(others)

    return ActionResult(
        action=category,
        location=location,
        target=None,
        narrative=narrative,
        source="template",
    )


def template_chance(character: Character) -> float:
    chance = BASE_TEMPLATE_CHANCE
    if character.destiny is None:
        chance += NO_DESTINY_BONUS
    if character.age < YOUNG_AGE:
        chance += YOUNG_BONUS
    return chance


def should_use_template(character: Character, rng: random.Random | None = None) -> bool:
    rng = rng or random
    return rng.random() < template_chance(character)
