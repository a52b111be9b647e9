"""Handlebars prompt rendering for every generative stage.

Each stage has a (system, prompt) pair of templates. Builders assemble a
plain-dict context from domain models and render both halves:

  action_prompts       — what a character does today
  destiny_prompts      — a newborn character's destiny
  recalculation_prompts — a revised destiny after deviation or a missed milestone
  summary_prompts      — the chronicle text for the day

Text values are rendered with triple-stash so names and narration are not
HTML-escaped.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pybars

from hearthwood.models import ActionResult, Character, Event, Location

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_last(this, options, items, count):
    """{{#last array N}}...{{/last}} — iterate over the last N items."""
    result = []
    for item in list(items)[-int(count):]:
        result.extend(options["fn"](item))
    return result


def _helper_join(this, items, separator=", "):
    return separator.join(str(i) for i in items)


_HELPERS: dict[str, Callable] = {
    "last": _helper_last,
    "join": _helper_join,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return compiled(context, helpers=_HELPERS)
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Templates ────────────────────────────────────────────

HEALTH_SYSTEM = "You are a health check bot."
HEALTH_PROMPT = 'Respond with just "ok".'

ACTION_SYSTEM = """\
You decide what one character does today, based ONLY on what they know.

The character knows only where they are, who they can see there, the paths
leading away, and what is happening locally.

RULES:
1. The action must be consistent with their traits.
2. They may stay where they are or walk to one of the listed paths.
3. If other characters are present they may interact with one of them.
4. Local events influence their decision.

STYLE: Direct and concrete. Dry humour is allowed.

Respond with a JSON object:
{
  "action": "short description of the action",
  "location": "where they end the day (current place or a listed path)",
  "target": "name of the character they interact with, or null",
  "narrative": "2-3 sentences describing what they do"
}"""

ACTION_PROMPT = """\
DAY {{day}}

CHARACTER: {{{name}}}
TRAITS: {{{join traits}}}
AGE: {{age}} days

WHERE: {{{location.name}}}
{{{location.description}}}

WHO IS HERE:
{{#if present}}{{#each present}}- {{{name}}} ({{{join traits}}})
{{/each}}{{else}}Nobody else
{{/if}}
PATHS:
{{#if paths}}{{#each paths}}- A path leads to {{{this}}}
{{/each}}{{else}}No visible path
{{/if}}
HAPPENING HERE:
{{#if events}}{{#each events}}- {{{description}}}
{{/each}}{{else}}Nothing in particular
{{/if}}
RECENT DAYS:
{{#if recent}}{{#last recent 3}}Day {{day}}: {{{action}}}
{{/last}}{{else}}First day
{{/if}}
What does {{{name}}} do today?"""

DESTINY_SYSTEM = """\
You write the destiny of a character who has just been born.

The character will live about 100 days. Their destiny has:
- a written end (how their life will close, 1-2 sentences)
- 3 milestones (key moments around days 25, 50 and 75)
- a current inclination (what they lean toward right now)

Milestones must fit the character's traits, stay vague enough to allow
interpretation, and relate to discoveries, encounters or trials.

Respond with a JSON object:
{
  "end_state": "how it ends",
  "milestones": [
    {"target_day": 25, "description": "first milestone"},
    {"target_day": 50, "description": "second milestone"},
    {"target_day": 75, "description": "third milestone"}
  ],
  "inclination": "current inclination"
}"""

DESTINY_PROMPT = """\
NEW CHARACTER: {{{name}}}

TRAITS: {{{join traits}}}
BIRTHPLACE: {{{location}}}

Weave the destiny of {{{name}}}."""

RECALCULATION_SYSTEM = """\
A character has drifted from their destiny. Rewrite it.

Take into account what they actually did recently, their traits (which do
not change), and the milestones already reached. Fold the deviation into the
story and propose new, realistic milestones after the current day.

Respond with a JSON object:
{
  "end_state": "new ending",
  "milestones": [{"target_day": 0, "description": "milestone"}],
  "inclination": "new inclination"
}"""

RECALCULATION_PROMPT = """\
DESTINY RECALCULATION: {{{name}}}

REASON: {{{reason}}}

TRAITS: {{{join traits}}}
AGE: {{age}} days
DAY: {{day}}
LOCATION: {{{location}}}

PREVIOUS DESTINY:
End: "{{{end_state}}}"
Inclination: "{{{inclination}}}"

MILESTONES:
{{#each milestones}}- Day {{target_day}}: "{{{description}}}" {{#if reached}}(reached){{else}}(not reached){{/if}}
{{/each}}
RECENT ACTIONS:
{{#if recent}}{{#each recent}}Day {{day}}: {{{action}}} at {{{location}}}
{{/each}}{{else}}None
{{/if}}
Recalculate the destiny of {{{name}}}, building on what they did."""

SUMMARY_SYSTEM = """\
You are the chronicler of the world. You write the daily summary.

The summary must be concise (3-5 sentences), capture the essence of the day,
mention the characters who acted, and evoke the general mood.

Respond with a JSON object:
{
  "summary": "the summary of the day"
}"""

SUMMARY_PROMPT = """\
DAY {{day}}

WHAT THE INHABITANTS DID:
{{#each actions}}- {{{name}}} ({{{join traits}}}): {{{narrative}}}
{{/each}}
ACTIVE EVENTS: {{active_events}}
{{#if degraded}}
Note: this day was simulated in degraded mode.
{{/if}}
Write the summary of this day for the chronicle."""

RECALCULATION_REASONS = {
    "milestone_missed": "An important milestone was missed",
    "deviation_threshold": "The character has drifted significantly from their inclination",
}


# ── Builders ─────────────────────────────────────────────


def _char_brief(character: Character) -> dict[str, Any]:
    return {"name": character.name, "traits": character.traits[:2]}


def action_prompts(
    character: Character,
    location: Location,
    present: list[Character],
    reachable: list[str],
    events: list[Event],
    day: int,
) -> tuple[str, str]:
    ctx = {
        "day": day,
        "name": character.name,
        "traits": character.traits,
        "age": character.age,
        "location": {"name": location.name, "description": location.description},
        "present": [_char_brief(c) for c in present],
        "paths": [name for name in reachable if name != character.location],
        "events": [{"description": e.description} for e in events],
        "recent": [d.model_dump() for d in character.recent_days],
    }
    return ACTION_SYSTEM, render_prompt(ACTION_PROMPT, ctx)


def destiny_prompts(character: Character) -> tuple[str, str]:
    ctx = {
        "name": character.name,
        "traits": character.traits,
        "location": character.location,
    }
    return DESTINY_SYSTEM, render_prompt(DESTINY_PROMPT, ctx)


def recalculation_prompts(character: Character, reason: str, day: int) -> tuple[str, str]:
    destiny = character.destiny
    ctx = {
        "name": character.name,
        "reason": RECALCULATION_REASONS.get(reason, reason),
        "traits": character.traits,
        "age": character.age,
        "day": day,
        "location": character.location,
        "end_state": destiny.end_state if destiny else "unknown",
        "inclination": destiny.inclination if destiny else "unknown",
        "milestones": [m.model_dump() for m in destiny.milestones] if destiny else [],
        "recent": [d.model_dump() for d in character.recent_days],
    }
    return RECALCULATION_SYSTEM, render_prompt(RECALCULATION_PROMPT, ctx)


def summary_prompts(
    day: int,
    actions: list[tuple[Character, ActionResult]],
    active_events: int,
    degraded: bool,
) -> tuple[str, str]:
    ctx = {
        "day": day,
        "actions": [
            {"name": c.name, "traits": c.traits[:2], "narrative": a.narrative}
            for c, a in actions
        ],
        "active_events": active_events,
        "degraded": degraded,
    }
    return SUMMARY_SYSTEM, render_prompt(SUMMARY_PROMPT, ctx)
