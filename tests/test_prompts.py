"""Tests for Handlebars prompt rendering: helpers, error handling and the
per-stage prompt builders."""

import pytest

from hearthwood.models import (
    ActionResult,
    Character,
    DayRecord,
    Destiny,
    Event,
    Location,
    Milestone,
)
from hearthwood.prompts import (
    PromptError,
    action_prompts,
    destiny_prompts,
    recalculation_prompts,
    render_prompt,
    summary_prompts,
)


# ── render_prompt ────────────────────────────────────────────


def test_render_simple_variable():
    assert render_prompt("Hello {{name}}!", {"name": "World"}) == "Hello World!"


def test_render_missing_variable():
    assert render_prompt("Hello {{name}}!", {}) == "Hello !"


def test_render_invalid_template():
    with pytest.raises(PromptError):
        render_prompt("{{> missing_partial}}", {})


# ── helpers: last & join ───────────────────────────────


def test_last_n():
    tpl = "{{#last items 2}}{{this}} {{/last}}"
    assert render_prompt(tpl, {"items": ["a", "b", "c", "d"]}) == "c d "


def test_last_more_than_length():
    tpl = "{{#last items 10}}{{this}} {{/last}}"
    assert render_prompt(tpl, {"items": ["a", "b"]}) == "a b "


def test_join():
    assert render_prompt("{{join items}}", {"items": ["curious", "bold"]}) == "curious, bold"


# ── builders ─────────────────────────────────────────────────


@pytest.fixture
def bramble() -> Character:
    return Character(
        name="Bramble O'Hare",
        traits=["curious", "bold", "stubborn"],
        location="hearth",
        age=12,
        recent_days=[
            DayRecord(day=d, action=f"walks #{d}", location="forest") for d in range(1, 6)
        ],
        destiny=Destiny(
            end_state="Dies on the hill & happy.",
            inclination="Drawn toward the hill",
            milestones=[
                Milestone(target_day=25, description="Crosses the marsh", reached=True),
                Milestone(target_day=50, description="Finds the spring"),
            ],
        ),
    )


def test_action_prompt(bramble):
    hearth = Location(name="hearth", description="An old stone hearth.")
    wren = Character(name="Wren", traits=["shy", "kind", "quiet"], location="hearth")
    fever = Event(kind="sickness", description="A fever spreads.", locations=["hearth"], start_day=1)

    system, prompt = action_prompts(bramble, hearth, [wren], ["hearth", "forest"], [fever], 7)

    assert "JSON" in system
    assert "DAY 7" in prompt
    assert "CHARACTER: Bramble O'Hare" in prompt
    assert "WHERE: hearth" in prompt
    assert "- Wren (shy, kind)" in prompt
    assert "- A path leads to forest" in prompt
    assert "A path leads to hearth" not in prompt
    assert "- A fever spreads." in prompt
    # only the last three days
    assert "Day 3: walks #3" in prompt
    assert "Day 2: walks #2" not in prompt


def test_action_prompt_alone(bramble):
    hearth = Location(name="hearth")
    _, prompt = action_prompts(bramble.model_copy(update={"recent_days": []}), hearth, [], ["hearth"], [], 1)
    assert "Nobody else" in prompt
    assert "No visible path" in prompt
    assert "Nothing in particular" in prompt
    assert "First day" in prompt


def test_destiny_prompt(bramble):
    _, prompt = destiny_prompts(bramble)
    assert "NEW CHARACTER: Bramble O'Hare" in prompt
    assert "TRAITS: curious, bold, stubborn" in prompt
    assert "BIRTHPLACE: hearth" in prompt


def test_recalculation_prompt(bramble):
    _, prompt = recalculation_prompts(bramble, "milestone_missed", 60)
    assert "REASON: An important milestone was missed" in prompt
    assert 'End: "Dies on the hill & happy."' in prompt
    assert '- Day 25: "Crosses the marsh" (reached)' in prompt
    assert '- Day 50: "Finds the spring" (not reached)' in prompt
    assert "Day 5: walks #5 at forest" in prompt


def test_summary_prompt(bramble):
    action = ActionResult(action="walks", location="forest", narrative="Bramble walks & sings.",
                          source="generative")
    _, prompt = summary_prompts(4, [(bramble, action)], 2, degraded=True)
    assert "DAY 4" in prompt
    assert "- Bramble O'Hare (curious, bold): Bramble walks & sings." in prompt
    assert "ACTIVE EVENTS: 2" in prompt
    assert "degraded mode" in prompt
