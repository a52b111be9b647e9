"""Tests for hearthwood.engine.destiny."""

import itertools

import pytest

from hearthwood.engine.destiny import (
    DEVIATION_THRESHOLD,
    create_destiny,
    deviation_score,
    find_reached_milestone,
    mark_milestone_reached,
    merge_milestones,
    recalculate_destiny,
    should_recalculate,
)
from hearthwood.errors import ResponseValidationError
from hearthwood.llm import LLMError
from hearthwood.models import Character, DayRecord, Destiny, Milestone


def _days(*locations: str, interactions: list[str] | None = None) -> list[DayRecord]:
    return [
        DayRecord(day=i + 1, action="wanders", location=loc, interactions=list(interactions or []))
        for i, loc in enumerate(locations)
    ]


def _character(inclination: str = "Content with anything", milestones=None, last_recalculated=None,
               recent=None) -> Character:
    return Character(
        name="Bramble",
        location="hearth",
        destiny=Destiny(
            end_state="Leaves the valley.",
            inclination=inclination,
            milestones=milestones or [Milestone(target_day=60, description="Finds the ford")],
            last_recalculated=last_recalculated,
        ),
        recent_days=recent or [],
    )


# ---------------------------------------------------------------------------
# deviation_score
# ---------------------------------------------------------------------------

class TestDeviation:
    def test_seeks_company_alone_for_five_days(self) -> None:
        score = deviation_score(_days(*["hearth"] * 5), "seeks company")
        assert 0 < score < 1
        assert score == pytest.approx(0.5)

    def test_company_with_interactions_is_no_deviation(self) -> None:
        assert deviation_score(_days(*["hearth"] * 5, interactions=["Wren"]), "seeks company") == 0

    def test_location_affinity(self) -> None:
        assert deviation_score(_days("hill", "hill", "hill"), "Drawn toward the hill") == 0
        assert deviation_score(_days("hill", "river", "hill"), "Drawn toward the hill") == pytest.approx(0.4)

    def test_danger_avoidance(self) -> None:
        assert deviation_score(_days("forest", "marsh"), "cautious, avoids danger") == pytest.approx(0.5)
        assert deviation_score(_days("forest", "river"), "cautious, avoids danger") == 0

    def test_calm_seeking(self) -> None:
        assert deviation_score(_days("hearth", "forest", "river"), "wants rest and quiet") == pytest.approx(0.2)
        assert deviation_score(_days("hearth", "forest", "hearth"), "wants rest and quiet") == 0

    def test_keyword_is_word_prefix(self) -> None:
        # "forest" contains "rest" but is not a calm-seeking keyword
        assert deviation_score(_days("hearth", "forest", "river"), "loves the forest") == 0

    def test_unmatched_inclination(self) -> None:
        assert deviation_score(_days(*["marsh"] * 5), "loves fishing") == 0

    def test_empty_history(self) -> None:
        assert deviation_score([], "seeks company, avoids danger") == 0

    def test_only_last_five_days(self) -> None:
        days = _days("marsh", *["forest"] * 5)
        assert deviation_score(days, "avoids danger") == 0

    def test_saturates_at_one(self) -> None:
        days = _days("marsh", "river", "forest", "hill", "marsh")
        inclination = "Drawn toward the hill, seeks company, avoids danger, wants calm"
        assert deviation_score(days, inclination) == 1.0

    @pytest.mark.parametrize("inclination", [
        "seeks company",
        "drawn toward the hill",
        "avoids danger",
        "calm",
        "drawn toward the hill, seeks company, avoids danger, calm",
        "nothing relevant",
    ])
    def test_bounded_for_every_history_length(self, inclination: str) -> None:
        places = ["hearth", "marsh", "forest", "river", "hill"]
        for length in range(0, 8):
            for combo in itertools.islice(itertools.product(places, repeat=min(length, 3)), 40):
                days = _days(*(list(combo) + ["marsh"] * (length - len(combo))))
                assert 0.0 <= deviation_score(days, inclination) <= 1.0


# ---------------------------------------------------------------------------
# should_recalculate
# ---------------------------------------------------------------------------

class TestShouldRecalculate:
    def test_no_destiny(self) -> None:
        c = Character(name="Wren", location="hearth")
        assert should_recalculate(c, 50).needed is False

    def test_missed_milestone(self) -> None:
        c = _character(milestones=[Milestone(target_day=25, description="Climbs the hill")])
        check = should_recalculate(c, 31)
        assert check.needed is True
        assert check.reason == "milestone_missed"

    def test_within_tolerance(self) -> None:
        c = _character(milestones=[Milestone(target_day=25, description="Climbs the hill")])
        assert should_recalculate(c, 28).needed is False
        assert should_recalculate(c, 30).needed is False

    def test_reached_milestone_never_missed(self) -> None:
        c = _character(milestones=[Milestone(target_day=25, description="Climbs the hill", reached=True)])
        assert should_recalculate(c, 90).needed is False

    def test_cooldown(self) -> None:
        c = _character(milestones=[Milestone(target_day=25, description="x")], last_recalculated=28)
        assert should_recalculate(c, 31).needed is False
        assert should_recalculate(c, 33).needed is True

    def test_deviation_trigger(self) -> None:
        c = _character(inclination="seeks company", recent=_days(*["hearth"] * 5))
        check = should_recalculate(c, 10)
        assert check.needed is True
        assert check.reason == "deviation_threshold"

    def test_below_deviation_threshold(self) -> None:
        c = _character(inclination="seeks company", recent=_days("hearth", "hearth"))
        assert deviation_score(c.recent_days, "seeks company") < DEVIATION_THRESHOLD
        assert should_recalculate(c, 10).needed is False

    def test_missed_milestone_wins_over_deviation(self) -> None:
        c = _character(
            inclination="seeks company",
            milestones=[Milestone(target_day=5, description="x")],
            recent=_days(*["hearth"] * 5),
        )
        assert should_recalculate(c, 20).reason == "milestone_missed"


# ---------------------------------------------------------------------------
# Milestones
# ---------------------------------------------------------------------------

class TestMilestones:
    def _c(self) -> Character:
        return _character(milestones=[
            Milestone(target_day=20, description="Climbs the watchtower on the hill"),
            Milestone(target_day=22, description="Crosses the river"),
            Milestone(target_day=60, description="Finds the ford"),
        ])

    def test_keyword_in_action(self) -> None:
        assert find_reached_milestone(self._c(), 18, "climbs a tree", "forest") == 0

    def test_location_in_description(self) -> None:
        assert find_reached_milestone(self._c(), 24, "wanders", "river") == 1

    def test_first_match_in_list_order(self) -> None:
        c = _character(milestones=[
            Milestone(target_day=20, description="Swims in the river"),
            Milestone(target_day=21, description="Fishes in the river"),
        ])
        assert find_reached_milestone(c, 20, "sits", "river") == 0

    def test_outside_window(self) -> None:
        assert find_reached_milestone(self._c(), 40, "finds a ford", "river") is None

    def test_short_words_ignored(self) -> None:
        c = _character(milestones=[Milestone(target_day=10, description="Is on the hill")])
        assert find_reached_milestone(c, 10, "is on top", "forest") is None

    def test_reached_skipped(self) -> None:
        c = _character(milestones=[
            Milestone(target_day=20, description="Crosses the river", reached=True),
            Milestone(target_day=21, description="Fishes in the river"),
        ])
        assert find_reached_milestone(c, 20, "sits", "river") == 1

    def test_no_destiny(self) -> None:
        assert find_reached_milestone(Character(name="W", location="hearth"), 20, "x", "river") is None

    def test_mark_reached_persists(self, storage) -> None:
        c = storage.save_character(self._c())
        destiny = mark_milestone_reached(storage, c, 1)
        assert destiny.milestones[1].reached is True
        assert storage.get_character(c.id).destiny.milestones[1].reached is True
        assert storage.get_character(c.id).destiny.milestones[0].reached is False


# ---------------------------------------------------------------------------
# Creation and recalculation
# ---------------------------------------------------------------------------

class TestGeneration:
    async def test_create_destiny(self, storage, add_character, generator, stub_llm) -> None:
        c = add_character("Bramble", traits=["curious"])
        destiny = await create_destiny(storage, generator, c)
        assert [m.target_day for m in destiny.milestones] == [25, 50, 75]
        assert not any(m.reached for m in destiny.milestones)
        assert destiny.last_recalculated is None
        assert storage.get_character(c.id).destiny == destiny
        assert stub_llm.stages() == ["destiny_create"]
        assert "curious" in stub_llm.calls[0][2]

    async def test_create_destiny_invalid_output(self, storage, add_character, generator, stub_llm) -> None:
        c = add_character("Bramble")
        stub_llm.responses["destiny_create"] = {"end_state": "x", "milestones": [], "inclination": "y"}
        with pytest.raises(ResponseValidationError):
            await create_destiny(storage, generator, c)
        assert storage.get_character(c.id).destiny is None

    async def test_recalculate_keeps_reached_and_future(self, storage, generator, stub_llm) -> None:
        c = storage.save_character(_character(milestones=[
            Milestone(target_day=10, description="Old triumph", reached=True),
            Milestone(target_day=20, description="Missed chance"),
        ]))
        destiny = await recalculate_destiny(storage, generator, c, "milestone_missed", 30)

        # Reply milestones are days 25, 50, 75; 25 is already past
        assert [(m.target_day, m.reached) for m in destiny.milestones] == [(10, True), (50, False), (75, False)]
        assert destiny.last_recalculated == 30
        assert storage.get_character(c.id).destiny == destiny
        assert "An important milestone was missed" in stub_llm.calls[0][2]

    async def test_recalculate_failure_propagates(self, storage, generator, stub_llm) -> None:
        c = storage.save_character(_character())
        stub_llm.responses["destiny_recalculate"] = LLMError("down")
        with pytest.raises(LLMError):
            await recalculate_destiny(storage, generator, c, "deviation_threshold", 30)
        assert storage.get_character(c.id).destiny.last_recalculated is None

    def test_merge_without_old_destiny(self) -> None:
        new = Destiny(end_state="e", inclination="i", milestones=[
            Milestone(target_day=5, description="a"), Milestone(target_day=15, description="b"),
        ])
        merged = merge_milestones(None, new, 10)
        assert [m.target_day for m in merged.milestones] == [15]
        assert merged.last_recalculated == 10
