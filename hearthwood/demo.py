"""Create demo world data for development/testing."""

from hearthwood.models import Character, Destiny, Location, Milestone, World
from hearthwood.storage import Storage

DEMO_LOCATIONS = [
    Location(
        name="hearth",
        description="A clearing around an old stone hearth that never quite goes cold.",
        connections=["forest", "river"],
    ),
    Location(
        name="forest",
        description="Tall pines, moss underfoot, and paths that change with the seasons.",
        connections=["hearth", "hill", "marsh"],
    ),
    Location(
        name="river",
        description="A slow brown river with a ford and a leaning boathouse.",
        connections=["hearth", "marsh"],
    ),
    Location(
        name="marsh",
        description="Reeds, mist and sucking mud. Things go missing here.",
        connections=["forest", "river"],
    ),
    Location(
        name="hill",
        description="A bald hill with a view of everything, and a ruined watchtower.",
        connections=["forest"],
    ),
]

DEMO_CHARACTERS = [
    Character(
        name="Bramble",
        traits=["curious", "energetic"],
        location="hearth",
        destiny=Destiny(
            end_state="Bramble maps every path of the valley and vanishes beyond the hill.",
            inclination="Drawn toward the hill and what lies past it",
            milestones=[
                Milestone(target_day=25, description="Climbs the watchtower on the hill"),
                Milestone(target_day=50, description="Finds the ford across the river"),
                Milestone(target_day=75, description="Leaves the valley for good"),
            ],
        ),
    ),
    Character(name="Wren", traits=["sociable", "greedy"], location="hearth"),
    Character(name="Old Tamsin", traits=["cautious", "contemplative"], location="river", age=60),
]


def create_demo_data(storage: Storage) -> None:
    """Wipe existing world files and write a fresh demo world."""
    for path in storage.base_path.glob("*.json"):
        path.unlink()

    storage.save_world(World())
    for location in DEMO_LOCATIONS:
        storage.save_location(location)
    for character in DEMO_CHARACTERS:
        storage.save_character(character.model_copy(deep=True))
