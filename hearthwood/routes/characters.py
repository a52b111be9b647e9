"""Character endpoints: list, inspect, birth and death."""

from fastapi import APIRouter, Depends

from hearthwood import world

from .deps import Runtime, get_runtime
from .models import CreateCharacter

router = APIRouter()


@router.get("/characters")
async def list_characters(alive: bool | None = None, rt: Runtime = Depends(get_runtime)):
    """List characters, optionally only the living (alive=true) or the dead."""
    characters = rt.storage.get_characters()
    if alive is not None:
        characters = [c for c in characters if c.alive == alive]
    return characters


@router.get("/characters/{character_id}")
async def get_character(character_id: str, rt: Runtime = Depends(get_runtime)):
    return rt.storage.get_character(character_id)


@router.post("/characters", status_code=201)
async def create_character(body: CreateCharacter, rt: Runtime = Depends(get_runtime)):
    """Create a character; their destiny is written at birth."""
    return await world.create_character(
        rt.storage, rt.generator, body.name, body.traits, body.location,
    )


@router.post("/characters/{character_id}/kill")
async def kill_character(character_id: str, rt: Runtime = Depends(get_runtime)):
    return world.kill_character(rt.storage, character_id)
