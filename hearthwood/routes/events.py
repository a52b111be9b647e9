"""World events and the journal."""

from fastapi import APIRouter, Depends

from hearthwood import world

from .deps import Runtime, get_runtime
from .models import CreateEvent

router = APIRouter()


@router.get("/events")
async def list_events(active: bool = True, rt: Runtime = Depends(get_runtime)):
    if active:
        return rt.storage.get_active_events()
    return rt.storage.get_events()


@router.post("/events", status_code=201)
async def create_event(body: CreateEvent, rt: Runtime = Depends(get_runtime)):
    return world.create_event(rt.storage, body.kind, body.locations, body.description)


@router.post("/events/{event_id}/resolve")
async def resolve_event(event_id: str, rt: Runtime = Depends(get_runtime)):
    return world.resolve_event(rt.storage, event_id)


@router.get("/journal")
async def list_journal(limit: int = 5, rt: Runtime = Depends(get_runtime)):
    """Most recent journal entries, newest first."""
    return rt.storage.get_recent_journal(limit)
