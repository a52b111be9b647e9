"""Health, world state, pause/resume and the day-cycle trigger."""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse

from hearthwood import world

from .deps import Runtime, get_runtime

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health(rt: Runtime = Depends(get_runtime)):
    """Health check, including whether the LLM backend answers."""
    return {"status": "ok", "llm": await rt.generator.check_health()}


@router.get("/world")
async def get_world(rt: Runtime = Depends(get_runtime)):
    """Current day, pause flag and the last few journal entries."""
    return {
        "world": rt.storage.get_world(),
        "living": len(rt.storage.get_living_characters()),
        "active_events": len(rt.storage.get_active_events()),
        "journal": rt.storage.get_recent_journal(3),
    }


@router.post("/world/pause")
async def pause_world(rt: Runtime = Depends(get_runtime)):
    return world.pause(rt.storage)


@router.post("/world/resume")
async def resume_world(rt: Runtime = Depends(get_runtime)):
    return world.resume(rt.storage)


@router.post("/cycle")
async def trigger_cycle(
    authorization: str | None = Header(default=None),
    degraded: bool = False,
    rt: Runtime = Depends(get_runtime),
):
    """Run one day. Called on a schedule by an external cron."""
    secret = rt.settings.trigger_secret
    if not secret:
        raise HTTPException(503, "Cycle trigger is not configured")
    if authorization != f"Bearer {secret}":
        raise HTTPException(401, "Unauthorized")

    logger.info("Cycle trigger received")
    try:
        result = await rt.orchestrator().run_cycle(force_degraded=degraded)
    except Exception as e:
        logger.exception("Cycle trigger failed")
        return JSONResponse({"success": False, "error": str(e)}, status_code=500)
    return result.summary()
