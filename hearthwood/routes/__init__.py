"""FastAPI API endpoints under /api.

Endpoint groups: health + world (pause/resume, cycle trigger), characters,
events + journal. Handles (storage, generator, notifier, settings) live on
app.state.runtime and are injected with Depends(get_runtime).
"""

from fastapi import APIRouter

from .characters import router as characters_router
from .deps import Runtime, get_runtime  # noqa: F401
from .events import router as events_router
from .world import router as world_router

router = APIRouter()
router.include_router(world_router)
router.include_router(characters_router)
router.include_router(events_router)
