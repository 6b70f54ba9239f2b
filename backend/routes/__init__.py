"""FastAPI API endpoints under /api.

Endpoint groups: health and connection check, the game (new game, ask,
declare, forfeit, activity) and the tutorial (start, view, action).
Every state-changing endpoint holds the app's busy lock: a second action
while one is in flight gets 409, as does an action illegal in the
current stage.
"""

from fastapi import APIRouter

from .game import router as game_router
from .settings import router as settings_router
from .tutorial import router as tutorial_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(game_router)
router.include_router(tutorial_router)
