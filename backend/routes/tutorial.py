"""Tutorial endpoints: start, view, and trigger the gated action."""

from fastapi import APIRouter, Depends, HTTPException, Request

from red_truth.game import Game

from .deps import exclusive, get_game, require_stage
from .models import TutorialActionBody

router = APIRouter()


@router.post("/tutorial")
async def start_tutorial(request: Request, game: Game = Depends(get_game)):
    """Enter the tutorial and run it up to the first player action."""
    async with exclusive(request):
        require_stage(game, "start_tutorial")
        tutorial = await game.start_tutorial()
    return tutorial.view()


@router.get("/tutorial")
async def get_tutorial(game: Game = Depends(get_game)):
    """Tutorial view: history, step index, awaited action and prefilled input."""
    view = game.tutorial_view()
    if view is None:
        raise HTTPException(404, "No tutorial has been started")
    return view


@router.post("/tutorial/action")
async def tutorial_action(
    request: Request, body: TutorialActionBody, game: Game = Depends(get_game)
):
    """Trigger the action the current tutorial step waits for."""
    async with exclusive(request):
        tutorial = game.tutorial
        if tutorial is None or game.session.stage != "tutorial":
            raise HTTPException(409, "The tutorial is not running")
        if not await game.tutorial_action(body.action):
            raise HTTPException(
                409, f"The tutorial is waiting for {tutorial.awaiting}, not {body.action}"
            )
    return {**tutorial.view(), "stage": game.session.stage}
