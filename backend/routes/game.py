"""Game endpoints: new game, ask, declare, forfeit, and the live activity line."""

from fastapi import APIRouter, Depends, Request

from red_truth.game import Game

from .deps import exclusive, get_game, require_stage
from .models import MessageBody, NewGameBody

router = APIRouter()


@router.get("/game")
async def get_game_view(game: Game = Depends(get_game)):
    """Current session view (the hidden truth only once finished)."""
    return game.view()


@router.post("/game")
async def new_game(request: Request, body: NewGameBody, game: Game = Depends(get_game)):
    """Start a new game; an empty theme lets the Witch choose."""
    async with exclusive(request):
        require_stage(game, "new_game")
        await game.new_game(body.theme)
    return game.view()


@router.post("/game/ask")
async def ask(request: Request, body: MessageBody, game: Game = Depends(get_game)):
    """Ask the Witch a question."""
    async with exclusive(request):
        require_stage(game, "ask")
        await game.ask(body.message)
    return game.view()


@router.post("/game/declare")
async def declare(request: Request, body: MessageBody, game: Game = Depends(get_game)):
    """Declare a blue truth for the Witch to judge."""
    async with exclusive(request):
        require_stage(game, "declare")
        await game.declare(body.message)
    return game.view()


@router.post("/game/forfeit")
async def forfeit(request: Request, game: Game = Depends(get_game)):
    """Give up and have the truth revealed."""
    async with exclusive(request):
        require_stage(game, "forfeit")
        await game.forfeit()
    return game.view()


@router.get("/game/activity")
async def activity(game: Game = Depends(get_game)):
    """Live activity line, loading thoughts, the number of notes streamed by the
    current call, and the effects not yet collected."""
    return {
        "activity": game.store.activity.text,
        "loading_log": list(game.store.loading_log),
        "thoughts": game.store.activity.notes_seen,
        "effects": game.drain_effects(),
    }
