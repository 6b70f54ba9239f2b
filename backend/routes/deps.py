"""Shared helpers: the app's Game and its one-action-at-a-time guard."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import HTTPException, Request

from red_truth.game import Game
from red_truth.session import Action


def get_game(request: Request) -> Game:
    return request.app.state.game


def require_stage(game: Game, action: Action) -> None:
    if not game.store.can(action):
        raise HTTPException(409, f"Cannot {action.replace('_', ' ')} while {game.session.stage}")


@asynccontextmanager
async def exclusive(request: Request) -> AsyncIterator[None]:
    """Reject the request if another action is still in flight."""
    lock = request.app.state.busy
    if lock.locked():
        raise HTTPException(409, "The Witch is busy with another action")
    async with lock:
        yield
