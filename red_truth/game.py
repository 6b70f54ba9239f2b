"""Game facade: one session store, one oracle, an optional tutorial.

The HTTP layer talks only to Game. Stage rules live in the action
handlers; Game adds the tutorial's entry and exit transitions.
"""

from __future__ import annotations

import logging
from typing import Any

from red_truth import actions
from red_truth.oracle import Oracle
from red_truth.session import Effect, GameSession, SessionStore, view
from red_truth.tutorial import TutorialSequencer

logger = logging.getLogger(__name__)


class Game:
    def __init__(self, oracle: Oracle, step_delay: float = 1.0) -> None:
        self.oracle = oracle
        self.store = SessionStore()
        self.tutorial: TutorialSequencer | None = None
        self._step_delay = step_delay
        self._pending_effects: list[Effect] = []
        self.store.on_effect(self._pending_effects.append)

    @property
    def session(self) -> GameSession:
        return self.store.current

    async def new_game(self, theme: str = "") -> GameSession:
        return await actions.new_game(self.store, self.oracle, theme)

    async def ask(self, text: str) -> GameSession:
        return await actions.ask(self.store, self.oracle, text)

    async def declare(self, text: str) -> GameSession:
        return await actions.declare_hypothesis(self.store, self.oracle, text)

    async def forfeit(self) -> GameSession:
        return await actions.forfeit(self.store, self.oracle)

    # ── tutorial ─────────────────────────────────────────

    async def start_tutorial(self) -> TutorialSequencer | None:
        """Enter the tutorial and run it up to its first gate."""
        if not self.store.can("start_tutorial"):
            logger.debug("start_tutorial ignored in stage %s", self.session.stage)
            return None
        self.store.commit(self.session.to_stage("tutorial"))
        self.tutorial = TutorialSequencer(
            self.oracle,
            step_delay=self._step_delay,
            on_end=self.end_tutorial,
            on_effect=self.store.emit,
            activity=self.store.activity,
        )
        await self.tutorial.run()
        return self.tutorial

    async def tutorial_action(self, action: str) -> bool:
        if self.tutorial is None or self.session.stage != "tutorial":
            return False
        return await self.tutorial.trigger(action)

    def end_tutorial(self) -> None:
        if not self.store.can("end_tutorial"):
            return
        self.store.commit(GameSession())

    # ── presentation ─────────────────────────────────────

    def view(self) -> dict[str, Any]:
        return view(self.session, self.store.activity)

    def drain_effects(self) -> list[Effect]:
        """Effects emitted since the last call, oldest first."""
        drained, self._pending_effects[:] = list(self._pending_effects), []
        return drained

    def tutorial_view(self) -> dict[str, Any] | None:
        if self.tutorial is None:
            return None
        return self.tutorial.view()
