"""Game session record and its pure transitions.

A GameSession is never mutated: every transition returns a new record, and
SessionStore.commit() publishes it. Readers only ever see committed records.

Stage graph:

    start ──new_game──▶ loading ──mystery──▶ playing ──accepted/forfeit──▶ finished
      │  ▲                  └──failure──────────────────────────────────▶ finished
      ▼  │                                                    finished ──new_game──▶ loading
    tutorial
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from red_truth.ledger import TruthLedger
from red_truth.models import PLACEHOLDER_MYSTERY, ChatMessage, MessageKind, Mystery, Stage
from red_truth.stream import ActivityIndicator

logger = logging.getLogger(__name__)

Action = Literal["new_game", "ask", "declare", "forfeit", "start_tutorial", "end_tutorial"]

Effect = Literal["fact_declared", "declaration", "victory"]

LEGAL_STAGES: dict[str, frozenset[str]] = {
    "new_game": frozenset({"start", "finished"}),
    "ask": frozenset({"playing"}),
    "declare": frozenset({"playing"}),
    "forfeit": frozenset({"playing"}),
    "start_tutorial": frozenset({"start"}),
    "end_tutorial": frozenset({"tutorial"}),
}

LOADING_ERROR_TEXT = "Failed to generate the mystery. Start a new game to try again."


def message(kind: MessageKind, text: str) -> ChatMessage:
    return ChatMessage(kind=kind, text=text)


class GameSession(BaseModel):
    """One game: mystery, history, fact ledger and stage."""

    model_config = ConfigDict(frozen=True)

    stage: Stage = "start"
    mystery: Mystery | None = None
    history: tuple[ChatMessage, ...] = ()
    ledger: TruthLedger = Field(default_factory=TruthLedger)

    def append(self, *messages: ChatMessage) -> GameSession:
        return self.model_copy(update={"history": self.history + messages})

    def declare_fact(self, fact: str) -> GameSession:
        """Append an absolute-fact line and record it in the ledger."""
        return self.model_copy(update={
            "history": self.history + (message("absolute_fact", fact),),
            "ledger": self.ledger.record(fact),
        })

    def to_stage(self, stage: Stage) -> GameSession:
        return self.model_copy(update={"stage": stage})


# ── Whole-session transitions ────────────────────────────


def begin_loading() -> GameSession:
    """A fresh record: nothing carries over from the previous game."""
    return GameSession(stage="loading")


def start_playing(mystery: Mystery) -> GameSession:
    return GameSession(
        stage="playing",
        mystery=mystery,
        history=(
            message("system", f"Game start: {mystery.title}"),
            message("antagonist", mystery.surface_situation),
        ),
    )


def fail_loading() -> GameSession:
    return GameSession(
        stage="finished",
        mystery=PLACEHOLDER_MYSTERY,
        history=(message("error", LOADING_ERROR_TEXT),),
    )


# ---------------------------------------------------------------------------
# SessionStore: the single shared, latest-committed record
# ---------------------------------------------------------------------------

class SessionStore:
    """Holds the committed session plus its ephemeral companions.

    At most one action may be in flight at a time; callers enforce that.
    """

    def __init__(self, session: GameSession | None = None) -> None:
        self.current = session or GameSession()
        self.activity = ActivityIndicator()
        self.loading_log: list[str] = []
        self._effect_listeners: list[Callable[[Effect], None]] = []

    def commit(self, session: GameSession) -> GameSession:
        if session.stage != self.current.stage:
            logger.info("stage %s -> %s", self.current.stage, session.stage)
        self.current = session
        return session

    def can(self, action: Action) -> bool:
        return self.current.stage in LEGAL_STAGES[action]

    def on_effect(self, listener: Callable[[Effect], None]) -> None:
        self._effect_listeners.append(listener)

    def emit(self, effect: Effect) -> None:
        logger.debug("effect %s", effect)
        for listener in self._effect_listeners:
            listener(effect)


def view(session: GameSession, activity: ActivityIndicator | None = None) -> dict[str, Any]:
    """Presentation-facing projection; the hidden truth shows only once finished."""
    mystery = session.mystery
    result: dict[str, Any] = {
        "stage": session.stage,
        "title": mystery.title if mystery else "",
        "surface_situation": mystery.surface_situation if mystery else "",
        "magic_list": list(mystery.magic_list) if mystery else [],
        "used_facts": list(session.ledger.used_facts),
        "history": [msg.model_dump() for msg in session.history],
        "activity": activity.text if activity else None,
    }
    if mystery and session.stage == "finished":
        result["hidden_truth"] = mystery.hidden_truth
    return result
