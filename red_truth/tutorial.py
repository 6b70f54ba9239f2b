"""Guided tutorial: a fixed script walked one step at a time.

Step kinds and their single advancement rule:

    ScriptedStep  — push a tutorial note, advance after step_delay
    OracleStep    — ask the oracle for a tutorial beat, advance on its terminal
    ActionStep    — wait for the player to trigger exactly this action

The script is linear: no branching, no skipping, the index only grows.
Reaching the end of the script hands control back through `on_end`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from red_truth.models import ChatMessage, MessageKind, TutorialBeat, TutorialContext
from red_truth.oracle import Oracle
from red_truth.session import Effect
from red_truth.stream import ActivityIndicator, StreamFailure, aggregate

logger = logging.getLogger(__name__)

TutorialAction = Literal["ask", "declare", "end"]

WATCHING_INTENT = "The Witch is watching your every move..."
TUTORIAL_ERROR_TEXT = "An error occurred during the tutorial."


@dataclass(frozen=True)
class ScriptedStep:
    text: str


@dataclass(frozen=True)
class OracleStep:
    context: TutorialContext


@dataclass(frozen=True)
class ActionStep:
    action: TutorialAction
    prefill: str = ""


Step = ScriptedStep | OracleStep | ActionStep

TUTORIAL_SCRIPT: tuple[Step, ...] = (
    ScriptedStep(
        "Welcome to the tutorial. Your goal is to win a duel of logic against the Witch."
    ),
    OracleStep("introduction"),
    ScriptedStep(
        "The Witch has presented her mystery. First, use a question to gather "
        "information. The input below is filled in for you; press [Ask]."
    ),
    ActionStep("ask", prefill="Aren't you the culprit?"),
    OracleStep("response_to_question"),
    ScriptedStep(
        "The Witch declared a red truth. A red truth is an absolute fact of the "
        "game: none of your reasoning may contradict it."
    ),
    ScriptedStep(
        "Her logic has a hole. 'The Witch does not lie' only holds if she really "
        "is a witch. Time to strike back by declaring your reasoning as a blue truth."
    ),
    ActionStep(
        "declare",
        prefill=(
            "'The Witch does not lie' is true. But you are not a witch, "
            "so that sentence does not apply to you."
        ),
    ),
    OracleStep("defeat"),
    ScriptedStep(
        "Congratulations! You brought the Witch to her knees and seized the truth. "
        "You are ready to challenge a real board."
    ),
    ActionStep("end"),
)


class TutorialSequencer:
    """Runs TUTORIAL_SCRIPT against an oracle.

    run() advances through automatic steps and stops at the first action
    step; trigger() releases that step when the named action matches.
    """

    def __init__(
        self,
        oracle: Oracle,
        script: tuple[Step, ...] = TUTORIAL_SCRIPT,
        step_delay: float = 1.0,
        on_end: Callable[[], None] | None = None,
        on_effect: Callable[[Effect], None] | None = None,
        activity: ActivityIndicator | None = None,
    ) -> None:
        self._oracle = oracle
        self._script = script
        self._step_delay = step_delay
        self._on_end = on_end
        self._on_effect = on_effect
        self._index = 0
        self.activity = activity or ActivityIndicator()
        self.history: tuple[ChatMessage, ...] = ()
        self.awaiting: TutorialAction | None = None
        self.input_text = ""
        self.finished = False

    @property
    def index(self) -> int:
        return self._index

    @property
    def step(self) -> Step | None:
        if self._index < len(self._script):
            return self._script[self._index]
        return None

    async def run(self) -> None:
        """Advance until an action step blocks or the script ends."""
        while not self.finished:
            step = self.step
            if step is None:
                self._finish()
                return
            if isinstance(step, ActionStep):
                self.awaiting = step.action
                self.input_text = step.prefill
                logger.debug("tutorial step %d awaits %s", self._index, step.action)
                return
            if isinstance(step, ScriptedStep):
                self._push("tutorial_note", step.text)
                await asyncio.sleep(self._step_delay)
            else:
                await self._oracle_beat(step.context)
            self._advance()

    async def trigger(self, action: str) -> bool:
        """Perform the gated action. Any other action is ignored."""
        if self.awaiting is None or action != self.awaiting:
            logger.debug("tutorial ignored %s (awaiting %s)", action, self.awaiting)
            return False

        text, self.input_text = self.input_text, ""
        self.awaiting = None
        if action == "ask":
            self._push("human", text)
        elif action == "declare":
            self._push("hypothesis", text)
            self._emit("declaration")
        self._advance()

        if action != "end":
            await asyncio.sleep(self._step_delay / 2)
        await self.run()
        return True

    def view(self) -> dict[str, Any]:
        return {
            "index": self._index,
            "history": [msg.model_dump() for msg in self.history],
            "awaiting": self.awaiting,
            "input_text": self.input_text,
            "activity": self.activity.text,
            "finished": self.finished,
        }

    async def _oracle_beat(self, context: TutorialContext) -> None:
        self.activity.announce(WATCHING_INTENT)
        try:
            beat = await aggregate(
                self._oracle.tutorial_beat(context), self.activity, expect=TutorialBeat,
            )
        except StreamFailure as e:
            logger.warning("Tutorial beat %s failed: %s", context, e)
            self._push("error", TUTORIAL_ERROR_TEXT)
            return
        self._push("antagonist", beat.message)
        if beat.red_truth:
            self._push("absolute_fact", beat.red_truth)
            self._emit("fact_declared")

    def _push(self, kind: MessageKind, text: str) -> None:
        self.history = self.history + (ChatMessage(kind=kind, text=text),)

    def _advance(self) -> None:
        self._index += 1

    def _emit(self, effect: Effect) -> None:
        if self._on_effect is not None:
            self._on_effect(effect)

    def _finish(self) -> None:
        self.finished = True
        logger.info("tutorial finished after %d steps", self._index)
        if self._on_end is not None:
            self._on_end()
