"""Core domain models.

Every record here is immutable: the session never edits a message, a mystery
or a payload after creating it, it builds new records instead.
Pydantic is used for validation at the oracle boundary, where payloads arrive
as camelCase JSON (``surfaceSituation``, ``factToDeclare``...).
"""

from __future__ import annotations

from typing import Literal, get_args

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MessageKind = Literal[
    "human",
    "antagonist",
    "system",
    "error",
    "absolute_fact",
    "hypothesis",
    "antagonist_truth",
    "tutorial_note",
]

Stage = Literal["start", "loading", "tutorial", "playing", "finished"]

VerdictStatus = Literal["refuted", "accepted", "mocked", "incomplete"]

VERDICT_STATUSES: tuple[str, ...] = get_args(VerdictStatus)

TutorialContext = Literal["introduction", "response_to_question", "defeat"]


class _Record(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Mystery(_Record):
    """One generated board: what the player sees and what the Witch knows."""

    title: str
    surface_situation: str
    hidden_truth: str
    red_truths: tuple[str, ...] = ()
    magic_list: tuple[str, ...] = ()


class ChatMessage(_Record):
    """A single entry in the session's append-only history."""

    kind: MessageKind
    text: str


# ---------------------------------------------------------------------------
# Oracle payloads: the terminal value of each envelope
# ---------------------------------------------------------------------------

class AntagonistReply(_Record):
    reply: str
    fact_to_declare: str | None = Field(
        default=None,
        validation_alias=AliasChoices("factToDeclare", "redTruthToDeclare", "fact_to_declare"),
    )


class Verdict(_Record):
    """Judgement of a hypothesis.

    ``status`` stays a plain string: a value outside VERDICT_STATUSES is a
    protocol mismatch the action handler reports, not a validation error.
    """

    status: str
    red_truth: str | None = None
    message: str | None = None


class ClosingScenario(_Record):
    taunt: str
    magical_truth: str


class TutorialBeat(_Record):
    message: str
    red_truth: str | None = None


PLACEHOLDER_MYSTERY = Mystery(
    title="Error",
    surface_situation="The connection to the Witch was severed. The board could not be built.",
    hidden_truth="",
)
