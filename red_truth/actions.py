"""Player actions: new game, ask, declare a hypothesis, forfeit.

Each handler follows the same turn shape:
  1. Check the stage (and input) — an illegal call returns the current record.
  2. Commit the provisional record (the player's line appears at once).
  3. Drive the oracle envelope through aggregate().
  4. Commit the confirming record built from the terminal payload, or the
     recovery record when the envelope failed.

Failure policy per action:
  new_game  — fatal: finished + placeholder mystery + one error line
  ask       — recovered: one error line, stage stays playing
  declare   — recovered: one error line, stage stays playing
  forfeit   — never fails: a fixed taunt and the hidden truth stand in;
              the reveal is announced with a fact_declared effect
"""

from __future__ import annotations

import logging

from red_truth.models import (
    VERDICT_STATUSES,
    AntagonistReply,
    ClosingScenario,
    Mystery,
    Verdict,
)
from red_truth.oracle import Oracle
from red_truth.session import (
    Effect,
    GameSession,
    SessionStore,
    begin_loading,
    fail_loading,
    message,
    start_playing,
)
from red_truth.stream import StreamFailure, aggregate

logger = logging.getLogger(__name__)

ASK_INTENT = "The Witch is listening to your words..."
DECLARE_INTENT = "The Witch savours your blue truth..."
FORFEIT_INTENT = "The Witch laughs at your surrender and rebuilds the truth..."
LOADING_INTENT = "The Witch is weaving her board..."
BOARD_READY_NOTE = "The board is assembled. The door to the truth opens..."

ASK_ERROR_TEXT = "An error occurred while speaking with the Witch."
DECLARE_ERROR_TEXT = "An error occurred during the duel of truths."
UNRECOGNIZED_VERDICT_TEXT = "The Witch answered with a verdict this game does not recognise."

DEFAULT_REFUTE_TAUNT = "Hmph! Your flimsy truth shatters before this red truth!"
DEFAULT_CONCESSION = "I resign. I cannot cut down your blue truth."
VICTORY_TEXT = "The Witch fades away, her very existence denied. You win."
FORFEIT_NOTE = "The player has forfeited the game."
FALLBACK_TAUNT = (
    "Heh heh heh... So your feeble mind could never break my board after all. "
    "Very well, in my mercy I shall show you the Witch's truth."
)


class UnrecognizedVerdict(ValueError):
    """A verdict whose status or shape is outside the known protocol."""


# ── new game ─────────────────────────────────────────────


async def new_game(store: SessionStore, oracle: Oracle, theme: str = "") -> GameSession:
    """Replace the session wholesale and generate a mystery.

    An empty theme lets the oracle pick one at random.
    """
    if not store.can("new_game"):
        logger.debug("new_game ignored in stage %s", store.current.stage)
        return store.current

    store.loading_log = []
    store.commit(begin_loading())
    store.activity.announce(LOADING_INTENT)
    try:
        mystery = await aggregate(
            oracle.generate_mystery(theme.strip()),
            store.activity,
            on_progress=store.loading_log.append,
            expect=Mystery,
        )
    except StreamFailure as e:
        logger.warning("Mystery generation failed: %s", e)
        return store.commit(fail_loading())

    store.loading_log.append(BOARD_READY_NOTE)
    logger.info("Mystery ready: %r (%d magic items)", mystery.title, len(mystery.magic_list))
    return store.commit(start_playing(mystery))


# ── ask ──────────────────────────────────────────────────


async def ask(store: SessionStore, oracle: Oracle, text: str) -> GameSession:
    """Question the Witch; she may answer with a new absolute fact."""
    if not text.strip() or not store.can("ask"):
        logger.debug("ask ignored in stage %s", store.current.stage)
        return store.current

    before = store.current
    mystery = before.mystery
    assert mystery is not None
    pending = store.commit(before.append(message("human", text)))

    store.activity.announce(ASK_INTENT)
    try:
        answer = await aggregate(
            oracle.converse(
                mystery.hidden_truth,
                before.history,
                text,
                mystery.red_truths,
                before.ledger.used_facts,
                mystery.magic_list,
            ),
            store.activity,
            expect=AntagonistReply,
        )
    except StreamFailure as e:
        logger.warning("Ask failed: %s", e)
        return store.commit(pending.append(message("error", ASK_ERROR_TEXT)))

    session = pending
    if answer.fact_to_declare:
        session = session.declare_fact(answer.fact_to_declare)
    session = store.commit(session.append(message("antagonist", answer.reply)))
    if answer.fact_to_declare:
        store.emit("fact_declared")
    return session


# ── declare hypothesis ───────────────────────────────────


def apply_verdict(session: GameSession, verdict: Verdict) -> tuple[GameSession, Effect | None]:
    """Return the record after `verdict` and the effect it triggers.

    Raises UnrecognizedVerdict for an unknown status, or a known status
    missing the field its branch needs.
    """
    status = verdict.status
    if status not in VERDICT_STATUSES:
        raise UnrecognizedVerdict(f"Unknown verdict status {status!r}")

    if status == "refuted":
        if not verdict.red_truth:
            raise UnrecognizedVerdict("Refuted verdict without a red truth")
        session = session.declare_fact(verdict.red_truth)
        return session.append(message("antagonist", verdict.message or DEFAULT_REFUTE_TAUNT)), "fact_declared"

    if status == "accepted":
        session = session.append(
            message("antagonist", verdict.message or DEFAULT_CONCESSION),
            message("system", VICTORY_TEXT),
        )
        return session.to_stage("finished"), "victory"

    # mocked | incomplete
    if not verdict.message:
        raise UnrecognizedVerdict(f"{status.capitalize()} verdict without a message")
    return session.append(message("antagonist", verdict.message)), None


async def declare_hypothesis(store: SessionStore, oracle: Oracle, text: str) -> GameSession:
    """Declare a blue truth and let the Witch judge it."""
    if not text.strip() or not store.can("declare"):
        logger.debug("declare ignored in stage %s", store.current.stage)
        return store.current

    before = store.current
    mystery = before.mystery
    assert mystery is not None
    pending = store.commit(before.append(message("hypothesis", text)))
    store.emit("declaration")

    store.activity.announce(DECLARE_INTENT)
    try:
        verdict = await aggregate(
            oracle.judge_hypothesis(
                mystery.hidden_truth,
                before.ledger.used_facts,
                text,
                mystery.magic_list,
                before.history,
            ),
            store.activity,
            expect=Verdict,
        )
    except StreamFailure as e:
        logger.warning("Hypothesis judgement failed: %s", e)
        return store.commit(pending.append(message("error", DECLARE_ERROR_TEXT)))

    try:
        session, effect = apply_verdict(pending, verdict)
    except UnrecognizedVerdict as e:
        logger.warning("%s (message withheld: %r)", e, verdict.message)
        return store.commit(pending.append(message("error", UNRECOGNIZED_VERDICT_TEXT)))

    logger.info("Verdict: %s", verdict.status)
    session = store.commit(session)
    if effect:
        store.emit(effect)
    return session


# ── forfeit ──────────────────────────────────────────────


async def forfeit(store: SessionStore, oracle: Oracle) -> GameSession:
    """Give up; the Witch reveals her truth and the game ends."""
    if not store.can("forfeit"):
        logger.debug("forfeit ignored in stage %s", store.current.stage)
        return store.current

    before = store.current
    mystery = before.mystery
    assert mystery is not None

    taunt, revealed = FALLBACK_TAUNT, mystery.hidden_truth
    store.activity.announce(FORFEIT_INTENT)
    try:
        closing = await aggregate(
            oracle.closing_scenario(
                mystery.surface_situation,
                mystery.hidden_truth,
                before.ledger.used_facts,
                mystery.magic_list,
            ),
            store.activity,
            expect=ClosingScenario,
        )
        taunt, revealed = closing.taunt, closing.magical_truth
    except StreamFailure as e:
        logger.warning("Closing scenario failed, revealing the hidden truth: %s", e)

    session = before.append(
        message("system", FORFEIT_NOTE),
        message("antagonist", taunt),
        message("antagonist_truth", revealed),
    )
    session = store.commit(session.to_stage("finished"))
    store.emit("fact_declared")
    return session
