"""Streamed oracle responses: progress notes followed by one terminal value.

Every oracle call returns an envelope — an async iterator yielding zero or
more Progress elements and then exactly one Terminal:

    async for element in envelope:
        Progress(note="Considering the locked door...")
        Progress(note="The butler's alibi holds...")
        Terminal(value=AntagonistReply(...))

aggregate() folds an envelope into the UI-facing ActivityIndicator and
returns the terminal value. Failures are split in two:

    TransportFailure    — iterating the envelope raised
    EmptyResultFailure  — the envelope ended without a terminal element
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")

ACTIVITY_MAX_LENGTH = 80
THINKING_PREFIX = "The Witch is thinking... "


@dataclass(frozen=True)
class Progress:
    note: str


@dataclass(frozen=True)
class Terminal(Generic[T]):
    value: T


StreamEnvelope = AsyncIterator[Union[Progress, Terminal[T]]]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class StreamFailure(RuntimeError):
    """Base class for envelopes that did not deliver a terminal value."""


class TransportFailure(StreamFailure):
    """The envelope raised or could not be iterated."""


class EmptyResultFailure(StreamFailure):
    """The envelope completed without ever yielding a terminal element."""


# ---------------------------------------------------------------------------
# ActivityIndicator: ephemeral "what is the Witch doing" line
# ---------------------------------------------------------------------------

def truncate(note: str, limit: int = ACTIVITY_MAX_LENGTH) -> str:
    """Cut a note to the display budget, appending '...' when cut."""
    if len(note) <= limit:
        return note
    return note[:limit] + "..."


class ActivityIndicator:
    """Holds the current activity text; None means idle.

    Listeners are called with the new text (or None) on every change.
    """

    def __init__(self, prefix: str = THINKING_PREFIX, limit: int = ACTIVITY_MAX_LENGTH) -> None:
        self._prefix = prefix
        self._limit = limit
        self._listeners: list[Callable[[str | None], None]] = []
        self.text: str | None = None
        self.notes_seen = 0

    def subscribe(self, listener: Callable[[str | None], None]) -> None:
        self._listeners.append(listener)

    def announce(self, text: str) -> None:
        """Show an intent line before any progress arrives."""
        self.notes_seen = 0
        self._set(text)

    def update(self, note: str) -> None:
        self.notes_seen += 1
        self._set(self._prefix + truncate(note, self._limit))

    def clear(self) -> None:
        self._set(None)

    def _set(self, text: str | None) -> None:
        self.text = text
        for listener in self._listeners:
            listener(text)


# ---------------------------------------------------------------------------
# aggregate
# ---------------------------------------------------------------------------

_MISSING = object()


async def aggregate(
    envelope: StreamEnvelope[T],
    activity: ActivityIndicator,
    on_progress: Callable[[str], None] | None = None,
    expect: type[T] | None = None,
) -> T:
    """Consume an envelope in order and return its terminal value.

    Progress notes go to `activity` (and `on_progress`, if given) in emission
    order. Consumption stops at the first terminal element; the activity is
    cleared as soon as consumption ends, whatever the outcome. A terminal
    value that is not an instance of `expect` is a transport failure.
    """
    result: object = _MISSING
    try:
        async for element in envelope:
            if isinstance(element, Terminal):
                result = element.value
                break
            if not isinstance(element, Progress):
                raise TypeError(f"Unexpected envelope element {type(element).__name__}")
            logger.debug("progress note len=%d", len(element.note))
            activity.update(element.note)
            if on_progress is not None:
                on_progress(element.note)
    except Exception as e:
        raise TransportFailure(str(e) or type(e).__name__) from e
    finally:
        activity.clear()
        aclose = getattr(envelope, "aclose", None)
        if aclose is not None:
            await aclose()

    if result is _MISSING:
        raise EmptyResultFailure("Stream ended without a terminal result")
    if expect is not None and not isinstance(result, expect):
        raise TransportFailure(
            f"Expected a {expect.__name__} terminal, got {type(result).__name__}"
        )
    return result  # type: ignore[return-value]
