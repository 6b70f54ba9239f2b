"""Oracle client — the Witch's voice, streamed from a text-generation backend.

The session injects an oracle matching the Oracle protocol. Every method
returns an envelope (see red_truth.stream): progress notes while the model
thinks, then one terminal payload validated into a pydantic model.

    HttpOracle — real HTTP client, supports KoboldCpp and OpenAI-compatible
                 streaming backends. Selected by provider_format.

Tests use StubOracle (defined in the test helpers) instead.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Sequence
from typing import Literal, Protocol, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from red_truth import prompts
from red_truth.ledger import TruthLedger
from red_truth.models import (
    AntagonistReply,
    ChatMessage,
    ClosingScenario,
    Mystery,
    TutorialBeat,
    TutorialContext,
    Verdict,
)
from red_truth.stream import Progress, StreamEnvelope, Terminal

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=BaseModel)


# ---------------------------------------------------------------------------
# Protocol: every oracle implementation must match these signatures
# ---------------------------------------------------------------------------

class Oracle(Protocol):
    def generate_mystery(self, theme: str) -> StreamEnvelope[Mystery]: ...

    def converse(
        self,
        hidden_truth: str,
        history: Sequence[ChatMessage],
        message: str,
        red_truth_pool: Sequence[str],
        used_facts: Sequence[str],
        magic_list: Sequence[str],
    ) -> StreamEnvelope[AntagonistReply]: ...

    def judge_hypothesis(
        self,
        hidden_truth: str,
        used_facts: Sequence[str],
        hypothesis: str,
        magic_list: Sequence[str],
        history: Sequence[ChatMessage],
    ) -> StreamEnvelope[Verdict]: ...

    def closing_scenario(
        self,
        surface_situation: str,
        hidden_truth: str,
        used_facts: Sequence[str],
        magic_list: Sequence[str],
    ) -> StreamEnvelope[ClosingScenario]: ...

    def tutorial_beat(self, context: TutorialContext) -> StreamEnvelope[TutorialBeat]: ...


# ---------------------------------------------------------------------------
# Thought splitting: <think> blocks and reasoning deltas become progress
# ---------------------------------------------------------------------------

_OPEN_TAG = "<think>"
_CLOSE_TAG = "</think>"


def _partial_suffix(text: str, tag: str) -> int:
    """Length of the longest suffix of `text` that starts `tag`."""
    for size in range(min(len(tag) - 1, len(text)), 0, -1):
        if text.endswith(tag[:size]):
            return size
    return 0


class _ThoughtSplitter:
    """Separates model thoughts from the JSON payload as chunks arrive.

    Thoughts are released one completed line at a time; tags split across
    chunk boundaries are held back until the next chunk.
    """

    def __init__(self) -> None:
        self._pending = ""
        self._thought = ""
        self._in_think = False
        self._payload: list[str] = []

    @property
    def payload(self) -> str:
        return "".join(self._payload)

    def feed(self, text: str) -> list[str]:
        notes: list[str] = []
        self._pending += text
        while self._pending:
            tag = _CLOSE_TAG if self._in_think else _OPEN_TAG
            idx = self._pending.find(tag)
            if idx == -1:
                keep = _partial_suffix(self._pending, tag)
                cut = len(self._pending) - keep
                self._route(self._pending[:cut], notes)
                self._pending = self._pending[cut:]
                break
            self._route(self._pending[:idx], notes)
            self._pending = self._pending[idx + len(tag):]
            if self._in_think:
                notes.extend(self._flush_thought())
            self._in_think = not self._in_think
        return notes

    def reason(self, text: str) -> list[str]:
        """Text from a dedicated reasoning channel (reasoning_content)."""
        self._thought += text
        return self._complete_lines()

    def close(self) -> list[str]:
        notes: list[str] = []
        self._route(self._pending, notes)
        self._pending = ""
        notes.extend(self._flush_thought())
        return notes

    def _route(self, chunk: str, notes: list[str]) -> None:
        if not chunk:
            return
        if self._in_think:
            self._thought += chunk
            notes.extend(self._complete_lines())
        else:
            self._payload.append(chunk)

    def _complete_lines(self) -> list[str]:
        *lines, self._thought = self._thought.split("\n")
        return [line.strip() for line in lines if line.strip()]

    def _flush_thought(self) -> list[str]:
        thought, self._thought = self._thought.strip(), ""
        return [thought] if thought else []


def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)
    return cleaned.strip()


def _sse_data(line: str) -> str | None:
    """Return the data field of an SSE line, or None for other lines."""
    if not line.startswith("data:"):
        return None
    return line[5:].strip()


# ---------------------------------------------------------------------------
# HttpOracle: connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["koboldcpp", "openai"]


class HttpOracle:
    """Async streaming HTTP client for text-generation backends.

    Supported formats:
      "koboldcpp"  — POST /api/extra/generate/stream   {"prompt": ...}
                     SSE events: data: {"token": "..."}
      "openai"     — POST /v1/chat/completions   {"messages": [...], "stream": true}
                     SSE events: data: {"choices": [{"delta": {...}}]}, data: [DONE]

    Args:
        provider_url:    Base URL of the backend, e.g. "http://localhost:5001".
        api_key:         Bearer token, or empty string if not required.
        provider_format: Wire format to use. Defaults to "koboldcpp".
        model:           Model identifier, used only by the openai format.
        timeout:         HTTP timeout in seconds. Defaults to 120.
        max_tokens:      Generation budget per call.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "koboldcpp",
        model: str = "",
        timeout: float = 120.0,
        max_tokens: int = 2048,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout
        self._max_tokens = max_tokens

    # -- oracle calls -------------------------------------------------------

    async def generate_mystery(self, theme: str) -> AsyncIterator[Progress | Terminal[Mystery]]:
        prompt = prompts.mystery_prompt(theme)
        async for element in self._stream("mystery", prompt, Mystery):
            yield element

    async def converse(
        self,
        hidden_truth: str,
        history: Sequence[ChatMessage],
        message: str,
        red_truth_pool: Sequence[str],
        used_facts: Sequence[str],
        magic_list: Sequence[str],
    ) -> AsyncIterator[Progress | Terminal[AntagonistReply]]:
        available = TruthLedger(used_facts=tuple(used_facts)).available(red_truth_pool)
        prompt = prompts.converse_prompt(
            hidden_truth, history, message,
            list(used_facts), available, list(magic_list),
        )
        async for element in self._stream("converse", prompt, AntagonistReply):
            yield element

    async def judge_hypothesis(
        self,
        hidden_truth: str,
        used_facts: Sequence[str],
        hypothesis: str,
        magic_list: Sequence[str],
        history: Sequence[ChatMessage],
    ) -> AsyncIterator[Progress | Terminal[Verdict]]:
        prompt = prompts.judge_prompt(
            hidden_truth, list(used_facts), hypothesis, list(magic_list), history,
        )
        async for element in self._stream("judge", prompt, Verdict):
            yield element

    async def closing_scenario(
        self,
        surface_situation: str,
        hidden_truth: str,
        used_facts: Sequence[str],
        magic_list: Sequence[str],
    ) -> AsyncIterator[Progress | Terminal[ClosingScenario]]:
        prompt = prompts.closing_prompt(
            surface_situation, hidden_truth, list(used_facts), list(magic_list),
        )
        async for element in self._stream("closing", prompt, ClosingScenario):
            yield element

    async def tutorial_beat(
        self, context: TutorialContext
    ) -> AsyncIterator[Progress | Terminal[TutorialBeat]]:
        prompt = prompts.tutorial_prompt(context)
        async for element in self._stream(f"tutorial:{context}", prompt, TutorialBeat):
            yield element

    # -- wire format --------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, prompt: str) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "openai":
            url = f"{self._base_url}/v1/chat/completions"
            body: dict = {
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": self._max_tokens,
                "stream": True,
            }
            if self._model:
                body["model"] = self._model
            return url, body

        # koboldcpp (default)
        url = f"{self._base_url}/api/extra/generate/stream"
        return url, {"prompt": prompt, "max_length": self._max_tokens}

    def _parse_event(self, data: str) -> tuple[str, str]:
        """Return (reasoning, content) text carried by one SSE event."""
        try:
            event = json.loads(data)
        except json.JSONDecodeError as e:
            raise OracleError(f"Malformed stream event from oracle backend: {data[:80]!r}") from e

        if self._format == "openai":
            choices = event.get("choices")
            if not choices:
                return "", ""
            delta = choices[0].get("delta") or {}
            reasoning = delta.get("reasoning_content") or delta.get("reasoning") or ""
            return reasoning, delta.get("content") or ""

        # koboldcpp
        return "", event.get("token") or ""

    def _parse_payload(self, stage: str, text: str, payload_type: type[P]) -> P:
        try:
            data = json.loads(_strip_fences(text))
        except json.JSONDecodeError as e:
            logger.warning("oracle stage=%s returned invalid JSON: %r", stage, text[:200])
            raise OracleError(f"Oracle returned invalid JSON for {stage}: {e}") from e
        if not isinstance(data, dict):
            raise OracleError(f"Oracle payload for {stage} must be a JSON object")
        try:
            return payload_type.model_validate(data)
        except ValidationError as e:
            raise OracleError(f"Oracle payload for {stage} does not match the schema") from e

    async def _stream(
        self, stage: str, prompt: str, payload_type: type[P]
    ) -> AsyncIterator[Progress | Terminal[P]]:
        url, body = self._build_request(prompt)
        logger.debug("oracle call stage=%s url=%s prompt_len=%d", stage, url, len(prompt))
        splitter = _ThoughtSplitter()

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                async with client.stream("POST", url, json=body, headers=self._headers()) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        data = _sse_data(line)
                        if not data:
                            continue
                        if data == "[DONE]":
                            break
                        reasoning, content = self._parse_event(data)
                        notes = splitter.reason(reasoning) if reasoning else []
                        if content:
                            notes.extend(splitter.feed(content))
                        for note in notes:
                            yield Progress(note)
        except httpx.ConnectError as e:
            raise OracleError(f"Cannot connect to oracle backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise OracleError(
                f"Oracle backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise OracleError(f"Oracle backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise OracleError(f"Oracle stream broke off: {e}") from e

        for note in splitter.close():
            yield Progress(note)

        text = splitter.payload
        logger.debug("oracle response stage=%s len=%d", stage, len(text))
        if not text.strip():
            logger.warning("oracle stage=%s stream ended without a payload", stage)
            return
        yield Terminal(self._parse_payload(stage, text, payload_type))


# ---------------------------------------------------------------------------
# OracleError: raised by HttpOracle for all connection and protocol failures
# ---------------------------------------------------------------------------

class OracleError(RuntimeError):
    """Raised when the oracle backend cannot be reached or returns garbage."""
