"""Tests for red_truth.oracle.HttpOracle: SSE parsing, thought splitting,
payload validation and error mapping."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from red_truth.models import AntagonistReply, ChatMessage, Mystery, Verdict
from red_truth.oracle import HttpOracle, OracleError
from red_truth.prompts import PromptError
from red_truth.stream import Progress, Terminal


def _sse(*events) -> str:
    lines = []
    for event in events:
        data = event if isinstance(event, str) else json.dumps(event)
        lines.append(f"data: {data}\n\n")
    return "".join(lines)


def _tokens(*tokens) -> str:
    return _sse(*({"token": t} for t in tokens))


def _deltas(*deltas) -> str:
    return _sse(*({"choices": [{"delta": d}]} for d in deltas))


class FakeBackend:
    """Replacement for AsyncClient.send: records requests, returns a canned stream."""

    def __init__(self, body: str = "", status: int = 200, error: Exception | None = None):
        self.body = body
        self.status = status
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request, **kwargs):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status, text=self.body, request=request)

    @property
    def last_body(self) -> dict:
        return json.loads(self.requests[-1].content)


def _patched(backend: FakeBackend):
    return patch("httpx.AsyncClient.send", AsyncMock(side_effect=backend))


async def _collect(envelope) -> list:
    return [element async for element in envelope]


# ---------------------------------------------------------------------------
# KoboldCpp format
# ---------------------------------------------------------------------------

class TestKoboldCpp:
    @pytest.fixture
    def oracle(self) -> HttpOracle:
        return HttpOracle(provider_url="http://localhost:5001/")

    async def test_thoughts_then_payload(self, oracle: HttpOracle) -> None:
        body = "event: message\n" + _tokens(
            "<think>Considering",
            " the door\nStill",
            "</think>",
            '{"reply": "Heh.",',
            ' "factToDeclare": "Nobody left."}',
        )
        backend = FakeBackend(body)
        with _patched(backend):
            elements = await _collect(
                oracle.converse("h", [], "Who?", ["Nobody left."], [], ["A"])
            )
        assert elements == [
            Progress("Considering the door"),
            Progress("Still"),
            Terminal(AntagonistReply(reply="Heh.", fact_to_declare="Nobody left.")),
        ]

    async def test_request_shape(self, oracle: HttpOracle) -> None:
        backend = FakeBackend(_tokens('{"title": "t", "surfaceSituation": "s", "hiddenTruth": "h"}'))
        with _patched(backend):
            elements = await _collect(oracle.generate_mystery("a lighthouse"))
        request = backend.requests[0]
        assert str(request.url) == "http://localhost:5001/api/extra/generate/stream"
        assert "a lighthouse" in backend.last_body["prompt"]
        assert backend.last_body["max_length"] == 2048
        assert "Authorization" not in request.headers
        assert elements == [Terminal(Mystery(title="t", surface_situation="s", hidden_truth="h"))]

    async def test_think_tag_split_across_chunks(self, oracle: HttpOracle) -> None:
        body = _tokens("<thi", "nk>Hidden move</th", "ink>", '{"reply": "No."}')
        with _patched(FakeBackend(body)):
            elements = await _collect(oracle.converse("h", [], "m", [], [], []))
        assert elements == [Progress("Hidden move"), Terminal(AntagonistReply(reply="No."))]

    async def test_fenced_payload(self, oracle: HttpOracle) -> None:
        body = _tokens('```json\n{"reply": "Fenced."}\n```')
        with _patched(FakeBackend(body)):
            elements = await _collect(oracle.converse("h", [], "m", [], [], []))
        assert elements == [Terminal(AntagonistReply(reply="Fenced."))]

    async def test_no_payload_means_no_terminal(self, oracle: HttpOracle) -> None:
        body = _tokens("<think>Only thinking</think>")
        with _patched(FakeBackend(body)):
            elements = await _collect(oracle.converse("h", [], "m", [], [], []))
        assert elements == [Progress("Only thinking")]

    async def test_invalid_json_raises(self, oracle: HttpOracle) -> None:
        with _patched(FakeBackend(_tokens("not json at all"))):
            with pytest.raises(OracleError, match="invalid JSON"):
                await _collect(oracle.converse("h", [], "m", [], [], []))

    async def test_schema_mismatch_raises(self, oracle: HttpOracle) -> None:
        with _patched(FakeBackend(_tokens('{"answer": "wrong key"}'))):
            with pytest.raises(OracleError, match="does not match"):
                await _collect(oracle.converse("h", [], "m", [], [], []))

    async def test_converse_prompt_uses_available_facts(self, oracle: HttpOracle) -> None:
        backend = FakeBackend(_tokens('{"reply": "r"}'))
        history = [ChatMessage(kind="human", text="Earlier question")]
        with _patched(backend):
            await _collect(oracle.converse(
                "The butler did it.", history, "New question",
                ["Fact A", "Fact B"], ["Fact A"], ["A", "B"],
            ))
        prompt = backend.last_body["prompt"]
        available = prompt.split("[Available red truths]")[1].split("[The human's new message]")[0]
        assert "- Fact B" in available
        assert "Fact A" not in available
        assert "Human: Earlier question" in prompt


# ---------------------------------------------------------------------------
# OpenAI-compatible format
# ---------------------------------------------------------------------------

class TestOpenAI:
    @pytest.fixture
    def oracle(self) -> HttpOracle:
        return HttpOracle(
            provider_url="http://localhost:8080",
            api_key="sk-test",
            provider_format="openai",
            model="witch-7b",
        )

    async def test_reasoning_and_done(self, oracle: HttpOracle) -> None:
        body = (
            _deltas(
                {"role": "assistant"},
                {"reasoning_content": "Weighing the alibi\n"},
                {"content": '{"status": "mocked", '},
                {"content": '"message": "Pathetic."}'},
            )
            + _sse({"choices": []})
            + "data: [DONE]\n\n"
            + "data: {broken\n\n"
        )
        backend = FakeBackend(body)
        with _patched(backend):
            elements = await _collect(
                oracle.judge_hypothesis("h", [], "A trick.", ["A"], [])
            )
        assert elements == [
            Progress("Weighing the alibi"),
            Terminal(Verdict(status="mocked", message="Pathetic.")),
        ]

    async def test_request_shape(self, oracle: HttpOracle) -> None:
        backend = FakeBackend(_deltas({"content": '{"message": "Welcome."}'}) + "data: [DONE]\n\n")
        with _patched(backend):
            await _collect(oracle.tutorial_beat("introduction"))
        request = backend.requests[0]
        assert str(request.url) == "http://localhost:8080/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = backend.last_body
        assert body["stream"] is True
        assert body["model"] == "witch-7b"
        assert body["messages"][0]["role"] == "user"

    async def test_reasoning_field_alias(self, oracle: HttpOracle) -> None:
        body = _deltas({"reasoning": "Plan\nMore"}, {"content": '{"reply": "x"}'})
        with _patched(FakeBackend(body)):
            elements = await _collect(oracle.converse("h", [], "m", [], [], []))
        assert elements == [
            Progress("Plan"),
            Progress("More"),
            Terminal(AntagonistReply(reply="x")),
        ]


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

class TestErrors:
    @pytest.fixture
    def oracle(self) -> HttpOracle:
        return HttpOracle(provider_url="http://localhost:5001", timeout=3)

    async def test_connect_error(self, oracle: HttpOracle) -> None:
        backend = FakeBackend(error=httpx.ConnectError("refused"))
        with _patched(backend):
            with pytest.raises(OracleError, match="Cannot connect"):
                await _collect(oracle.generate_mystery(""))

    async def test_http_status_error(self, oracle: HttpOracle) -> None:
        with _patched(FakeBackend(status=503)):
            with pytest.raises(OracleError, match="HTTP 503"):
                await _collect(oracle.generate_mystery(""))

    async def test_timeout(self, oracle: HttpOracle) -> None:
        backend = FakeBackend(error=httpx.ReadTimeout("slow"))
        with _patched(backend):
            with pytest.raises(OracleError, match="timed out after 3s"):
                await _collect(oracle.generate_mystery(""))

    async def test_malformed_event(self, oracle: HttpOracle) -> None:
        with _patched(FakeBackend("data: {not json\n\n")):
            with pytest.raises(OracleError, match="Malformed stream event"):
                await _collect(oracle.generate_mystery(""))

    async def test_unknown_tutorial_context(self, oracle: HttpOracle) -> None:
        with pytest.raises(PromptError, match="Unknown tutorial context"):
            await _collect(oracle.tutorial_beat("epilogue"))
