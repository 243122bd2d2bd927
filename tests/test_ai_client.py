"""Tests for the OpenAI-compatible AI client."""

from __future__ import annotations

from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Iterable, cast

import httpx
import pytest

from openai import AsyncOpenAI

from diffsleuth.ai.client import AIClient, ClientSettings
from diffsleuth.ai.orchestration.cancellation import CancellationToken, CancellationTokenSource
from diffsleuth.ai.orchestration.dispatcher import RequestDispatcher
from diffsleuth.ai.orchestration.errors import CancellationError, ProviderError
from diffsleuth.ai.orchestration.types import Message, TextChunk, ToolCallChunk, ToolCallRequest
from diffsleuth.services.settings import Settings


@dataclass
class _FakeEvent:
    """Simple structure emulating ChatCompletionStreamEvent attributes."""

    type: str
    delta: str | None = None
    name: str | None = None
    index: int | None = None
    arguments: str | None = None
    id: str | None = None


class _FakeStream:
    def __init__(self, events: Iterable[_FakeEvent], snapshot: Any = None):
        self._iterator = iter(list(events))
        self.current_completion_snapshot = snapshot

    def __aiter__(self) -> "_FakeStream":
        return self

    async def __anext__(self) -> _FakeEvent:
        try:
            return next(self._iterator)
        except StopIteration as exc:
            raise StopAsyncIteration from exc


class _FakeStreamContext:
    def __init__(self, owner: "_FakeCompletions"):
        self._owner = owner

    async def __aenter__(self) -> _FakeStream:
        if self._owner.failures:
            raise self._owner.failures.pop(0)
        return _FakeStream(self._owner.events, self._owner.snapshot)

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self._owner.closed += 1
        return False


class _FakeCompletions:
    def __init__(
        self,
        events: Iterable[_FakeEvent],
        *,
        failures: Iterable[BaseException] = (),
        snapshot: Any = None,
    ):
        self.events = list(events)
        self.failures = list(failures)
        self.snapshot = snapshot
        self.calls: list[dict[str, Any]] = []
        self.closed = 0

    def stream(self, **kwargs: Any) -> _FakeStreamContext:
        self.calls.append(kwargs)
        return _FakeStreamContext(self)


def _make_client(completions: _FakeCompletions, **overrides: Any) -> AIClient:
    fake = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    settings = ClientSettings(
        base_url="http://local",
        api_key="test",
        model="stub-model",
        retry_min_seconds=0,
        retry_max_seconds=0,
        **overrides,
    )
    return AIClient(settings, client=cast(AsyncOpenAI, fake))


async def _collect(client: AIClient, token: CancellationToken | None = None) -> list[Any]:
    stream = await client.send_request(
        [{"role": "user", "content": "hi"}],
        [{"type": "function", "function": {"name": "read_file"}}],
        token or CancellationToken.none(),
    )
    try:
        return [chunk async for chunk in stream]
    finally:
        await stream.aclose()


@pytest.mark.asyncio
async def test_send_request_normalizes_delta_and_tool_events() -> None:
    completions = _FakeCompletions(
        [
            _FakeEvent(type="content.delta", delta="Looking "),
            _FakeEvent(type="tool_calls.function.arguments.delta", name="read_file", index=0, arguments="{"),
            _FakeEvent(type="content.delta", delta="closer"),
            _FakeEvent(
                type="tool_calls.function.arguments.done",
                name="read_file",
                index=0,
                arguments='{"file_path": "a.py"}',
                id="call-abc",
            ),
            _FakeEvent(type="content.done"),
        ]
    )
    client = _make_client(completions)

    chunks = await _collect(client)

    assert chunks == [
        TextChunk("Looking "),
        TextChunk("closer"),
        ToolCallChunk(call_id="call-abc", name="read_file", arguments='{"file_path": "a.py"}'),
    ]
    assert completions.closed == 1


@pytest.mark.asyncio
async def test_payload_carries_model_tools_and_temperature() -> None:
    completions = _FakeCompletions([])
    client = _make_client(completions, temperature=0.1, metadata={"run": "ci"})

    await _collect(client)

    payload = completions.calls[0]
    assert payload["model"] == "stub-model"
    assert payload["messages"] == [{"role": "user", "content": "hi"}]
    assert payload["tools"][0]["function"]["name"] == "read_file"
    assert payload["temperature"] == 0.1
    assert payload["metadata"] == {"run": "ci"}


@pytest.mark.asyncio
async def test_tool_call_id_from_snapshot() -> None:
    snapshot = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(tool_calls=[SimpleNamespace(id="snap-1")]))]
    )
    completions = _FakeCompletions(
        [_FakeEvent(type="tool_calls.function.arguments.done", name="list_directory", index=0, arguments="{}")],
        snapshot=snapshot,
    )

    chunks = await _collect(_make_client(completions))

    assert chunks == [ToolCallChunk(call_id="snap-1", name="list_directory", arguments="{}")]


@pytest.mark.asyncio
async def test_tool_call_id_falls_back_to_index() -> None:
    completions = _FakeCompletions(
        [_FakeEvent(type="tool_calls.function.arguments.done", name="find_symbol", index=2, arguments=None)]
    )

    chunks = await _collect(_make_client(completions))

    assert chunks == [ToolCallChunk(call_id="call_2", name="find_symbol", arguments="{}")]


@pytest.mark.asyncio
async def test_retries_transient_open_failures() -> None:
    completions = _FakeCompletions(
        [_FakeEvent(type="content.delta", delta="ok")],
        failures=[httpx.ConnectTimeout("slow"), httpx.ReadTimeout("slower")],
    )

    chunks = await _collect(_make_client(completions, max_retries=3))

    assert chunks == [TextChunk("ok")]
    assert len(completions.calls) == 3


@pytest.mark.asyncio
async def test_gives_up_after_max_retries() -> None:
    completions = _FakeCompletions([], failures=[httpx.ConnectTimeout("down")] * 5)

    with pytest.raises(ProviderError) as excinfo:
        await _collect(_make_client(completions, max_retries=2))

    assert len(completions.calls) == 2
    assert isinstance(excinfo.value.__cause__, httpx.ConnectTimeout)


@pytest.mark.asyncio
async def test_non_retryable_errors_fail_fast() -> None:
    completions = _FakeCompletions([], failures=[ValueError("bad request shape")])

    with pytest.raises(ProviderError, match="bad request shape"):
        await _collect(_make_client(completions))

    assert len(completions.calls) == 1


@pytest.mark.asyncio
async def test_cancelled_token_prevents_request() -> None:
    completions = _FakeCompletions([])
    source = CancellationTokenSource()
    source.cancel()

    with pytest.raises(CancellationError):
        await _collect(_make_client(completions), source.token)

    assert completions.calls == []


@pytest.mark.asyncio
async def test_dispatcher_consumes_client_stream() -> None:
    completions = _FakeCompletions(
        [
            _FakeEvent(type="content.delta", delta="No issues"),
            _FakeEvent(type="content.delta", delta=" found"),
        ]
    )
    client = _make_client(completions, supports_system_role=False)
    request = ToolCallRequest(messages=(Message.system("rules"), Message.user("diff")))

    response = await RequestDispatcher().send(client, request, timeout_ms=1_000)

    assert response.content == "No issues found"
    assert completions.calls[0]["messages"][0] == {"role": "assistant", "content": "rules"}
    assert completions.closed == 1


@pytest.mark.asyncio
async def test_empty_messages_rejected() -> None:
    client = _make_client(_FakeCompletions([]))

    with pytest.raises(ValueError):
        await client.send_request([], [], CancellationToken.none())


@pytest.mark.asyncio
async def test_aclose_closes_underlying_client() -> None:
    closed: list[bool] = []

    async def _close() -> None:
        closed.append(True)

    fake = SimpleNamespace(close=_close)
    client = AIClient(
        ClientSettings(base_url="http://local", api_key="test", model="stub"),
        client=cast(AsyncOpenAI, fake),
    )

    await client.aclose()

    assert closed == [True]


@pytest.mark.parametrize("request_timeout_seconds", [60, 300, 600])
def test_http_read_timeout_outlasts_request_timeout(request_timeout_seconds: int) -> None:
    settings = Settings(api_key="k", request_timeout_seconds=request_timeout_seconds).clamped()
    client = AIClient(settings.to_client_settings())

    timeout = client._client.timeout

    assert isinstance(timeout, httpx.Timeout)
    assert timeout.read is None or timeout.read > settings.request_timeout_ms / 1000
    assert timeout.connect == settings.connect_timeout


def test_default_read_timeout_is_unbounded() -> None:
    client = AIClient(ClientSettings(base_url="http://local", api_key="test", model="stub"))

    assert client._client.timeout.read is None
    assert client._client.timeout.connect == 10.0
