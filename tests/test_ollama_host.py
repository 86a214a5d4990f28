import orjson
import pytest
import requests

from relaycord.errors import InjectionFailure
from relaycord.host.ollama_host import MAX_HISTORY, OllamaHost
from relaycord.host.sessions import default_context, ensure_session_context


class FakeResponse:
    def __init__(self, lines, status_error=None):
        self.lines = lines
        self.status_error = status_error

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status_error is not None:
            raise self.status_error

    def iter_lines(self):
        yield from self.lines


def chat_lines(*pieces):
    lines = [orjson.dumps({"message": {"role": "assistant", "content": p}, "done": False}) for p in pieces]
    lines.append(b"")
    lines.append(orjson.dumps({"message": {"role": "assistant", "content": ""}, "done": True}))
    return lines


@pytest.fixture
def posted(monkeypatch):
    calls = []
    responses = []

    def fake_post(url, json=None, stream=False, timeout=None):
        calls.append({"url": url, "json": json, "stream": stream, "timeout": timeout})
        return responses.pop(0)

    monkeypatch.setattr(requests, "post", fake_post)
    return calls, responses


@pytest.fixture
def host(tmp_path):
    return OllamaHost("test-model", "http://ollama.test/api/chat", system_prompt="Be brief.", sessions_dir=tmp_path)


@pytest.mark.asyncio
async def test_inject_streams_pieces_and_remembers(host, posted):
    calls, responses = posted
    responses.append(FakeResponse(chat_lines("Hel", "lo")))
    received = []

    text = await host.inject("s", "hi", on_stream=received.append, **{"from": "alice"})

    assert text == "Hello"
    assert [m["content"] for m in received] == ["Hel", "lo"]
    assert all(m["type"] == "text" for m in received)
    payload = calls[0]["json"]
    assert payload["model"] == "test-model"
    assert payload["stream"] is True
    assert payload["messages"] == [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "alice: hi"},
    ]

    responses.append(FakeResponse(chat_lines("again")))
    await host.inject("s", "more")
    history = calls[1]["json"]["messages"]
    assert [m["role"] for m in history] == ["system", "user", "assistant", "user"]
    assert history[2]["content"] == "Hello"


@pytest.mark.asyncio
async def test_logged_messages_join_history(host, posted):
    calls, responses = posted
    host.log_message("s", "side remark", **{"from": "bob"})
    responses.append(FakeResponse(chat_lines("ok")))
    await host.inject("s", "question")
    contents = [m["content"] for m in calls[0]["json"]["messages"]]
    assert contents[1:] == ["bob: side remark", "question"]


def test_history_is_capped(host):
    for i in range(MAX_HISTORY + 10):
        host.log_message("s", str(i))
    history = host._history["s"]
    assert len(history) == MAX_HISTORY
    assert history[-1]["content"] == str(MAX_HISTORY + 9)


@pytest.mark.asyncio
async def test_error_field_raises(host, posted):
    _, responses = posted
    responses.append(FakeResponse([orjson.dumps({"error": "model not found"})]))
    with pytest.raises(InjectionFailure) as err:
        await host.inject("s", "hi")
    assert err.value.session == "s"
    assert "model not found" in str(err.value)
    assert "s" not in host._history or host._history["s"] == []


@pytest.mark.asyncio
async def test_http_error_raises(host, posted):
    _, responses = posted
    responses.append(FakeResponse([], status_error=requests.HTTPError("500 Server Error")))
    with pytest.raises(InjectionFailure):
        await host.inject("s", "hi")


@pytest.mark.asyncio
async def test_malformed_stream_raises_after_earlier_pieces(host, posted):
    _, responses = posted
    responses.append(FakeResponse(chat_lines("partial")[:1] + [b"{oops"]))
    received = []
    with pytest.raises(InjectionFailure):
        await host.inject("s", "hi", on_stream=received.append)
    assert [m["content"] for m in received] == ["partial"]


@pytest.mark.asyncio
async def test_session_context_replaces_system_prompt(host, posted, tmp_path):
    calls, responses = posted
    host.ensure_session("discord-1", {"channel_name": "general", "guild_name": "Home"})
    responses.append(FakeResponse(chat_lines("ok")))
    await host.inject("discord-1", "hi")
    system = calls[0]["json"]["messages"][0]["content"]
    assert 'Discord server "Home", channel #general' in system


def test_session_context_is_written_once(tmp_path):
    path = ensure_session_context(tmp_path / "sessions", "discord-1", {})
    assert "direct message" in path.read_text(encoding="utf-8")
    path.write_text("custom", encoding="utf-8")
    ensure_session_context(tmp_path / "sessions", "discord-1", {"guild_name": "Home"})
    assert path.read_text(encoding="utf-8") == "custom"


def test_default_context_mentions_limit():
    assert "2000 character limit" in default_context({})
