import asyncio
from types import SimpleNamespace

import pytest

from relaycord.config.models import AccessPolicy
from relaycord.config.settings import StreamSettings
from relaycord.config.store import ConfigStore


class FakeMessage:
    """Stand-in for discord.Message as used by the reconciler."""

    def __init__(self, channel, content="", *, reply_to=None):
        self.channel = channel
        self.content = content
        self.reply_to = reply_to
        self.edits = []
        self.fail_edit = False
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0

    async def edit(self, *, content):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail_edit:
                raise RuntimeError("404 Not Found (error code: 10008): Unknown Message")
            self.content = content
            self.edits.append(content)
        finally:
            self.in_flight -= 1

    async def reply(self, content):
        return await self.channel.create(content, reply_to=self)


class FakeChannel:
    def __init__(self, channel_id=111, name="general"):
        self.id = channel_id
        self.name = name
        self.messages = []
        self.fail_sends = 0

    async def send(self, content):
        return await self.create(content)

    async def create(self, content, reply_to=None):
        if self.fail_sends:
            self.fail_sends -= 1
            raise RuntimeError("503 Service Unavailable")
        message = FakeMessage(self, content, reply_to=reply_to)
        self.messages.append(message)
        return message

    @property
    def contents(self):
        return [m.content for m in self.messages]


class FakeInbound(FakeMessage):
    """An inbound Discord message with author, guild, mentions and reactions."""

    def __init__(self, channel, content, *, author_id=42, guild=None, mentions=(), bot=False):
        super().__init__(channel, content)
        self.author = SimpleNamespace(id=author_id, bot=bot, name=f"user{author_id}", display_name=f"User {author_id}")
        self.guild = guild
        self.mentions = list(mentions)
        self.reactions = []

    async def add_reaction(self, emoji):
        self.reactions.append(("add", emoji))

    async def remove_reaction(self, emoji, member):
        self.reactions.append(("remove", emoji))


class FakeHost:
    """Assistant host emitting canned fragments."""

    def __init__(self, fragments=(), error=None):
        self.fragments = list(fragments)
        self.error = error
        self.calls = []
        self.history = []
        self.ensured = []

    async def inject(self, session, message, *, on_stream=None, **meta):
        self.calls.append((session, message, meta))
        for fragment in self.fragments:
            if on_stream is not None:
                on_stream({"type": "text", "content": fragment})
            await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return "".join(self.fragments)

    def log_message(self, session, text, **meta):
        self.history.append((session, text, meta))

    def ensure_session(self, session, channel_meta):
        self.ensured.append(session)


@pytest.fixture
def store(tmp_path):
    return ConfigStore(tmp_path / "config.json")


@pytest.fixture
def open_store(store):
    with store.transaction() as config:
        config.default_access = AccessPolicy.ALL
    return store


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def origin(channel):
    return FakeMessage(channel, "question")


@pytest.fixture
def slow_settings():
    """Coalescing timers long enough never to fire during a test."""
    return StreamSettings(coalesce_delay=30)
