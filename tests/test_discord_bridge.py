import asyncio
from types import SimpleNamespace

import discord
import pytest

from relaycord.discord_bot.discord_bridge import ERROR_REPLY, NO_SESSION_REPLY, DiscordBridge
from relaycord.errors import AuthenticationFailure, InjectionFailure
from relaycord.routing.access_gate import AccessGate
from relaycord.routing.session_router import SessionRouter
from relaycord.streaming.reconciler import StreamReconciler

from conftest import FakeChannel, FakeHost, FakeInbound

BOT = SimpleNamespace(id=999, name="relaybot")


@pytest.fixture(autouse=True)
def bot_user(monkeypatch):
    monkeypatch.setattr(DiscordBridge, "user", property(lambda self: BOT))
    return BOT


def make_bridge(host, store, settings):
    return DiscordBridge(host, store, settings=settings)


@pytest.mark.asyncio
async def test_ignores_own_and_bot_messages(open_store, slow_settings, channel):
    host = FakeHost(["hi"])
    bridge = make_bridge(host, open_store, slow_settings)
    await bridge.handle_message(FakeInbound(channel, "echo", author_id=BOT.id))
    await bridge.handle_message(FakeInbound(channel, "beep", author_id=5, bot=True))
    assert host.calls == []
    assert host.history == []
    assert channel.messages == []


@pytest.mark.asyncio
async def test_unaddressed_guild_message_is_only_logged(open_store, slow_settings, channel):
    host = FakeHost(["hi"])
    bridge = make_bridge(host, open_store, slow_settings)
    guild = SimpleNamespace(id=1, name="Home")
    await bridge.handle_message(FakeInbound(channel, "just chatting", guild=guild))

    assert host.calls == []
    session, text, meta = host.history[0]
    assert (session, text) == ("discord-111", "just chatting")
    assert meta["from"] == "User 42"
    assert channel.messages == []


@pytest.mark.asyncio
async def test_direct_message_streams_answer_and_reacts(open_store, slow_settings, channel):
    host = FakeHost(["# Answer\n", "Forty two."])
    bridge = make_bridge(host, open_store, slow_settings)
    inbound = FakeInbound(channel, "what is it?")
    await bridge.handle_message(inbound)
    await bridge.wait_for_background()

    session, text, meta = host.calls[0]
    assert (session, text) == ("discord-111", "what is it?")
    assert meta["from"] == "User 42"
    assert host.ensured == ["discord-111"]
    assert channel.contents == ["# Answer\nForty two."]
    assert channel.messages[0].reply_to is inbound
    assert inbound.reactions == [("add", "👀"), ("remove", "👀"), ("add", "✅")]
    assert bridge.reconciler.get("discord-111") is None


@pytest.mark.asyncio
async def test_mention_is_stripped_before_forwarding(open_store, slow_settings, channel):
    host = FakeHost(["ok"])
    bridge = make_bridge(host, open_store, slow_settings)
    guild = SimpleNamespace(id=1, name="Home")
    await bridge.handle_message(FakeInbound(channel, "<@999> summarise this", guild=guild, mentions=[BOT]))
    await bridge.wait_for_background()

    assert host.calls[0][1] == "summarise this"
    mapping = open_store.load().mappings["111"]
    assert (mapping.channel_name, mapping.guild_name) == ("general", "Home")


@pytest.mark.asyncio
async def test_respond_to_all_channel_needs_no_mention(open_store, slow_settings, channel):
    SessionRouter(open_store).map_channel("111", "team", respond_to_all=True)
    host = FakeHost(["ok"])
    bridge = make_bridge(host, open_store, slow_settings)
    await bridge.handle_message(FakeInbound(channel, "anyone?", guild=SimpleNamespace(id=1, name="Home")))
    await bridge.wait_for_background()
    assert host.calls[0][0] == "team"


@pytest.mark.asyncio
async def test_failure_flushes_partial_output_then_reports(open_store, slow_settings, channel):
    host = FakeHost(["partial"], error=InjectionFailure("discord-111", "model crashed"))
    bridge = make_bridge(host, open_store, slow_settings)
    inbound = FakeInbound(channel, "go")
    await bridge.handle_message(inbound)
    await bridge.wait_for_background()

    assert channel.contents == ["💭 partial", ERROR_REPLY]
    assert inbound.reactions[-1] == ("add", "❌")


@pytest.mark.asyncio
async def test_unpaired_user_gets_stable_pairing_code(store, slow_settings, channel):
    host = FakeHost(["secret"])
    bridge = make_bridge(host, store, slow_settings)
    await bridge.handle_message(FakeInbound(channel, "hello"))
    await bridge.handle_message(FakeInbound(channel, "hello again"))

    assert host.calls == []
    (code,) = AccessGate(store).list_requests()
    first, second = channel.contents
    assert code in first and code in second
    assert "still pending" in second


@pytest.mark.asyncio
async def test_approved_user_is_answered(store, slow_settings, channel):
    gate = AccessGate(store)
    code, _ = gate.request_pairing("42", "User 42", "discord-111")
    gate.approve(code)
    host = FakeHost(["hi"])
    bridge = make_bridge(host, store, slow_settings)
    await bridge.handle_message(FakeInbound(channel, "hello"))
    await bridge.wait_for_background()
    assert len(host.calls) == 1


@pytest.mark.asyncio
async def test_blocked_user_is_told(store, slow_settings, channel):
    gate = AccessGate(store)
    gate.grant("42", "*")
    gate.block("42")
    bridge = make_bridge(FakeHost(["x"]), store, slow_settings)
    await bridge.handle_message(FakeInbound(channel, "hello"))
    assert channel.contents == ["You are blocked from using this bot."]


@pytest.mark.asyncio
async def test_unmapped_channel_without_auto_create(open_store, slow_settings, channel):
    SessionRouter(open_store).set_auto_create(False)
    host = FakeHost(["x"])
    bridge = make_bridge(host, open_store, slow_settings)
    await bridge.handle_message(FakeInbound(channel, "hello"))
    assert channel.contents == [NO_SESSION_REPLY]
    assert host.calls == []


@pytest.mark.asyncio
async def test_other_guilds_are_ignored(open_store, slow_settings):
    with open_store.transaction() as config:
        config.guild_id = "1"
    host = FakeHost(["x"])
    bridge = make_bridge(host, open_store, slow_settings)
    elsewhere = FakeChannel(222)
    await bridge.handle_message(
        FakeInbound(elsewhere, "<@999> hi", guild=SimpleNamespace(id=2, name="Other"), mentions=[BOT])
    )
    assert host.calls == []
    assert elsewhere.messages == []


@pytest.mark.asyncio
async def test_login_failure_is_fatal(open_store, slow_settings, monkeypatch):
    bridge = make_bridge(FakeHost(), open_store, slow_settings)

    async def bad_login(token):
        raise discord.LoginFailure("Improper token has been passed.")

    monkeypatch.setattr(bridge, "login", bad_login)
    with pytest.raises(AuthenticationFailure):
        await bridge.run_bridge("bogus")




@pytest.mark.asyncio
async def test_injected_collaborators_are_kept(open_store, slow_settings):
    router, gate, reconciler = SessionRouter(open_store), AccessGate(open_store), StreamReconciler(slow_settings)
    assert len(reconciler) == 0
    bridge = DiscordBridge(FakeHost(), open_store, router=router, gate=gate, reconciler=reconciler)
    assert bridge.router is router
    assert bridge.gate is gate
    assert bridge.reconciler is reconciler


@pytest.mark.asyncio
async def test_host_call_is_cancelled_when_relay_fails(open_store, slow_settings, channel, monkeypatch):
    cancelled = asyncio.Event()

    class EndlessHost(FakeHost):
        async def inject(self, session, message, *, on_stream=None, **meta):
            on_stream({"type": "text", "content": "first"})
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                cancelled.set()
                raise

    bridge = make_bridge(EndlessHost(), open_store, slow_settings)

    async def broken_on_fragment(key, text, *, stream=None):
        raise RuntimeError("reconciler broke")

    monkeypatch.setattr(bridge.reconciler, "on_fragment", broken_on_fragment)
    inbound = FakeInbound(channel, "go")
    await bridge.handle_message(inbound)
    await asyncio.wait_for(cancelled.wait(), 1)
    await bridge.wait_for_background()

    assert channel.contents == [ERROR_REPLY]
    assert inbound.reactions[-1] == ("add", "❌")
