from __future__ import annotations

import asyncio

import pytest
from conftest import FakeAiSocket, FakeTelephonySocket

from bridge.codec import Keepalive, MediaEvent, StartEvent
from bridge.conversation_channel import ConversationChannel
from bridge.errors import AiUnavailable, ProtocolViolation
from bridge.session import CallSession
from bridge.telephony_channel import TelephonyChannel


def test_telephony_channel_records_start_and_rejects_a_second_one():
    async def _scenario():
        session = CallSession()
        ws = FakeTelephonySocket()
        channel = TelephonyChannel(ws, session)
        ws.push({"event": "start", "start": {"streamSid": "MZ1", "callSid": "CA1"}})
        ws.push({"event": "media", "media": {"payload": "AAA="}})
        ws.push({"event": "start", "start": {"streamSid": "MZ1", "callSid": "CA1"}})

        seen = []
        with pytest.raises(ProtocolViolation):
            async for event in channel.events():
                seen.append(event)

        assert seen == [StartEvent(stream_sid="MZ1", call_sid="CA1"), MediaEvent(payload="AAA=")]
        assert (session.stream_sid, session.call_sid) == ("MZ1", "CA1")

    asyncio.run(_scenario())


def test_telephony_channel_stream_ends_on_disconnect():
    async def _scenario():
        ws = FakeTelephonySocket()
        channel = TelephonyChannel(ws, CallSession())
        ws.push({"event": "connected"})
        ws.hang_up()
        events = [event async for event in channel.events()]
        assert len(events) == 1

    asyncio.run(_scenario())


def test_telephony_sends_are_noops_without_stream_or_after_close():
    async def _scenario():
        session = CallSession()
        ws = FakeTelephonySocket()
        channel = TelephonyChannel(ws, session)

        await channel.send_audio("BBB=")
        await channel.send_clear()
        assert ws.sent == []

        session.stream_sid = "MZ1"
        await channel.send_clear()
        assert ws.sent == [{"event": "clear", "streamSid": "MZ1"}]

        assert await channel.close() is True
        assert await channel.close() is False
        await channel.send_audio("BBB=")
        assert ws.close_calls == 1
        assert len(ws.sent) == 1

    asyncio.run(_scenario())


def test_conversation_channel_answers_pings_before_yielding():
    async def _scenario():
        ai_ws = FakeAiSocket()

        async def provider() -> str:
            return "wss://agents.example.test/convai"

        async def connector(url: str) -> FakeAiSocket:
            assert url == "wss://agents.example.test/convai"
            return ai_ws

        channel = ConversationChannel(CallSession(), signed_url_provider=provider, connector=connector)
        await channel.open()
        assert ai_ws.sent == [{"type": "conversation_initiation_client_data"}]

        ai_ws.push({"type": "ping", "ping_event": {"event_id": 1}})
        ai_ws.push({"type": "ping", "ping_event": {"event_id": 2}})
        ai_ws.push(None)

        events = []
        async for event in channel.events():
            events.append(event)
            # The reply is already on the wire when the event is handed out.
            assert ai_ws.sent[-1] == {"type": "pong", "event_id": event.ping_id}

        assert events == [Keepalive(ping_id=1), Keepalive(ping_id=2)]

    asyncio.run(_scenario())


def test_conversation_channel_wraps_provider_errors():
    async def _scenario():
        async def provider() -> str:
            raise RuntimeError("dns failure")

        async def connector(url: str):
            raise AssertionError("must not connect")

        channel = ConversationChannel(CallSession(), signed_url_provider=provider, connector=connector)
        with pytest.raises(AiUnavailable):
            await channel.open()
        assert await channel.close() is False

    asyncio.run(_scenario())


def test_conversation_channel_closes_socket_opened_after_teardown():
    async def _scenario():
        ai_ws = FakeAiSocket()
        release = asyncio.Event()

        async def provider() -> str:
            return "wss://agents.example.test/convai"

        async def connector(url: str) -> FakeAiSocket:
            await release.wait()
            return ai_ws

        channel = ConversationChannel(CallSession(), signed_url_provider=provider, connector=connector)
        opening = asyncio.create_task(channel.open())
        await asyncio.sleep(0.01)
        await channel.close()
        release.set()

        with pytest.raises(AiUnavailable):
            await opening
        assert ai_ws.close_calls == 1
        assert ai_ws.sent == []

    asyncio.run(_scenario())
