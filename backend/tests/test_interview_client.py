import asyncio
import base64
import json

import pytest

from candid.client.interview_client import InterviewClient
from candid.models.session import TurnState


class FakeConnection:
    def __init__(self, calls):
        self.calls = calls
        self.sent = []
        self.incoming = asyncio.Queue()
        self.closed = False

    async def send(self, raw):
        self.sent.append(json.loads(raw))

    async def close(self):
        self.closed = True
        self.calls.append("connection.close")

    def __aiter__(self):
        return self

    async def __anext__(self):
        raw = await self.incoming.get()
        if raw is None:
            raise StopAsyncIteration
        return raw

    def sent_types(self):
        return [event["type"] for event in self.sent]


class FakeRecognizer:
    def __init__(self, calls):
        self.calls = calls
        self.active = False
        self.starts = 0

    def start(self):
        self.active = True
        self.starts += 1
        self.calls.append("recognizer.start")

    def stop(self):
        self.active = False
        self.calls.append("recognizer.stop")


class FakePlayer:
    def __init__(self, calls):
        self.calls = calls
        self.is_speaking = False
        self.played = []

    async def play(self, audio, audio_format):
        self.is_speaking = True
        self.played.append((audio, audio_format))
        await asyncio.sleep(0)
        self.is_speaking = False

    def stop(self):
        self.is_speaking = False
        self.calls.append("player.stop")


@pytest.fixture
def calls():
    return []


@pytest.fixture
def connection(calls):
    return FakeConnection(calls)


@pytest.fixture
def recognizer(calls):
    return FakeRecognizer(calls)


@pytest.fixture
def player(calls):
    return FakePlayer(calls)


@pytest.fixture
async def make_client(connection, recognizer, player):
    clients = []

    def _make(pause_ms=0, **kwargs):
        client = InterviewClient(recognizer, player, connection=connection, pause_ms=pause_ms, **kwargs)
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.close()


async def users_turn(client):
    await client.start()
    await client.handle_event({"type": "speakingState", "speaking": False})


async def test_start_keeps_microphone_closed(make_client, connection, recognizer):
    client = make_client()

    await client.start(duration_minutes=20)

    assert connection.sent == [{"type": "start", "durationMinutes": 20}]
    assert client.coordinator.state == TurnState.AWAITING_MODEL
    assert recognizer.starts == 0


async def test_opening_audio_is_played_before_listening(make_client, connection, recognizer, player, wait_until):
    client = make_client()
    await client.start()

    await client.handle_event({"type": "assistantText", "text": "Hi, I'm Alex."})
    await client.handle_event({"type": "assistantAudio", "audio": base64.b64encode(b"greeting").decode(), "format": "mp3"})
    await wait_until(lambda: "playbackEnded" in connection.sent_types())

    assert player.played == [(b"greeting", "mp3")]
    assert connection.sent_types() == ["start", "playbackStarted", "playbackEnded"]
    assert recognizer.starts == 0

    await client.handle_event({"type": "speakingState", "speaking": False})

    assert client.coordinator.state == TurnState.USER_TURN
    assert recognizer.starts == 1
    assert recognizer.active


async def test_utterance_is_submitted_and_capture_stops(make_client, connection, recognizer, wait_until):
    client = make_client()
    await users_turn(client)

    client.on_speech("I would use a hash map")
    await wait_until(lambda: "utterance" in connection.sent_types())

    assert connection.sent[-1] == {"type": "utterance", "text": "I would use a hash map"}
    assert client.coordinator.state == TurnState.AWAITING_MODEL
    assert not recognizer.active


async def test_fragments_are_debounced_into_one_utterance(make_client, connection, wait_until):
    client = make_client(pause_ms=50)
    await users_turn(client)

    client.on_speech("I would")
    client.on_speech("use a hash map")
    await wait_until(lambda: "utterance" in connection.sent_types())
    await asyncio.sleep(0.08)

    utterances = [event for event in connection.sent if event["type"] == "utterance"]
    assert utterances == [{"type": "utterance", "text": "I would use a hash map"}]


async def test_echo_and_noise_are_not_submitted(make_client, connection):
    client = make_client()
    await client.handle_event({"type": "assistantText", "text": "Go on."})
    await users_turn(client)

    client.on_speech("Go on.")
    client.on_speech("um")
    await asyncio.sleep(0.01)

    assert "utterance" not in connection.sent_types()
    assert client.coordinator.state == TurnState.USER_TURN


async def test_speech_heard_while_bot_speaks_is_dropped(make_client):
    client = make_client(pause_ms=5000)
    await client.start()

    client.on_speech("overlapping words")

    assert client.segmenter.buffer == ""


async def test_run_applies_server_events(connection, recognizer, player, calls):
    seen = []
    client = InterviewClient(recognizer, player, connection=connection, pause_ms=0, on_message=seen.append)
    for event in [
        {"type": "assistantText", "text": "Tell me about yourself."},
        {"type": "userText", "text": "I build APIs"},
        {"type": "timeUp"},
        {"type": "stopped"},
    ]:
        connection.incoming.put_nowait(json.dumps(event))
    connection.incoming.put_nowait(None)

    await client.run()

    assert [turn.content for turn in client.transcript] == ["Tell me about yourself.", "I build APIs"]
    assert [event["type"] for event in seen] == ["assistantText", "userText", "timeUp", "stopped"]
    assert client.coordinator.state == TurnState.ENDED
    await client.close()


async def test_close_releases_in_order(make_client, connection, calls):
    client = make_client(pause_ms=5000)
    await users_turn(client)
    client.on_speech("half a thought")
    assert client.segmenter.pending

    await client.close()

    assert connection.sent[-1] == {"type": "stop"}
    assert calls[-3:] == ["recognizer.stop", "player.stop", "connection.close"]
    assert not client.segmenter.pending
    assert client.coordinator.state == TurnState.ENDED
    assert connection.closed


async def test_close_is_idempotent(make_client, connection, calls):
    client = make_client()
    await client.close()
    await client.close()

    assert calls.count("connection.close") == 1
