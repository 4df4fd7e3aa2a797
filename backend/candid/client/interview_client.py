import asyncio
import base64
import json
import logging
from typing import Any, Callable, List, Optional, Protocol, Set

import websockets
import websockets.exceptions

from candid.core.config import settings
from candid.engine.noise_filter import NoiseFilter, noise_filter as default_noise_filter
from candid.engine.speech_segmenter import SpeechSegmenter
from candid.engine.turn_coordinator import TurnCoordinator
from candid.models.session import Role, Turn, TurnState

logger = logging.getLogger(__name__)

DEFAULT_URL = "ws://localhost:8000/session/ws/interview"


class Recognizer(Protocol):
    """Speech recognition engine. Finalized fragments go to ``InterviewClient.on_speech``."""

    def start(self) -> None: ...

    def stop(self) -> None: ...


class AudioPlayer(Protocol):
    @property
    def is_speaking(self) -> bool: ...

    async def play(self, audio: bytes, audio_format: str) -> None:
        """Play one clip to completion"""
        ...

    def stop(self) -> None: ...


class InterviewClient:
    """Candidate side of one interview connection.

    Recognized fragments are debounced into utterances, filtered against the
    local transcript and submitted. Bot audio is played one clip at a time,
    and every recognizer start/stop goes through the TurnCoordinator, so the
    microphone is never open while the bot is speaking or thinking.
    """

    def __init__(self, recognizer: Recognizer, player: AudioPlayer,
                 url: str = DEFAULT_URL, connection: Any = None,
                 pause_ms: Optional[int] = None, text_filter: Optional[NoiseFilter] = None,
                 on_message: Optional[Callable[[dict], None]] = None):
        self.url = url
        self.connection = connection
        self.recognizer = recognizer
        self.player = player
        self.noise_filter = text_filter or default_noise_filter
        self.on_message = on_message
        self.transcript: List[Turn] = []

        self.segmenter = SpeechSegmenter(
            settings.EDITOR_PAUSE_MS if pause_ms is None else pause_ms,
            on_utterance=self._submit,
            name="client",
        )
        self.coordinator = TurnCoordinator(name="client", on_preempt=self.segmenter.flush)
        self.coordinator.add_listener(self._on_turn_change)

        self._recognizing = False
        self._playback_queue: asyncio.Queue = asyncio.Queue()
        self._playback_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self.closed = False

    async def connect(self) -> None:
        if self.connection is None:
            self.connection = await websockets.connect(self.url)
            logger.info(f"🎧 [CLIENT] Connected to {self.url}")
        if self._playback_task is None:
            self._playback_task = asyncio.create_task(self._run_playback())

    async def start(self, duration_minutes: Optional[float] = None) -> None:
        await self.connect()
        if not self.coordinator.start():
            return
        # Nothing may be captured until the whole opening has been delivered
        self.coordinator.begin_model_call()
        event = {"type": "start"}
        if duration_minutes:
            event["durationMinutes"] = duration_minutes
        await self._send(event)

    async def run(self) -> None:
        """Handle server events until the connection closes"""
        try:
            async for raw in self.connection:
                await self.handle_event(json.loads(raw))
                if self.closed:
                    break
        except websockets.exceptions.ConnectionClosed as e:
            logger.info(f"🎧 [CLIENT] Connection closed: {e}")

    # --- candidate input ---

    def on_speech(self, fragment: str) -> None:
        if not self.coordinator.listening:
            logger.debug(f"🔍 [CLIENT] Dropping fragment heard while not listening: {fragment}")
            return
        self.segmenter.feed(fragment)

    async def code_activity(self) -> None:
        self.segmenter.touch()
        await self._send({"type": "codeActivity"})

    async def retry(self) -> None:
        await self._send({"type": "retry"})

    def _submit(self, text: str) -> None:
        last_turn = self.transcript[-1] if self.transcript else None
        if not self.noise_filter.accepts(last_turn, text):
            logger.info(f"🎧 [CLIENT] Ignoring noise or echo: {text!r}")
            return
        self.coordinator.utterance_submitted()
        self._spawn(self._send({"type": "utterance", "text": text}))

    # --- server events ---

    async def handle_event(self, event: dict) -> None:
        event_type = event.get("type")

        if event_type == "assistantText":
            self.transcript.append(Turn(role=Role.ASSISTANT, content=event.get("text", "")))
        elif event_type == "userText":
            self.transcript.append(Turn(role=Role.USER, content=event.get("text", "")))
        elif event_type == "assistantAudio":
            audio = base64.b64decode(event.get("audio", ""))
            self.coordinator.audio_queued()
            self._playback_queue.put_nowait((audio, event.get("format", "mp3")))
        elif event_type == "speakingState":
            if not event.get("speaking"):
                self.coordinator.settle()
        elif event_type == "error":
            logger.warning(f"⚠️ [CLIENT] Server reported: {event.get('message')}")
        elif event_type == "timeUp":
            logger.info("🎧 [CLIENT] Interview time is up")
        elif event_type == "stopped":
            self.coordinator.end()
        else:
            logger.warning(f"⚠️ [CLIENT] Unknown event type: {event_type}")

        if self.on_message:
            self.on_message(event)

    async def _run_playback(self) -> None:
        while True:
            audio, audio_format = await self._playback_queue.get()
            try:
                self.coordinator.playback_started()
                await self._send({"type": "playbackStarted"})
                await self.player.play(audio, audio_format)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"❌ [CLIENT] Playback failed: {e}")
            finally:
                self._playback_queue.task_done()
            if self.closed:
                continue
            self.coordinator.playback_ended()
            await self._send({"type": "playbackEnded"})

    # --- capture gating ---

    def _on_turn_change(self, old_state: TurnState, new_state: TurnState) -> None:
        if old_state == TurnState.USER_TURN:
            self._stop_recognition()
        if new_state == TurnState.USER_TURN:
            self._start_recognition()

    def _start_recognition(self) -> None:
        if self.coordinator.start_listening(playback_active=self.player.is_speaking):
            self._recognizing = True
            self.recognizer.start()
            logger.info("🎧 [CLIENT] Listening")

    def _stop_recognition(self) -> None:
        self.coordinator.stop_listening()
        if self._recognizing:
            self._recognizing = False
            self.recognizer.stop()

    # --- outbound ---

    async def _send(self, event: dict) -> None:
        if self.connection is None or self.closed:
            return
        try:
            await self.connection.send(json.dumps(event))
        except websockets.exceptions.ConnectionClosed as e:
            logger.warning(f"⚠️ [CLIENT] Could not send {event['type']}: {e}")

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def close(self) -> None:
        """Stop recognition, stop playback, cancel the debounce timer, then close the connection"""
        if self.closed:
            return
        await self._send({"type": "stop"})
        self.closed = True

        self._stop_recognition()
        self.coordinator.end()

        try:
            self.player.stop()
        except Exception as e:
            logger.warning(f"⚠️ [CLEANUP] Failed to stop playback: {e}")

        self.segmenter.close()

        pending = [task for task in [self._playback_task, *self._tasks] if task is not None]
        for task in pending:
            task.cancel()
        for task in pending:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"⚠️ [CLEANUP] Client task failed during shutdown: {e}")

        if self.connection is not None:
            await self.connection.close()
        logger.info("🎧 [CLIENT] Closed")
