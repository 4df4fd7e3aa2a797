import asyncio
import base64
import binascii
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from candid.core.exceptions import ExternalServiceError, ProtocolMisuse, SessionClosedError
from candid.engine.conversation import ConversationStore
from candid.engine.noise_filter import NoiseFilter, noise_filter as default_noise_filter
from candid.engine.speech_segmenter import SpeechSegmenter
from candid.engine.turn_coordinator import TurnCoordinator
from candid.models.session import (
    ClientMessage, InterviewConfig, Problem, Role, SessionMessage, SessionStats, Turn, TurnState
)
from candid.services.base.problem_source import BaseProblemSource
from candid.services.base.response_generator import BaseResponseGenerator
from candid.services.base.speech_io import BaseSpeechSynthesizer, BaseTranscriber
from candid.services.response_generator import build_system_turn, display_text, is_silent_reply

logger = logging.getLogger(__name__)

Emitter = Callable[[dict], Awaitable[None]]

QUEUED_EVENTS = ("start", "utterance", "audioChunk", "retry")


@dataclass
class Collaborators:
    response_generator: BaseResponseGenerator
    synthesizer: BaseSpeechSynthesizer
    transcriber: BaseTranscriber
    problem_source: BaseProblemSource
    noise_filter: NoiseFilter = field(default_factory=lambda: default_noise_filter)


@dataclass
class Session:
    """All state for one interview run on one connection"""
    id: str
    conversation: ConversationStore
    coordinator: TurnCoordinator
    segmenter: SpeechSegmenter
    problem: Optional[Problem] = None
    duration_timer: Optional[asyncio.TimerHandle] = None

    @property
    def speech_buffer(self) -> str:
        return self.segmenter.buffer


class SessionManager:
    """Per-connection orchestrator.

    Inbound events are dispatched as commands. Work that talks to the model
    or to speech services (start, utterance, audio chunk, retry) goes through
    a FIFO queue drained by one worker task, and every handler holds the
    session lock, so a session never has two model calls in flight. Playback
    reports, editor activity and stop are applied immediately.
    """

    def __init__(self, emit: Emitter, collaborators: Collaborators,
                 config: Optional[InterviewConfig] = None, session_id: Optional[str] = None):
        self.emit = emit
        self.collaborators = collaborators
        self.config = config or InterviewConfig()
        self.session_id = session_id or str(uuid.uuid4())
        self.session = self._new_session()

        self._lock = asyncio.Lock()
        self._send_lock = asyncio.Lock()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._speaking_reported = False
        self._transport_open = True
        self.ended = False

    def _new_session(self) -> "Session":
        coordinator = TurnCoordinator(name=self.session_id)
        segmenter = SpeechSegmenter(
            self.config.stream_pause_ms,
            on_utterance=self._enqueue_utterance,
            name=self.session_id,
        )
        # Speech still buffered when the bot starts talking is submitted, never carried over
        coordinator.on_preempt = segmenter.flush
        return Session(
            id=self.session_id,
            conversation=ConversationStore(),
            coordinator=coordinator,
            segmenter=segmenter,
        )

    @property
    def conversation(self) -> ConversationStore:
        return self.session.conversation

    @property
    def coordinator(self) -> TurnCoordinator:
        return self.session.coordinator

    # --- lifecycle ---

    def open(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._run_worker())
            logger.info(f"🎭 [SESSION] {self.session_id} opened")

    async def join(self) -> None:
        """Wait until every queued command has been handled"""
        await self._queue.join()

    async def stop(self) -> None:
        """End the interview on request; the client is told it stopped"""
        await self._teardown(notify=True)

    async def on_disconnect(self) -> None:
        await self._teardown(notify=False)

    async def _teardown(self, notify: bool) -> None:
        if self.ended:
            return
        self.ended = True
        logger.info(f"🎭 [SESSION] {self.session_id} ending (state: {self.coordinator.state.value})")

        # 1. recognition: no more capture, no more audio accepted
        self.coordinator.stop_listening()
        self.coordinator.end()

        # 2. playback: tell the client to stop the bot audio
        if notify:
            await self._sync_speaking_state()
            await self._emit(SessionMessage(type="stopped"))
        self._transport_open = False

        # 3. timers
        self.session.segmenter.close()
        if self.session.duration_timer is not None:
            self.session.duration_timer.cancel()
            self.session.duration_timer = None

        # 4. in-flight work can no longer reach the log
        self.conversation.seal()
        current = asyncio.current_task()
        pending = [task for task in [self._worker, *self._tasks] if task is not None and task is not current]
        for task in pending:
            task.cancel()
        for task in pending:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"⚠️ [CLEANUP] {self.session_id} task failed during teardown: {e}")
        self._tasks.clear()
        logger.info(f"🧹 [CLEANUP] {self.session_id} session resources released")

    # --- dispatch ---

    async def dispatch(self, message: ClientMessage) -> None:
        if self.ended:
            logger.debug(f"🔍 [SESSION] {self.session_id} ignoring {message.type} after end")
            return

        msg_type = message.type
        try:
            if msg_type in QUEUED_EVENTS:
                if msg_type == "audioChunk" and not self.coordinator.capture_enabled:
                    logger.info(f"🎭 [SESSION] {self.session_id} dropping audio chunk captured outside the user's turn")
                    return
                self._queue.put_nowait(message)
            elif msg_type == "codeActivity":
                self.session.segmenter.touch()
            elif msg_type == "playbackStarted":
                self.coordinator.playback_started()
                await self._sync_speaking_state()
            elif msg_type == "playbackEnded":
                self.coordinator.playback_ended()
                await self._sync_speaking_state()
            elif msg_type == "stop":
                await self.stop()
            else:
                raise ProtocolMisuse(f"unknown event type {msg_type!r}")
        except ProtocolMisuse as e:
            logger.warning(f"⚠️ [SESSION] {self.session_id} {e}")

    def _enqueue_utterance(self, text: str) -> None:
        if not self.ended:
            self._queue.put_nowait(ClientMessage(type="utterance", text=text))

    async def _run_worker(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self._handle(message)
            except asyncio.CancelledError:
                raise
            except SessionClosedError:
                logger.info(f"🎭 [SESSION] {self.session_id} dropped {message.type}: session closed")
            except Exception as e:
                logger.exception(f"❌ [SESSION] {self.session_id} unexpected error handling {message.type}: {e}")
                await self._report_error("Something went wrong while handling your input.")
            finally:
                self._queue.task_done()

    async def _handle(self, message: ClientMessage) -> None:
        if message.type == "start":
            await self.on_start(message.duration_minutes)
        elif message.type == "utterance":
            await self.on_user_utterance(message.text or "")
        elif message.type == "audioChunk":
            await self.on_audio_chunk(message.audio_base64 or "")
        elif message.type == "retry":
            await self.on_retry()

    # --- handlers ---

    async def on_start(self, duration_minutes: Optional[float] = None) -> None:
        async with self._lock:
            if self.ended:
                return
            if self.coordinator.state != TurnState.IDLE:
                logger.warning(f"⚠️ [SESSION] {self.session_id} start ignored: interview already running")
                return

            self.coordinator.start()
            await self._sync_speaking_state()
            logger.info(f"🎭 [SESSION] {self.session_id} starting interview ({self.config.bootstrap_policy} opening)")

            try:
                if self.session.problem is None:
                    problem = self.collaborators.problem_source.pick()
                    self.session.problem = problem
                    self.conversation.append(build_system_turn(problem, self.config.reply_char_limit))
                self._arm_duration_timer(duration_minutes)

                if self.config.bootstrap_policy == "greeting":
                    await self._deliver_reply(self.config.greeting)
                    kickoff = self.config.kickoff_prompt
                else:
                    kickoff = self.config.opening_prompt

                # The kickoff instruction is shown to the model only, never stored
                self.coordinator.begin_model_call()
                await self._sync_speaking_state()
                opening = await self.collaborators.response_generator.generate(
                    self.conversation.snapshot() + (Turn(role=Role.USER, content=kickoff),)
                )
                if self.ended:
                    return
                await self._deliver_reply(opening)
            except ExternalServiceError as e:
                logger.error(f"❌ [SESSION] {self.session_id} failed to start interview: {e}")
                await self._report_error("Failed to start interview. Please try again.")
                if not self.conversation.started:
                    self._reset_opening()
            finally:
                if not self.ended:
                    self.coordinator.settle()
                    await self._sync_speaking_state()

    async def on_user_utterance(self, text: str) -> None:
        async with self._lock:
            if self.ended:
                return
            if not self.conversation.started:
                logger.warning(f"⚠️ [SESSION] {self.session_id} utterance ignored: interview not started")
                return

            text = (text or "").strip()
            last_turn = self.conversation.last()
            if self.collaborators.noise_filter.is_noise(text):
                logger.info(f"🎭 [SESSION] {self.session_id} ignoring noise: {text!r}")
                return
            if self.collaborators.noise_filter.is_echo(last_turn, text):
                logger.info(f"🎭 [SESSION] {self.session_id} ignoring echo of bot message")
                return

            if last_turn.role == Role.USER and last_turn.content == text:
                logger.info(f"🎭 [SESSION] {self.session_id} re-submitted unanswered turn, regenerating reply")
            else:
                self.conversation.append(Turn(role=Role.USER, content=text))
                await self._emit(SessionMessage(type="userText", text=text))

            await self._respond()

    async def on_retry(self) -> None:
        async with self._lock:
            if self.ended:
                return
            last_turn = self.conversation.last()
            if last_turn is None or last_turn.role != Role.USER:
                logger.warning(f"⚠️ [SESSION] {self.session_id} retry ignored: nothing awaiting a reply")
                return
            logger.info(f"🎭 [SESSION] {self.session_id} retrying reply")
            await self._respond()

    async def on_audio_chunk(self, audio_base64: str) -> None:
        async with self._lock:
            if self.ended or not self.conversation.started:
                logger.warning(f"⚠️ [SESSION] {self.session_id} audio chunk ignored: interview not running")
                return
            try:
                audio = base64.b64decode(audio_base64, validate=True)
            except (binascii.Error, ValueError):
                logger.warning(f"⚠️ [SESSION] {self.session_id} audio chunk ignored: payload is not base64")
                return

            try:
                text = await self.collaborators.transcriber.transcribe(audio)
            except ExternalServiceError as e:
                logger.error(f"❌ [SESSION] {self.session_id} transcription failed: {e}")
                await self._report_error("An error occurred while processing your audio. Please try again.")
                return

        # Outside the lock: an immediate flush queues the utterance behind this command
        if text and not self.ended:
            self.session.segmenter.feed(text)

    async def _respond(self) -> None:
        """One model round trip for the current log. Caller holds the lock."""
        self.coordinator.utterance_submitted()
        await self._sync_speaking_state()
        try:
            reply = await self.collaborators.response_generator.generate(self.conversation.snapshot())
            if self.ended:
                return
            await self._deliver_reply(reply)
        except ExternalServiceError as e:
            logger.error(f"❌ [SESSION] {self.session_id} reply failed, log left at {len(self.conversation)} turns: {e}")
            await self._report_error("Something went wrong while handling your input. Please try again.")
        finally:
            if not self.ended:
                self.coordinator.settle()
                await self._sync_speaking_state()

    async def _deliver_reply(self, text: str) -> None:
        """Append an assistant turn and send it as (text, audio).

        Audio is synthesized before the turn is appended, so a speech failure
        leaves the log exactly as it was.
        """
        if is_silent_reply(text):
            self.conversation.append(Turn(role=Role.ASSISTANT, content=text))
            await self._emit(SessionMessage(type="assistantText", text=display_text(text)))
            return

        audio = await self.collaborators.synthesizer.synthesize(text)
        if self.ended:
            return
        self.conversation.append(Turn(role=Role.ASSISTANT, content=text))
        await self._emit(SessionMessage(type="assistantText", text=text))
        self.coordinator.audio_queued()
        await self._sync_speaking_state()
        await self._emit(SessionMessage(
            type="assistantAudio",
            audio=base64.b64encode(audio).decode("utf-8"),
            format=self.collaborators.synthesizer.audio_format,
        ))

    def _reset_opening(self) -> None:
        """Return to Idle after a failed opening so ``start`` can be sent again.

        The log, its system turn and the chosen problem are kept; the next
        ``start`` only retries the opening.
        """
        if self.session.duration_timer is not None:
            self.session.duration_timer.cancel()
            self.session.duration_timer = None
        self.session.segmenter.discard()
        self.coordinator.reset()

    # --- timers ---

    def _arm_duration_timer(self, duration_minutes: Optional[float]) -> None:
        minutes = duration_minutes if duration_minutes and duration_minutes > 0 else self.config.default_duration_minutes
        loop = asyncio.get_running_loop()
        self.session.duration_timer = loop.call_later(minutes * 60, self._on_time_up)
        logger.info(f"🎭 [SESSION] {self.session_id} interview duration set to {minutes} minutes")

    def _on_time_up(self) -> None:
        self.session.duration_timer = None
        if self.ended:
            return
        logger.info(f"🎭 [SESSION] {self.session_id} interview time is up")
        task = asyncio.create_task(self._emit(SessionMessage(type="timeUp")))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # --- outbound ---

    async def _sync_speaking_state(self) -> None:
        speaking = self.coordinator.bot_active
        if speaking != self._speaking_reported:
            self._speaking_reported = speaking
            await self._emit(SessionMessage(type="speakingState", speaking=speaking))

    async def _report_error(self, message: str) -> None:
        await self._emit(SessionMessage(type="error", message=message))

    async def _emit(self, message: SessionMessage) -> None:
        if not self._transport_open:
            return
        async with self._send_lock:
            try:
                await self.emit(message.to_wire())
            except Exception as e:
                logger.warning(f"⚠️ [SESSION] {self.session_id} failed to send {message.type}: {e}")

    def stats(self) -> SessionStats:
        return SessionStats(
            session_id=self.session_id,
            state=self.coordinator.state,
            turns=len(self.conversation),
            problem=self.session.problem.title if self.session.problem else None,
        )


class SessionRegistry:
    """Live sessions keyed by connection id. One session per connection."""

    def __init__(self):
        self._sessions: Dict[str, SessionManager] = {}

    def create(self, emit: Emitter, collaborators: Collaborators,
               config: Optional[InterviewConfig] = None, connection_id: Optional[str] = None) -> SessionManager:
        manager = SessionManager(emit, collaborators, config=config, session_id=connection_id)
        if manager.session_id in self._sessions:
            raise ValueError(f"connection {manager.session_id} already has a session")
        self._sessions[manager.session_id] = manager
        manager.open()
        return manager

    def get(self, connection_id: str) -> Optional[SessionManager]:
        return self._sessions.get(connection_id)

    async def close(self, connection_id: str) -> None:
        manager = self._sessions.pop(connection_id, None)
        if manager is not None:
            await manager.on_disconnect()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, connection_id: Any) -> bool:
        return connection_id in self._sessions

    def stats(self) -> List[SessionStats]:
        return [manager.stats() for manager in list(self._sessions.values())]
