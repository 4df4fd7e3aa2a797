import asyncio
from typing import Callable, List, Optional, Sequence

import pytest

from candid.core.exceptions import ExternalServiceError
from candid.engine.session_manager import Collaborators, SessionManager
from candid.models.session import InterviewConfig, Problem, Turn
from candid.services.base.problem_source import BaseProblemSource
from candid.services.base.response_generator import BaseResponseGenerator
from candid.services.base.speech_io import BaseSpeechSynthesizer, BaseTranscriber


class FakeResponseGenerator(BaseResponseGenerator):
    """Answers from a script; ``gate`` holds every call until it is set"""

    def __init__(self, replies: Optional[List[str]] = None, default: str = "Tell me more about your approach."):
        self.replies = list(replies or [])
        self.default = default
        self.calls: List[Sequence[Turn]] = []
        self.fail_next = 0
        self.gate: Optional[asyncio.Event] = None

    async def generate(self, turns: Sequence[Turn]) -> str:
        self.calls.append(tuple(turns))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_next:
            self.fail_next -= 1
            raise ExternalServiceError("llm", "model unavailable")
        if self.replies:
            return self.replies.pop(0)
        return self.default


class FakeSynthesizer(BaseSpeechSynthesizer):
    audio_format = "mp3"

    def __init__(self):
        self.texts: List[str] = []
        self.fail_next = 0

    async def synthesize(self, text: str, config=None) -> bytes:
        if self.fail_next:
            self.fail_next -= 1
            raise ExternalServiceError("tts", "speech service unavailable")
        self.texts.append(text)
        return f"audio:{text}".encode("utf-8")


class FakeTranscriber(BaseTranscriber):
    def __init__(self, transcripts: Optional[dict] = None):
        self.transcripts = transcripts or {}
        self.clips: List[bytes] = []
        self.fail_next = 0

    async def transcribe(self, audio: bytes) -> str:
        self.clips.append(audio)
        if self.fail_next:
            self.fail_next -= 1
            raise ExternalServiceError("stt", "recognizer unavailable")
        return self.transcripts.get(audio, "")


class FakeProblemSource(BaseProblemSource):
    def __init__(self, problem: Problem):
        self.problem = problem
        self.fail_next = 0
        self.picks = 0

    def pick(self) -> Problem:
        self.picks += 1
        if self.fail_next:
            self.fail_next -= 1
            raise ExternalServiceError("problems", "no free problems available")
        return self.problem


class EventRecorder:
    """Stands in for the websocket; collects every outbound event"""

    def __init__(self):
        self.events: List[dict] = []

    async def __call__(self, payload: dict) -> None:
        self.events.append(payload)

    def types(self) -> List[str]:
        return [event["type"] for event in self.events]

    def of_type(self, event_type: str) -> List[dict]:
        return [event for event in self.events if event["type"] == event_type]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def problem():
    return Problem(
        title="Two Sum",
        difficulty="Easy",
        statement="Return indices of the two numbers that add up to target.",
        examples="Input: nums = [2,7,11,15], target = 9\nOutput: [0,1]",
        constraints="2 <= nums.length <= 10^4",
        hints=["Try a brute force first.", "Use a hash map."],
        topics=["Array", "Hash Table"],
    )


@pytest.fixture
def generator():
    return FakeResponseGenerator(replies=["We'll work on a Two Sum problem today."])


@pytest.fixture
def synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def problem_source(problem):
    return FakeProblemSource(problem)


@pytest.fixture
def collaborators(generator, synthesizer, transcriber, problem_source):
    return Collaborators(
        response_generator=generator,
        synthesizer=synthesizer,
        transcriber=transcriber,
        problem_source=problem_source,
    )


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
async def make_manager(collaborators, recorder):
    managers = []

    def _make(**config) -> SessionManager:
        manager = SessionManager(recorder, collaborators, config=InterviewConfig(**config))
        manager.open()
        managers.append(manager)
        return manager

    yield _make

    for manager in managers:
        await manager.on_disconnect()


@pytest.fixture
def wait_until():
    async def _wait(predicate: Callable[[], bool], attempts: int = 200):
        for _ in range(attempts):
            if predicate():
                return
            await asyncio.sleep(0.005)
        raise AssertionError("condition not reached")

    return _wait
