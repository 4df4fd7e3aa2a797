from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List


class Role(str, Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"


class Turn(BaseModel):
    """One role-tagged message in the conversation log. Immutable once built."""
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


class TurnState(str, Enum):
    IDLE = "idle"
    BOT_SPEAKING = "bot_speaking"
    USER_TURN = "user_turn"
    AWAITING_MODEL = "awaiting_model"
    ENDED = "ended"


class Problem(BaseModel):
    """Coding problem selected once per session"""
    model_config = ConfigDict(frozen=True)

    title: str
    difficulty: str
    statement: str
    examples: str = ""
    constraints: str = ""
    hints: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)


class InterviewConfig(BaseModel):
    bootstrap_policy: str = "greeting"  # "greeting" or "model"
    stream_pause_ms: int = 0
    default_duration_minutes: int = 30
    reply_char_limit: int = 140
    greeting: str = "Hi, I'm Alex. Tell me a little about yourself."
    kickoff_prompt: str = "Please introduce the problem."
    opening_prompt: str = "Please begin the interview."

    @classmethod
    def from_settings(cls, settings) -> "InterviewConfig":
        return cls(
            bootstrap_policy=settings.BOOTSTRAP_POLICY,
            stream_pause_ms=settings.STREAM_PAUSE_MS,
            default_duration_minutes=settings.DEFAULT_DURATION_MINUTES,
            reply_char_limit=settings.REPLY_CHAR_LIMIT,
        )


class ClientMessage(BaseModel):
    """Inbound websocket event"""
    model_config = ConfigDict(populate_by_name=True)

    type: str  # "start", "utterance", "audioChunk", "codeActivity", "playbackStarted", "playbackEnded", "retry", "stop"
    text: Optional[str] = None
    audio_base64: Optional[str] = Field(default=None, alias="audioBase64")
    duration_minutes: Optional[float] = Field(default=None, alias="durationMinutes")


class SessionMessage(BaseModel):
    """Outbound websocket event"""
    type: str  # "assistantText", "assistantAudio", "userText", "speakingState", "error", "timeUp", "stopped"
    text: Optional[str] = None
    audio: Optional[str] = None  # base64 encoded
    format: Optional[str] = None
    speaking: Optional[bool] = None
    message: Optional[str] = None

    def to_wire(self) -> dict:
        return self.model_dump(exclude_none=True)


class SessionStats(BaseModel):
    session_id: str
    state: TurnState
    turns: int
    problem: Optional[str] = None
