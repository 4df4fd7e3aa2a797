class InterviewEngineError(Exception):
    """Base class for errors raised by the interview engine"""


class ExternalServiceError(InterviewEngineError):
    """A collaborator (LLM, TTS, STT, problem source) failed.

    Always scoped to the session that made the call; the session stays
    usable and the caller may retry.
    """

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.message = message


class SessionClosedError(InterviewEngineError):
    """A write reached a session that has already been torn down"""


class ProtocolMisuse(InterviewEngineError):
    """An inbound event the session cannot accept in its current state"""
