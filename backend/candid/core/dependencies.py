from fastapi import Request, WebSocket

from candid.core.config import settings
from candid.engine.session_manager import Collaborators, SessionRegistry
from candid.models.session import InterviewConfig
from candid.services.problem_service import JSONProblemSource
from candid.services.response_generator import GeminiResponseGenerator
from candid.services.stt_service import SpeechmaticsTranscriber
from candid.services.tts_service import RimeSpeechSynthesizer


def build_collaborators(app_settings=None) -> Collaborators:
    """Production collaborators. Clients are created lazily, so missing keys only fail on use."""
    app_settings = app_settings or settings
    return Collaborators(
        response_generator=GeminiResponseGenerator(
            api_key=app_settings.GEMINI_API_KEY,
            model=app_settings.GEMINI_MODEL,
            temperature=app_settings.LLM_TEMPERATURE,
            char_limit=app_settings.REPLY_CHAR_LIMIT,
        ),
        synthesizer=RimeSpeechSynthesizer(api_key=app_settings.RIME_API_KEY),
        transcriber=SpeechmaticsTranscriber(
            api_key=app_settings.SPEECHMATICS_API_KEY,
            url=app_settings.SPEECHMATICS_URL,
            language=app_settings.STT_LANGUAGE,
        ),
        problem_source=JSONProblemSource(path=app_settings.PROBLEM_FILE),
    )


def get_registry(websocket: WebSocket) -> SessionRegistry:
    return websocket.app.state.registry


def get_collaborators(websocket: WebSocket) -> Collaborators:
    return websocket.app.state.collaborators


def get_interview_config(websocket: WebSocket) -> InterviewConfig:
    return websocket.app.state.interview_config


def get_http_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_http_collaborators(request: Request) -> Collaborators:
    return request.app.state.collaborators


def get_http_interview_config(request: Request) -> InterviewConfig:
    return request.app.state.interview_config
