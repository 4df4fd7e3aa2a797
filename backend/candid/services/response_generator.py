import os
import logging
from typing import List, Optional, Sequence, Tuple
from google import genai
from google.genai import types
from jinja2 import Environment, FileSystemLoader

from candid.core.config import settings
from candid.core.exceptions import ExternalServiceError
from candid.models.session import Problem, Role, Turn
from candid.services.base.response_generator import BaseResponseGenerator

logger = logging.getLogger(__name__)

# Setup Jinja2 environment for templates
template_dir = os.path.join(os.path.dirname(os.path.dirname(__file__)), 'templates')
env = Environment(loader=FileSystemLoader(template_dir))

THINKING = "[THINKING]"
ENCOURAGE = "[ENCOURAGE]"

# Replies the interviewer gives without speaking, with what the transcript shows
SILENT_REPLIES = {
    THINKING: "...",
    ENCOURAGE: "Go on.",
}

ELLIPSIS = "…"


def is_silent_reply(text: str) -> bool:
    return text in SILENT_REPLIES


def display_text(text: str) -> str:
    return SILENT_REPLIES.get(text, text)


def truncate_reply(text: str, limit: int) -> str:
    """Cap a reply at ``limit`` characters, cutting on a word boundary"""
    text = text.strip()
    if is_silent_reply(text) or len(text) <= limit:
        return text

    cut = text.rfind(" ", 0, limit - 1)
    if cut <= 0:
        cut = limit - 1
    return text[:cut].rstrip() + ELLIPSIS


def build_system_turn(problem: Problem, char_limit: int = 140) -> Turn:
    template = env.get_template("interviewer_system.j2")
    content = template.render(problem=problem, char_limit=char_limit)
    return Turn(role=Role.SYSTEM, content=content.strip())


class GeminiResponseGenerator(BaseResponseGenerator):
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 temperature: Optional[float] = None, char_limit: Optional[int] = None,
                 client=None):
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.model = model or settings.GEMINI_MODEL
        self.temperature = temperature if temperature is not None else settings.LLM_TEMPERATURE
        self.char_limit = char_limit or settings.REPLY_CHAR_LIMIT
        self._client = client

    @property
    def client(self):
        # Created on first use so the app can start without credentials
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def _to_request(self, turns: Sequence[Turn]) -> Tuple[Optional[str], List[types.Content]]:
        """Split off the system turn and merge consecutive same-role turns"""
        system_parts = []
        contents: List[types.Content] = []

        for turn in turns:
            if turn.role == Role.SYSTEM:
                system_parts.append(turn.content)
                continue

            role = "model" if turn.role == Role.ASSISTANT else "user"
            part = types.Part(text=turn.content)
            if contents and contents[-1].role == role:
                contents[-1].parts.append(part)
            else:
                contents.append(types.Content(role=role, parts=[part]))

        system_instruction = "\n\n".join(system_parts) if system_parts else None
        return system_instruction, contents

    async def generate(self, turns: Sequence[Turn]) -> str:
        system_instruction, contents = self._to_request(turns)
        if not contents:
            raise ValueError("conversation has no assistant or user turns to respond to")

        logger.info(f"🤖 [LLM] Generating reply from {len(contents)} messages")

        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=types.GenerateContentConfig(
                    system_instruction=system_instruction,
                    temperature=self.temperature,
                    max_output_tokens=200
                )
            )
        except Exception as e:
            logger.error(f"❌ [LLM] Gemini request failed: {e}")
            raise ExternalServiceError("llm", str(e)) from e

        text = (response.text or "").strip()
        if not text:
            raise ExternalServiceError("llm", "empty reply from model")

        reply = truncate_reply(text, self.char_limit)
        logger.info(f"🤖 [LLM] Reply: {reply[:50]}")
        return reply
