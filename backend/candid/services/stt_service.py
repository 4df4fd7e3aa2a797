import asyncio
import logging
from typing import Optional
from httpx import HTTPStatusError
from speechmatics.batch_client import BatchClient
from speechmatics.models import ConnectionSettings

from candid.core.config import settings
from candid.core.exceptions import ExternalServiceError
from candid.services.base.speech_io import BaseTranscriber

logger = logging.getLogger(__name__)


class SpeechmaticsTranscriber(BaseTranscriber):
    """Speech-to-text collaborator: one recorded clip in, its transcript out"""

    def __init__(self, api_key: Optional[str] = None, url: Optional[str] = None,
                 language: Optional[str] = None, filename: str = "audio.webm"):
        self.api_key = api_key if api_key is not None else settings.SPEECHMATICS_API_KEY
        self.url = url or settings.SPEECHMATICS_URL
        self.language = language or settings.STT_LANGUAGE
        self.filename = filename

    def _transcribe_blocking(self, audio: bytes, filename: str) -> str:
        connection = ConnectionSettings(url=self.url, auth_token=self.api_key)
        conf = {
            "type": "transcription",
            "transcription_config": {
                "language": self.language,
                "operating_point": "enhanced",
            },
        }
        with BatchClient(connection) as client:
            job_id = client.submit_job(audio=(filename, audio), transcription_config=conf)
            logger.info(f"🎤 [STT] Submitted Speechmatics job {job_id} ({len(audio)} bytes)")
            return client.wait_for_completion(job_id, transcription_format="txt")

    async def transcribe(self, audio: bytes, filename: Optional[str] = None) -> str:
        if not audio:
            return ""
        if not self.api_key:
            raise ExternalServiceError("stt", "SPEECHMATICS_API_KEY not configured")

        try:
            transcript = await asyncio.to_thread(self._transcribe_blocking, audio, filename or self.filename)
        except HTTPStatusError as e:
            if e.response.status_code == 401:
                logger.error("❌ [STT] Invalid Speechmatics API key")
            else:
                logger.error(f"❌ [STT] Speechmatics HTTP error: {e}")
            raise ExternalServiceError("stt", str(e)) from e
        except Exception as e:
            logger.error(f"❌ [STT] Transcription failed: {e}")
            raise ExternalServiceError("stt", str(e)) from e

        text = (transcript or "").strip()
        logger.info(f"🎤 [STT] Transcript: {text[:50]}")
        return text
