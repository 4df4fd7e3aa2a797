import asyncio
import websockets
import websockets.exceptions
import logging
from typing import Optional, List
from candid.core.config import settings
from candid.core.exceptions import ExternalServiceError
from candid.models.tts import TTSConfig
from candid.services.base.speech_io import BaseSpeechSynthesizer

logger = logging.getLogger(__name__)

# Rime closes streams lazily; once audio has arrived this much silence ends it
END_OF_STREAM_IDLE_SECONDS = 5.0


class RimeTTSClient:
    def __init__(self, api_key: str, speaker="cove", model_id="mistv2", audio_format="mp3"):
        self.speaker = speaker
        self.model_id = model_id
        self.audio_format = audio_format
        self.url = f"wss://users.rime.ai/ws?speaker={speaker}&modelId={model_id}&audioFormat={audio_format}"
        self.auth_headers = {
            "Authorization": f"Bearer {api_key}"
        }

    def text_to_tokens(self, text: str) -> List[str]:
        """Convert text to tokens for Rime streaming"""
        words = text.split()
        tokens = []

        for i, word in enumerate(words):
            tokens.append(word)
            if i < len(words) - 1:
                tokens.append(" ")

        tokens.append("<EOS>")
        return tokens

    async def generate_audio_stream(self, text: str) -> bytes:
        """Generate audio from text using the Rime websocket API"""
        tokens = self.text_to_tokens(text)

        logger.info(f"🔊 [TTS] Starting Rime generation for text: {text[:50]}...")

        async with websockets.connect(self.url, additional_headers=self.auth_headers) as websocket:
            await self._send_tokens(websocket, tokens)
            audio_data = await self._receive_audio(websocket)

        logger.info(f"🔊 [TTS] Rime generation completed. Audio size: {len(audio_data)} bytes")
        return audio_data

    async def _send_tokens(self, websocket, tokens):
        logger.debug(f"🔍 [TTS] Sending {len(tokens)} tokens to Rime API")
        for token in tokens:
            await websocket.send(token)
            await asyncio.sleep(0.01)

    async def _receive_audio(self, websocket):
        audio_data = b''
        chunk_count = 0

        while True:
            try:
                if chunk_count:
                    chunk = await asyncio.wait_for(websocket.recv(), timeout=END_OF_STREAM_IDLE_SECONDS)
                else:
                    chunk = await websocket.recv()
            except asyncio.TimeoutError:
                logger.debug(f"🔍 [TTS] No more audio after {chunk_count} chunks - assuming complete")
                break
            except websockets.exceptions.ConnectionClosedOK:
                logger.debug(f"🔍 [TTS] Rime connection closed normally after {chunk_count} chunks")
                break

            if isinstance(chunk, bytes):
                audio_data += chunk
                chunk_count += 1

        return audio_data


class RimeSpeechSynthesizer(BaseSpeechSynthesizer):
    """Text-to-speech collaborator backed by Rime"""

    def __init__(self, api_key: Optional[str] = None, config: Optional[TTSConfig] = None):
        self.api_key = api_key if api_key is not None else settings.RIME_API_KEY
        self.default_config = config or TTSConfig(
            speaker=settings.RIME_SPEAKER,
            model_id=settings.RIME_MODEL_ID,
            audio_format=settings.AUDIO_FORMAT,
        )
        self.audio_format = self.default_config.audio_format

    async def synthesize(self, text: str, config: Optional[TTSConfig] = None) -> bytes:
        if not text.strip():
            raise ValueError("Empty text provided for TTS generation")
        if not self.api_key:
            raise ExternalServiceError("tts", "RIME_API_KEY not configured")

        tts_config = config or self.default_config
        client = RimeTTSClient(
            api_key=self.api_key,
            speaker=tts_config.speaker,
            model_id=tts_config.model_id,
            audio_format=tts_config.audio_format
        )

        try:
            audio_data = await client.generate_audio_stream(text)
        except Exception as e:
            message = str(e)
            if "401" in message or "Unauthorized" in message:
                logger.error("❌ [TTS] Rime API authentication failed - check RIME_API_KEY")
            elif "429" in message or "rate limit" in message.lower():
                logger.error("❌ [TTS] Rime API rate limit exceeded")
            else:
                logger.error(f"❌ [TTS] Rime API error: {e}")
            raise ExternalServiceError("tts", message) from e

        if not audio_data:
            raise ExternalServiceError("tts", "no audio received from Rime")
        return audio_data
