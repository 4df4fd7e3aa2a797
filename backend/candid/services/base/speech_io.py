from abc import ABC, abstractmethod


class BaseSpeechSynthesizer(ABC):
    audio_format: str = "mp3"

    @abstractmethod
    async def synthesize(self, text: str) -> bytes:
        pass


class BaseTranscriber(ABC):
    @abstractmethod
    async def transcribe(self, audio: bytes) -> str:
        pass
