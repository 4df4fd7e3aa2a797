from pydantic import BaseModel
from typing import Optional


class TTSConfig(BaseModel):
    speaker: str = "cove"
    model_id: str = "mistv2"
    audio_format: str = "mp3"


class DirectTTSRequest(BaseModel):
    text: str
    config: Optional[TTSConfig] = None


class DirectTTSResponse(BaseModel):
    success: bool
    audio_data: Optional[str] = None  # base64 encoded
    audio_size: Optional[int] = None
    format: Optional[str] = None
    error: Optional[str] = None
