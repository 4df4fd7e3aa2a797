from pydantic import BaseModel
from typing import Optional


class STTRequest(BaseModel):
    audio_base64: str


class STTResponse(BaseModel):
    type: str  # "done", "error"
    text: Optional[str] = None
    message: Optional[str] = None
