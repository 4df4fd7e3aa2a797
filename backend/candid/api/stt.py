from fastapi import APIRouter, Depends, HTTPException
import base64
import binascii
import logging
from candid.core.config import settings
from candid.core.dependencies import get_http_collaborators
from candid.core.exceptions import ExternalServiceError
from candid.engine.session_manager import Collaborators
from candid.models.stt import STTRequest, STTResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/transcribe", response_model=STTResponse)
async def transcribe_audio(request: STTRequest,
                           collaborators: Collaborators = Depends(get_http_collaborators)):
    """
    HTTP endpoint for transcribing one recorded clip
    """
    try:
        audio = base64.b64decode(request.audio_base64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="audio_base64 is not valid base64")

    try:
        transcript = await collaborators.transcriber.transcribe(audio)
    except ExternalServiceError as e:
        logger.error(f"❌ [STT] Transcription error: {e}")
        raise HTTPException(status_code=500, detail=e.message)

    return STTResponse(
        type="done",
        text=transcript
    )


@router.get("/health")
async def stt_health_check():
    """Health check for STT service"""
    return {
        "status": "healthy",
        "service": "stt",
        "speechmatics_configured": bool(settings.SPEECHMATICS_API_KEY)
    }
