from fastapi import APIRouter, Depends, HTTPException
import base64
import logging
from candid.core.config import settings
from candid.core.dependencies import get_http_collaborators
from candid.core.exceptions import ExternalServiceError
from candid.engine.session_manager import Collaborators
from candid.models.tts import DirectTTSRequest, DirectTTSResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/generate", response_model=DirectTTSResponse)
async def generate_speech(request: DirectTTSRequest,
                          collaborators: Collaborators = Depends(get_http_collaborators)):
    """
    HTTP endpoint for direct speech generation
    """
    if not request.text.strip():
        return DirectTTSResponse(
            success=False,
            error="Empty text provided"
        )

    synthesizer = collaborators.synthesizer
    try:
        if request.config is not None:
            audio_data = await synthesizer.synthesize(request.text, config=request.config)
        else:
            audio_data = await synthesizer.synthesize(request.text)
    except ExternalServiceError as e:
        logger.error(f"❌ [TTS] Generation error: {e}")
        raise HTTPException(status_code=500, detail=e.message)

    return DirectTTSResponse(
        success=True,
        audio_data=base64.b64encode(audio_data).decode('utf-8'),
        audio_size=len(audio_data),
        format=request.config.audio_format if request.config else synthesizer.audio_format
    )


@router.get("/health")
async def tts_health_check():
    """Health check for TTS service"""
    return {
        "status": "healthy",
        "service": "tts",
        "rime_api_configured": bool(settings.RIME_API_KEY)
    }


@router.get("/config")
async def get_tts_config():
    """Get current TTS configuration"""
    return {
        "default_speaker": settings.RIME_SPEAKER,
        "default_model": settings.RIME_MODEL_ID,
        "default_format": settings.AUDIO_FORMAT,
        "rime_configured": bool(settings.RIME_API_KEY)
    }
