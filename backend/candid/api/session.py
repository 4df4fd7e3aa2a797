from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState
from pydantic import ValidationError
import json
import logging
import uuid
from candid.core.dependencies import (
    get_collaborators, get_http_interview_config, get_http_registry, get_interview_config, get_registry
)
from candid.engine.session_manager import Collaborators, SessionRegistry
from candid.models.session import ClientMessage, InterviewConfig

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/ws/interview")
async def websocket_interview(
    websocket: WebSocket,
    registry: SessionRegistry = Depends(get_registry),
    collaborators: Collaborators = Depends(get_collaborators),
    config: InterviewConfig = Depends(get_interview_config),
):
    """
    Main WebSocket endpoint for interview sessions.
    One connection carries exactly one session.
    """
    await websocket.accept()
    connection_id = str(uuid.uuid4())
    logger.info(f"🔗 [WEBSOCKET] Connection accepted: {connection_id}")

    async def emit(payload: dict):
        await websocket.send_json(payload)

    manager = registry.create(emit, collaborators, config=config, connection_id=connection_id)
    logger.info(f"📊 [SESSIONS] Active sessions: {len(registry)}")

    try:
        while not manager.ended:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000))

            raw = frame.get("text")
            if raw is None:
                logger.warning(f"⚠️ [WEBSOCKET] {connection_id} ignoring non-text frame")
                continue
            try:
                message = ClientMessage.model_validate(json.loads(raw))
            except (json.JSONDecodeError, ValidationError) as e:
                logger.warning(f"⚠️ [WEBSOCKET] {connection_id} ignoring malformed event: {e}")
                continue
            await manager.dispatch(message)

    except WebSocketDisconnect:
        logger.info(f"🔌 [WEBSOCKET] Client {connection_id} disconnected")
    except Exception as e:
        logger.exception(f"❌ [SESSION] Session error for {connection_id}: {e}")
    finally:
        await registry.close(connection_id)
        try:
            if websocket.client_state != WebSocketState.DISCONNECTED:
                await websocket.close()
        except RuntimeError as e:
            logger.debug(f"🔍 [CLEANUP] {connection_id} socket already closed: {e}")
        logger.info(f"🧹 [CLEANUP] Removed {connection_id}, active sessions remaining: {len(registry)}")


@router.get("/health")
async def session_health_check(registry: SessionRegistry = Depends(get_http_registry)):
    """Health check for session service"""
    return {
        "status": "healthy",
        "service": "session",
        "active_sessions": len(registry),
    }


@router.get("/stats")
async def session_stats(
    registry: SessionRegistry = Depends(get_http_registry),
    config: InterviewConfig = Depends(get_http_interview_config),
):
    """Get session statistics"""
    return {
        "active_sessions": len(registry),
        "session_config": {
            "bootstrap_policy": config.bootstrap_policy,
            "stream_pause_ms": config.stream_pause_ms,
            "default_duration_minutes": config.default_duration_minutes,
            "reply_char_limit": config.reply_char_limit,
        },
        "sessions": [stats.model_dump(mode="json") for stats in registry.stats()],
    }
