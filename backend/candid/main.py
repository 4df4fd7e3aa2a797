from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
from contextlib import asynccontextmanager
from typing import Optional
from candid.api import session, stt, tts
from candid.core.config import settings
from candid.core.dependencies import build_collaborators
from candid.engine.session_manager import Collaborators, SessionRegistry
from candid.models.session import InterviewConfig

# Configure logging
logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)


def validate_api_connections(app_settings) -> None:
    """Warn about collaborators that cannot work without credentials"""
    logger.info("🚀 [STARTUP] Checking API credentials...")
    missing = app_settings.missing_credentials()
    for name in missing:
        logger.warning(f"⚠️ [STARTUP] {name} missing - the matching service will fail on use")
    if not missing:
        logger.info("🚀 [STARTUP] All API keys present")


def create_app(app_settings=None, collaborators: Optional[Collaborators] = None) -> FastAPI:
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events"""
        logger.info("🚀 [STARTUP] Starting interview engine...")
        validate_api_connections(app_settings)
        app.state.registry = SessionRegistry()
        app.state.collaborators = collaborators or build_collaborators(app_settings)
        app.state.interview_config = InterviewConfig.from_settings(app_settings)
        logger.info("🚀 [STARTUP] Application ready")

        yield

        logger.info(f"🛑 [SHUTDOWN] Shutting down with {len(app.state.registry)} active sessions")

    app = FastAPI(title="Candid Interview Engine", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(stt.router, prefix="/stt", tags=["Speech-to-Text"])
    app.include_router(tts.router, prefix="/tts", tags=["Text-to-Speech"])
    app.include_router(session.router, prefix="/session", tags=["Interview Sessions"])

    @app.get("/")
    async def root():
        return {"message": "Candid Interview Engine API"}

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": "interview-engine",
            "missing_credentials": app_settings.missing_credentials(),
        }

    return app


app = create_app()
