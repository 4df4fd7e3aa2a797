import os
import logging
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

PACKAGE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
DEFAULT_PROBLEM_FILE = os.path.join(PACKAGE_DIR, "data", "problems.json")

BOOTSTRAP_POLICIES = ("greeting", "model")


class Settings:
    def __init__(self):
        """Initialize settings with validation"""
        self._load_settings()
        self._validate_settings()

    def _load_settings(self):
        """Load settings from the environment"""
        # Chat completion
        self.GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
        self.GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        self.LLM_TEMPERATURE: float = self._number("LLM_TEMPERATURE", "0.2", float)
        self.REPLY_CHAR_LIMIT: int = self._number("REPLY_CHAR_LIMIT", "140", int)

        # Text-to-speech
        self.RIME_API_KEY: str = os.getenv("RIME_API_KEY", "")
        self.RIME_SPEAKER: str = os.getenv("RIME_SPEAKER", "cove")
        self.RIME_MODEL_ID: str = os.getenv("RIME_MODEL_ID", "mistv2")
        self.AUDIO_FORMAT: str = os.getenv("AUDIO_FORMAT", "mp3")

        # Speech-to-text
        self.SPEECHMATICS_API_KEY: str = os.getenv("SPEECHMATICS_API_KEY", "")
        self.SPEECHMATICS_URL: str = os.getenv("SPEECHMATICS_URL", "https://asr.api.speechmatics.com/v2")
        self.STT_LANGUAGE: str = os.getenv("STT_LANGUAGE", "en")

        # Turn taking
        self.EDITOR_PAUSE_MS: int = self._number("EDITOR_PAUSE_MS", "5000", int)
        self.STREAM_PAUSE_MS: int = self._number("STREAM_PAUSE_MS", "0", int)
        self.BOOTSTRAP_POLICY: str = os.getenv("BOOTSTRAP_POLICY", "greeting").strip().lower()

        # Session
        self.DEFAULT_DURATION_MINUTES: int = self._number("DEFAULT_DURATION_MINUTES", "30", int)
        self.PROBLEM_FILE: str = os.getenv("PROBLEM_FILE", DEFAULT_PROBLEM_FILE)

        # Server
        self.CORS_ORIGINS: list = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
            if origin.strip()
        ]
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    def _number(self, var_name: str, default: str, cast):
        raw = os.getenv(var_name, default)
        try:
            return cast(raw)
        except ValueError:
            raise ValueError(f"CONFIGURATION ERROR - {var_name} must be a number, got {raw!r}")

    def _validate_settings(self):
        """Reject values the engine cannot run with"""
        invalid_vars = []

        if self.BOOTSTRAP_POLICY not in BOOTSTRAP_POLICIES:
            invalid_vars.append(f"  - BOOTSTRAP_POLICY: expected one of {', '.join(BOOTSTRAP_POLICIES)}")
        if self.EDITOR_PAUSE_MS < 0:
            invalid_vars.append("  - EDITOR_PAUSE_MS: must not be negative")
        if self.STREAM_PAUSE_MS < 0:
            invalid_vars.append("  - STREAM_PAUSE_MS: must not be negative")
        if self.REPLY_CHAR_LIMIT < 10:
            invalid_vars.append("  - REPLY_CHAR_LIMIT: must be at least 10")
        if self.DEFAULT_DURATION_MINUTES <= 0:
            invalid_vars.append("  - DEFAULT_DURATION_MINUTES: must be positive")

        if invalid_vars:
            error_msg = "CONFIGURATION ERROR - invalid environment variables:\n"
            error_msg += "\n".join(invalid_vars)
            logger.critical(error_msg)
            raise ValueError(error_msg)

    def missing_credentials(self) -> list:
        """Names of API keys that are not configured"""
        required_vars = {
            "GEMINI_API_KEY": self.GEMINI_API_KEY,
            "RIME_API_KEY": self.RIME_API_KEY,
            "SPEECHMATICS_API_KEY": self.SPEECHMATICS_API_KEY,
        }
        return [name for name, value in required_vars.items() if not value]


settings = Settings()
