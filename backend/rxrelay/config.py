"""
RxRelay Backend – Configuration Loader
Loads all secrets and settings from .env via environment variables.
No secret may be hard-coded anywhere in the codebase.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env from project root
_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(dotenv_path=_env_path)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Base configuration – values sourced exclusively from environment."""

    # --- Secrets ---
    OPENAI_API_KEY: str = os.environ.get("OPENAI_API_KEY", "")
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "")
    FLASK_SECRET_KEY: str = os.environ.get("FLASK_SECRET_KEY", "")

    # --- AI extraction ---
    OPENAI_VISION_MODEL: str = os.environ.get("OPENAI_VISION_MODEL", "gpt-4o-mini")
    OPENAI_TEXT_MODEL: str = os.environ.get("OPENAI_TEXT_MODEL", "gpt-4o-mini")
    LOW_CONFIDENCE_THRESHOLD: int = int(os.environ.get("LOW_CONFIDENCE_THRESHOLD", "70"))

    # --- App ---
    APP_ENV: str = os.environ.get("APP_ENV", "development")
    DEBUG: bool = APP_ENV == "development"
    PUBLIC_BASE_URL: str = os.environ.get("PUBLIC_BASE_URL", "http://localhost:5000").rstrip("/")

    # --- Access tokens (clinician share links) ---
    ACCESS_TOKEN_TTL_MINUTES: int = int(os.environ.get("ACCESS_TOKEN_TTL_MINUTES", "10"))
    ACCESS_TOKEN_SINGLE_USE: bool = _env_bool("ACCESS_TOKEN_SINGLE_USE", True)

    # --- Uploads ---
    MAX_UPLOAD_BYTES: int = int(os.environ.get("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
    MAX_DOCUMENTS_PER_INTAKE: int = int(os.environ.get("MAX_DOCUMENTS_PER_INTAKE", "5"))

    # --- Rate limiting ---
    RATE_LIMIT_DEFAULT: str = os.environ.get("RATE_LIMIT_DEFAULT", "60/minute")
    RATE_LIMIT_VIEW: str = os.environ.get("RATE_LIMIT_VIEW", "20/minute")

    # --- Validation ---
    @classmethod
    def validate(cls) -> None:
        """Raise on missing critical environment variables."""
        required = ["OPENAI_API_KEY", "DATABASE_URL", "FLASK_SECRET_KEY"]
        missing = [k for k in required if not getattr(cls, k)]
        if missing:
            raise EnvironmentError(
                f"Missing required environment variables: {', '.join(missing)}. "
                "Ensure a .env file exists with all required values."
            )
