import os

from dotenv import load_dotenv

# Load .env file (so GEMINI_API_KEY and friends are available)
load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-this")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # ------------------ GEMINI ------------------
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "models/gemini-2.0-flash")
    AI_TIMEOUT = float(os.getenv("AI_TIMEOUT", "60"))

    # ------------------ STORAGE ------------------
    MONGO_URL = os.getenv("MONGO_URL")
    MONGO_DB = os.getenv("MONGO_DB", "portfolio_builder")

    # ------------------ MEDIA ------------------
    CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
    CLOUDINARY_UPLOAD_PRESET = os.getenv("CLOUDINARY_UPLOAD_PRESET")
    MEDIA_TIMEOUT = float(os.getenv("MEDIA_TIMEOUT", "30"))

    # ------------------ IDENTITY ------------------
    GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")

    # ------------------ APP ------------------
    PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:5000/p")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    DEFAULT_TEMPLATE = os.getenv("DEFAULT_TEMPLATE", "modern")
    DEFAULT_THEME = os.getenv("DEFAULT_THEME", "theme-space")
    STRICT_VALIDATION = _flag("STRICT_VALIDATION")

    # ------------------ SESSIONS ------------------
    SESSION_TTL = float(os.getenv("SESSION_TTL", "3600"))
    MAX_SESSIONS = int(os.getenv("MAX_SESSIONS", "1000"))
    MAX_CONTENT_LENGTH = 5 * 1024 * 1024
