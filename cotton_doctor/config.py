import os

from dotenv import load_dotenv

load_dotenv()  # reads .env


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
    GEMINI_INSIGHTS = _flag("GEMINI_INSIGHTS", "true")

    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///diagnoses.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    CLASSIFIER_MODE = os.getenv("CLASSIFIER_MODE", "mock")
    COTTON_REJECT_RATE = float(os.getenv("COTTON_REJECT_RATE", "0.3"))
    SESSION_STORE_SIZE = int(os.getenv("SESSION_STORE_SIZE", "1000"))
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16 MB
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
