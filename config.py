import os
from dotenv import load_dotenv
from pathlib import Path

load_dotenv()

basedir = Path(__file__).resolve().parent

class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "fallback-dev-key")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", f"sqlite:///{basedir / 'instance' / 'quizboard.sqlite'}")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"

    # Daily content rotates at this local hour in this timezone.
    ROTATION_TIMEZONE = os.getenv("ROTATION_TIMEZONE", "Asia/Ho_Chi_Minh")
    ROTATION_RESET_HOUR = int(os.getenv("ROTATION_RESET_HOUR", "8"))
    DAILY_SALT = os.getenv("DAILY_SALT", "anton-daily-question-2024")

    CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", "300"))
    CACHE_MAX_ENTRIES = int(os.getenv("CACHE_MAX_ENTRIES", "500"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
