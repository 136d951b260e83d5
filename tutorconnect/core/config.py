import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./tutorconnect.db")

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:3000"])
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:3000")

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

SMTP_ENABLED = _get_bool(os.getenv("SMTP_ENABLED"), default=False)
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", "TutorConnect <noreply@tutorconnect.no>")

APPOINTMENT_SWEEP_ENABLED = _get_bool(os.getenv("APPOINTMENT_SWEEP_ENABLED"), default=True)
APPOINTMENT_SWEEP_INTERVAL_SECONDS = int(os.getenv("APPOINTMENT_SWEEP_INTERVAL_SECONDS", "300"))

TYPING_INDICATOR_TTL_SECONDS = int(os.getenv("TYPING_INDICATOR_TTL_SECONDS", "5"))

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if APPOINTMENT_SWEEP_INTERVAL_SECONDS <= 0:
        raise RuntimeError("APPOINTMENT_SWEEP_INTERVAL_SECONDS must be positive.")
