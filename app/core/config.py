import os
from pydantic_settings import BaseSettings
from dotenv import load_dotenv
from typing import List

load_dotenv()

DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://localhost:5173"]

class Settings(BaseSettings):
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "accountd"

    SECRET_KEY: str = os.getenv("SECRET_KEY", "supersecretkey")
    ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
    # 5 days
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "7200"))

    OTP_LENGTH: int = int(os.getenv("OTP_LENGTH", "6"))
    OTP_EXPIRE_MINUTES: int = int(os.getenv("OTP_EXPIRE_MINUTES", "10"))
    BCRYPT_ROUNDS: int = int(os.getenv("BCRYPT_ROUNDS", "12"))

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./app.db")
    POSTGRES_URL: str = os.getenv("POSTGRES_URL", "")

    SMTP_HOST: str = os.getenv("SMTP_HOST", "")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME: str = os.getenv("SMTP_USERNAME", "")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
    EMAIL_FROM: str = os.getenv("EMAIL_FROM", "")

    class Config:
        case_sensitive = True


def get_cors_origins() -> List[str]:
    """
    Get the CORS origins from environment or use defaults
    """
    cors_origins_env = os.getenv("CORS_ORIGINS", "")
    if cors_origins_env:
        # Handle comma-separated list from environment variable
        origins = [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]
        if origins:
            return origins

    return DEFAULT_CORS_ORIGINS

settings = Settings()
