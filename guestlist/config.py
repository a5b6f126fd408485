"""Application configuration via environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from .env or environment."""

    DATABASE_URL: str = "sqlite:///./guestlist.db"
    CORS_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    # Matching oracle (vision model)
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o"
    MATCH_BATCH_SIZE: int = 10

    # Organizer access gate: one shared password, sessions signed with SECRET_KEY
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = "admin"
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 720

    # Capability links
    TOKEN_LENGTH: int = 24

    # Photo storage
    PHOTO_DIR: str = "./photos"
    PHOTO_URL_PREFIX: str = "/photos"
    PHOTO_MAX_WIDTH: int = 1024
    MAX_UPLOAD_SIZE_MB: int = 10

    # Reports
    DISPLAY_TIMEZONE: str = "America/Sao_Paulo"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
