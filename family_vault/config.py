"""Application settings."""

from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "family_vault"

    jwt_secret: str = "devsecret-change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    bcrypt_rounds: int = 12

    upload_dir: Path = Path(__file__).resolve().parent.parent / "uploads"
    max_upload_size_mb: int = 20

    host: str = "0.0.0.0"
    port: int = 5000
    debug: bool = False
    log_level: str = "INFO"
    # daily-rotated application.log and error.log go here when set
    log_dir: Optional[Path] = None
    log_retention_days: int = 14
    cors_origins: List[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
