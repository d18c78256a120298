from pathlib import Path
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
import json
import logging
from functools import lru_cache

from .storage.base import MAX_PAGE_SIZE

DEFAULT_SCOPES = [
    "https://www.googleapis.com/auth/drive.metadata.readonly",
    "https://www.googleapis.com/auth/drive",
]


class Settings(BaseSettings):
    """
    Centralized application configuration with type validation.
    Automatically reads variables from the environment and the .env file.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- General Settings ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[Path] = None

    # --- Google Drive Settings ---
    # Either a service account key (production) or an OAuth client secrets
    # document. GDRIVE_TOKEN_JSON selects the OAuth authorized-user mode.
    GDRIVE_CREDENTIALS_JSON: Optional[str] = None
    GDRIVE_TOKEN_JSON: Optional[str] = None
    GDRIVE_SCOPES: List[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))

    # --- Accounting Settings ---
    PAGE_SIZE: int = MAX_PAGE_SIZE
    MAX_WORKERS: int = 8

    # --- HTTP Settings ---
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    ADMIN_API_KEY: Optional[str] = None
    # Seconds uvicorn waits for open requests on shutdown before in-flight
    # walks are cancelled.
    SHUTDOWN_GRACE_SECONDS: int = 10

    @model_validator(mode="before")
    @classmethod
    def validate_drive_settings(cls, values):
        credentials = values.get("GDRIVE_CREDENTIALS_JSON")
        if not credentials or not str(credentials).strip():
            raise ValueError("GDRIVE_CREDENTIALS_JSON is required")
        try:
            json.loads(credentials)
        except (TypeError, ValueError):
            raise ValueError("GDRIVE_CREDENTIALS_JSON must be a JSON document")

        page_size = values.get("PAGE_SIZE")
        if page_size is not None and not 1 <= int(page_size) <= MAX_PAGE_SIZE:
            raise ValueError(f"PAGE_SIZE must be between 1 and {MAX_PAGE_SIZE}")

        if not values.get("GDRIVE_TOKEN_JSON"):
            logging.info(
                "GDRIVE_TOKEN_JSON not set. Google Drive will be accessed with service account credentials."
            )
        return values

    @property
    def uses_service_account(self) -> bool:
        return not self.GDRIVE_TOKEN_JSON


@lru_cache()
def get_settings() -> Settings:
    """
    Returns a cached instance of the application settings.
    The first call to this function will initialize the settings.
    """
    return Settings()
