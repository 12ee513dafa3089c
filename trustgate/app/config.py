from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    PROJECT_NAME: str = "Trustgate"
    VERSION: str = "0.1.0"
    API_PREFIX: str = "/api"

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Image safety provider (Sightengine)
    SIGHTENGINE_API_USER: str = ""
    SIGHTENGINE_API_SECRET: str = ""
    SIGHTENGINE_API_URL: str = "https://api.sightengine.com/1.0/check.json"

    # Toxicity provider (Perspective)
    PERSPECTIVE_API_KEY: str = ""
    PERSPECTIVE_API_URL: str = "https://commentanalyzer.googleapis.com/v1alpha1/comments:analyze"
    PERSPECTIVE_LANGUAGE: str = "pt"

    # Content classification provider (Gemini)
    GEMINI_API_KEY: str = ""
    GEMINI_API_URL: str = "https://generativelanguage.googleapis.com/v1beta/models"
    GEMINI_MODEL: str = "gemini-1.5-flash"

    # Transport limit applied to every provider round trip
    PROVIDER_TIMEOUT_S: float = 15.0

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    # Missing provider credentials are a valid runtime state: each analyzer
    # checks for them per call and degrades on its own.
    return Settings()
