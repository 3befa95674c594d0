from typing import Optional
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# IMPORTANT: load .env BEFORE Settings() is created
load_dotenv()

class Settings(BaseSettings):
    DATABASE_URL: str = ""
    JWT_SECRET: str = ""
    BUILD_ID: str = "local-dev"
    LOG_LEVEL: str = "INFO"

    # Google Business Profile OAuth (required for token refresh and /google/*)
    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_CLIENT_SECRET: Optional[str] = None
    # Optional override; otherwise derived from the incoming request URL
    GOOGLE_REDIRECT_URI: Optional[str] = None

    # Places API (fallback review source + onboarding lookup)
    GOOGLE_PLACES_API_KEY: Optional[str] = None

    # Reply drafts (Gemini through its OpenAI-compatible endpoint)
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta/openai/"

    DASHBOARD_URL: str = "/dashboard"
    HTTP_TIMEOUT_SECONDS: float = 20.0
    LOCATION_CACHE_TTL_SECONDS: int = 600

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
