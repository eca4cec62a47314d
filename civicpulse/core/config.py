from pydantic_settings import BaseSettings, NoDecode
from pydantic import field_validator
from typing import List, Union
from typing_extensions import Annotated
import json

DEFAULT_JWT_SECRET = "civicpulse-jwt-secret-change-in-production-min-32-chars"


class Settings(BaseSettings):
    PROJECT_NAME: str = "CivicPulse API"
    API_V1_STR: str = "/api"

    # Local SQLite by default; production sets a PostgreSQL DATABASE_URL
    DATABASE_URL: str = "sqlite:///./civicpulse.db"

    # CORS Configuration
    # Accepts a JSON array, a comma-separated list or a single URL
    # NoDecode prevents pydantic-settings from JSON-parsing before our validator runs
    BACKEND_CORS_ORIGINS: Annotated[List[str], NoDecode] = [
        "http://localhost:5173",
        "http://localhost:8000",
    ]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse CORS origins from various formats: JSON array, comma-separated, or single URL."""
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            if v.startswith("["):
                try:
                    parsed = json.loads(v)
                    if isinstance(parsed, list):
                        return parsed
                except json.JSONDecodeError:
                    pass
            if "," in v:
                return [url.strip() for url in v.split(",") if url.strip()]
            if v.strip():
                return [v.strip()]
        return []

    @property
    def is_production(self) -> bool:
        return not self.DATABASE_URL.startswith("sqlite") and "localhost" not in self.DATABASE_URL

    # JWT sessions
    JWT_SECRET_KEY: str = DEFAULT_JWT_SECRET
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Google OAuth
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_TOKENINFO_URL: str = "https://oauth2.googleapis.com/tokeninfo"

    # Supabase Storage (report photos)
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_KEY: str = ""
    SUPABASE_STORAGE_BUCKET: str = "reports"
    MAX_IMAGE_BYTES: int = 10 * 1024 * 1024  # 10 MB

    # Notifications
    NOTIFICATION_LIST_LIMIT: int = 10

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()
