"""
Centralized application configuration
"""
import json
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment / .env"""

    # API Settings
    API_TITLE: str = "RentalShop API"
    API_VERSION: str = "1.0.0"
    API_DESCRIPTION: str = "Backend API for the RentalShop platform"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    API_DEBUG: bool = False

    # Database (checked when a connection is requested)
    DATABASE_URL: str = ""
    DB_CONNECT_RETRIES: int = 3
    DB_CONNECT_TIMEOUT: int = 10

    # Auth
    AUTH_SECRET: str = ""
    SYNC_API_KEY: Optional[str] = None

    # CORS - Can be string (comma-separated) or JSON array
    # Example: "http://localhost:3000,https://yourdomain.com" or '["http://localhost:3000"]'
    ALLOWED_ORIGINS: Optional[str] = "http://localhost:3000,http://localhost:3001"

    # Legacy POS server
    LEGACY_API_URL: str = ""
    LEGACY_API_TOKEN: str = ""
    LEGACY_API_COOKIE: Optional[str] = None

    # Imports and backups
    IMPORT_MAX_ROWS: int = 1000
    IMPORT_MAX_FILE_SIZE: int = 10 * 1024 * 1024
    BACKUP_DIR: str = "backups"

    def get_allowed_origins(self) -> List[str]:
        """Parse ALLOWED_ORIGINS string into list"""
        if not self.ALLOWED_ORIGINS:
            return ["http://localhost:3000"]

        try:
            origins = json.loads(self.ALLOWED_ORIGINS)
            if isinstance(origins, list):
                return origins
        except (json.JSONDecodeError, ValueError):
            pass

        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
