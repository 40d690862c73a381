from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel
import os

# Load .env automatically
load_dotenv()


def _split_origins(raw: str) -> List[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "development")
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./fintrack.db")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # External identity service
    auth_url: Optional[str] = os.getenv("AUTH_URL")
    auth_api_key: Optional[str] = os.getenv("AUTH_API_KEY")
    auth_public_key: Optional[str] = os.getenv("AUTH_PUBLIC_KEY")
    auth_jwt_algorithm: str = os.getenv("AUTH_JWT_ALGORITHM", "RS256")
    auth_audience: str = os.getenv("AUTH_AUDIENCE", "authenticated")

    cors_origins: List[str] = _split_origins(
        os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


# Global settings instance
settings = Settings()
