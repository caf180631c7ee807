from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API Settings
    PROJECT_NAME: str = "PartiPay API"
    API_V1_STR: str = "/api/v1"
    PROJECT_VERSION: str = "0.1.0"
    DESCRIPTION: str = "Restaurant bill splitting and settlement API"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # MongoDB
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "partipay"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5000"]

    # Splitting
    MIN_PARTICIPANTS: int = 2
    MAX_PARTICIPANTS: int = 8

    # External collaborators (POS and mock bank)
    POS_TIMEOUT_SECONDS: float = 5.0
    BANK_TIMEOUT_SECONDS: float = 10.0
    BANK_AUTH_DELAY_SECONDS: float = 1.5
    BANK_AUTH_FAILURE_RATE: float = 0.05

    # Realtime
    REALTIME_SEND_TIMEOUT_SECONDS: float = 2.0

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env"
    )

settings = Settings()
