"""
Application configuration.

All settings are read from the environment (or a local `.env` file) and
exposed through the module-level `settings` singleton.
"""

import os
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process-wide settings for the agent and the coordinator service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE: Optional[str] = None

    # Coordinator service (FastAPI)
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8000
    APP_DEBUG: bool = False

    # Agent -> coordinator API
    API_URL: str = "http://localhost:8000"
    API_KEY: str = ""
    TENANT_ID: str = ""
    AGENT_ID: str = f"agent-{os.getpid()}"
    HTTP_TIMEOUT_SECONDS: float = 5.0

    # Poller / orchestrator
    POLL_INTERVAL_SECONDS: float = 30.0
    OBSERVATION_WINDOW_MINUTES: int = 5

    # Target MySQL database (the one receiving the index)
    TARGET_DB_HOST: str = "localhost"
    TARGET_DB_PORT: int = 3306
    TARGET_DB_USER: str = "optimizer"
    TARGET_DB_PASSWORD: str = ""
    TARGET_DB_DATABASE: str = ""
    TARGET_DB_CONNECT_TIMEOUT: float = 10.0

    # Coordinator store (Postgres)
    COORDINATOR_DB_HOST: str = "localhost"
    COORDINATOR_DB_PORT: int = 5432
    COORDINATOR_DB_DATABASE: str = "safeddl"
    COORDINATOR_DB_USER: str = "postgres"
    COORDINATOR_DB_PASSWORD: str = ""
    COORDINATOR_DB_POOL_MIN_SIZE: int = 1
    COORDINATOR_DB_POOL_MAX_SIZE: int = 10
    COORDINATOR_CONNECT_ON_STARTUP: bool = True


settings = Settings()
