"""
Centralized application configuration implementing the 12-Factor App methodology.
Remote endpoint, transport and reconciliation knobs are all environment driven.
"""
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Immutable configuration schema backed by environment variables."""

    APP_NAME: str = "CaixaSim"
    VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Any SQLAlchemy URL; PostgreSQL in production
    DATABASE_URL: str = "sqlite:///./caixasim.db"

    LOG_LEVEL: str = "INFO"

    # Remote lending authority (SIOPI internet simulator)
    CAIXA_BASE_URL: str = "https://www8.caixa.gov.br"
    CAIXA_APP_PATH: str = "/siopiinternet-web"
    CAIXA_TIMEOUT_SECONDS: float = 20.0
    CAIXA_MAX_REDIRECTS: int = 5
    CAIXA_USER_AGENT: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    )
    CAIXA_BLOCK_MARKERS: List[str] = ["ShieldSquare Block"]
    # Trailing space is part of the version tag the remote form expects
    CAIXA_FORM_VERSION: str = "3.22.92.0.1 "

    # Maximum absolute difference (R$) for a simulation to count as confirmed
    RECONCILIATION_TOLERANCE: float = 0.01
    HISTORY_LIMIT: int = 80

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


settings = Settings()
