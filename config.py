import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        environment: str,
        secret_key: str,
        token_max_age_hours: int,
        cors_origins: list[str],
        log_level: str,
        port: int,
    ) -> None:
        self.database_url = database_url
        self.environment = environment
        self.secret_key = secret_key
        self.token_max_age_hours = token_max_age_hours
        self.cors_origins = cors_origins
        self.log_level = log_level
        self.port = port

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _split_origins(raw: str) -> list[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("LEDGER_DATABASE_URL")
    if not database_url:
        data_dir = _ensure_data_dir()
        database_url = f"sqlite:///{data_dir / 'ledger.db'}"
    environment = os.getenv("LEDGER_ENV", "development").lower()
    secret_key = os.getenv(
        "LEDGER_SECRET_KEY",
        "3f4c1d0be2a94c7e8d6a5b1f09e7c2d48a6b3e5f7c9d1a2b4e6f8a0c2d4e6f81",
    )
    token_max_age_hours = int(os.getenv("LEDGER_TOKEN_MAX_AGE_HOURS", "24"))
    cors_origins = _split_origins(os.getenv("LEDGER_CORS_ORIGINS", "*"))
    log_level = os.getenv("LEDGER_LOG_LEVEL", "INFO").upper()
    port = int(os.getenv("LEDGER_PORT", "5000"))
    return Settings(
        database_url=database_url,
        environment=environment,
        secret_key=secret_key,
        token_max_age_hours=token_max_age_hours,
        cors_origins=cors_origins,
        log_level=log_level,
        port=port,
    )
