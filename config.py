import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        token_secret: str,
        token_max_age_hours: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.token_secret = token_secret
        self.token_max_age_hours = token_max_age_hours
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LIFE_ENERGY_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "life_energy.db"
    database_url = os.getenv("LIFE_ENERGY_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("LIFE_ENERGY_TIMEZONE", "Europe/Berlin")
    token_secret = os.getenv(
        "LIFE_ENERGY_TOKEN_SECRET",
        "4f0c2a9e1b7d63c58a2e9f41d0b6c7e38a15d2f94c6b0e7a3d8f1c5b2e9a7d40",
    )
    token_max_age_hours = int(os.getenv("LIFE_ENERGY_TOKEN_MAX_AGE_HOURS", "24"))
    log_level = os.getenv("LIFE_ENERGY_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        token_secret=token_secret,
        token_max_age_hours=token_max_age_hours,
        log_level=log_level,
    )
