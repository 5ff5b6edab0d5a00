import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        log_level: str,
        sqlite_busy_timeout_secs: float,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.log_level = log_level
        self.sqlite_busy_timeout_secs = sqlite_busy_timeout_secs


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("TRADEBOOK_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("TRADEBOOK_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "tradebook.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("TRADEBOOK_TIMEZONE", "Asia/Kolkata")
    log_level = os.getenv("TRADEBOOK_LOG_LEVEL", "INFO").upper()
    busy_timeout = float(os.getenv("TRADEBOOK_SQLITE_BUSY_TIMEOUT_SECS", "30"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        log_level=log_level,
        sqlite_busy_timeout_secs=busy_timeout,
    )
