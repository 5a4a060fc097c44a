import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        storage_timeout_secs: float,
        daily_run_hour: int,
        daily_run_minute: int,
        safety_net_hours: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.storage_timeout_secs = storage_timeout_secs
        self.daily_run_hour = daily_run_hour
        self.daily_run_minute = daily_run_minute
        self.safety_net_hours = safety_net_hours


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "ledger.db"
    database_url = os.getenv("LEDGER_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("LEDGER_TIMEZONE", "Europe/Berlin")
    storage_timeout_secs = float(os.getenv("LEDGER_STORAGE_TIMEOUT_SECS", "5"))
    daily_run_hour = int(os.getenv("LEDGER_DAILY_RUN_HOUR", "3"))
    daily_run_minute = int(os.getenv("LEDGER_DAILY_RUN_MINUTE", "15"))
    safety_net_hours = int(os.getenv("LEDGER_SAFETY_NET_HOURS", "1"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        storage_timeout_secs=storage_timeout_secs,
        daily_run_hour=daily_run_hour,
        daily_run_minute=daily_run_minute,
        safety_net_hours=safety_net_hours,
    )
