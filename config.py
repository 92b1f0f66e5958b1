import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        default_source_name: str,
        audit_enabled: bool,
        audit_interval_minutes: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.default_source_name = default_source_name
        self.audit_enabled = audit_enabled
        self.audit_interval_minutes = audit_interval_minutes
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "ledger.db"
    database_url = os.getenv("LEDGER_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("LEDGER_TIMEZONE", "UTC")
    default_source_name = os.getenv("LEDGER_DEFAULT_SOURCE_NAME", "Main Account")
    audit_enabled = _env_flag("LEDGER_AUDIT_ENABLED", "true")
    audit_interval_minutes = int(os.getenv("LEDGER_AUDIT_INTERVAL_MINUTES", "60"))
    log_level = os.getenv("LEDGER_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        default_source_name=default_source_name,
        audit_enabled=audit_enabled,
        audit_interval_minutes=audit_interval_minutes,
        log_level=log_level,
    )
