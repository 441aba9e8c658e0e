import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        secret_key: str,
        base_currency: str,
        fx_url: str,
        fx_timeout_secs: float,
        fx_ttl_secs: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.secret_key = secret_key
        self.base_currency = base_currency
        self.fx_url = fx_url
        self.fx_timeout_secs = fx_timeout_secs
        self.fx_ttl_secs = fx_ttl_secs
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("CENTA_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("CENTA_DATABASE_URL")
    if not database_url:
        database_url = f"sqlite:///{_ensure_data_dir() / 'centa.db'}"
    timezone = os.getenv("CENTA_TIMEZONE", "Asia/Bangkok")
    secret_key = os.getenv(
        "CENTA_SECRET_KEY",
        "3c1f0b8e5d2a47a9b6e04f7d91c2a58e6f3b7d0c4a9e21f85b6c3d7e0a1f4b92",
    )
    base_currency = os.getenv("CENTA_BASE_CURRENCY", "THB").upper()
    fx_url = os.getenv("CENTA_FX_URL", "https://open.er-api.com/v6/latest/THB")
    fx_timeout_secs = float(os.getenv("CENTA_FX_TIMEOUT_SECS", "5"))
    fx_ttl_secs = int(os.getenv("CENTA_FX_TTL_SECS", "3600"))
    log_level = os.getenv("CENTA_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        secret_key=secret_key,
        base_currency=base_currency,
        fx_url=fx_url,
        fx_timeout_secs=fx_timeout_secs,
        fx_ttl_secs=fx_ttl_secs,
        log_level=log_level,
    )
