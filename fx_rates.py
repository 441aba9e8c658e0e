from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from http.client import HTTPException
from threading import Lock
from typing import Optional
from urllib.request import Request, urlopen

from config import get_settings
from currency import FALLBACK_RATES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateData:
    rates: dict[str, float]
    updated_at: int  # unix seconds
    fallback: bool = field(default=False, compare=False)


_cache: dict[str, tuple[float, RateData]] = {}
_cache_lock = Lock()


def clear_cache() -> None:
    with _cache_lock:
        _cache.clear()


class FxRateService:
    def __init__(self) -> None:
        self.settings = get_settings()

    def latest(self) -> RateData:
        url = self.settings.fx_url
        now = time.monotonic()
        with _cache_lock:
            cached = _cache.get(url)
        if cached and now - cached[0] < self.settings.fx_ttl_secs:
            return cached[1]

        try:
            data = _fetch_rates(url, timeout=self.settings.fx_timeout_secs)
        except RuntimeError as exc:
            logger.warning("fx_fetch_failed: url=%s error=%s", url, exc)
            return RateData(
                rates=dict(FALLBACK_RATES), updated_at=int(time.time()), fallback=True
            )

        with _cache_lock:
            _cache[url] = (now, data)
        return data


def _fetch_rates(url: str, *, timeout: float) -> RateData:
    req = Request(url, headers={"Accept": "application/json"})
    try:
        with urlopen(req, timeout=timeout) as resp:
            payload = json.loads(resp.read().decode("utf-8"))
    except (OSError, ValueError, HTTPException) as exc:
        # URLError and timeouts are OSErrors; bad bytes and JSON are ValueErrors.
        raise RuntimeError(f"Failed to fetch exchange rates from {url}") from exc

    raw_rates = payload.get("rates") if isinstance(payload, dict) else None
    if not isinstance(raw_rates, dict) or not raw_rates:
        raise RuntimeError("Unexpected FX provider response")
    try:
        rates = {str(k).upper(): float(v) for k, v in raw_rates.items()}
    except (TypeError, ValueError) as exc:
        raise RuntimeError("Unexpected FX provider response") from exc

    updated = payload.get("time_last_update_unix")
    return RateData(
        rates=rates,
        updated_at=int(updated) if isinstance(updated, (int, float)) else int(time.time()),
    )


def time_ago(unix_seconds: int, now: Optional[float] = None) -> str:
    now = time.time() if now is None else now
    diff = int(now) - int(unix_seconds)
    if diff < 60:
        return "just now"
    if diff < 3600:
        return f"{diff // 60}m ago"
    if diff < 86400:
        return f"{diff // 3600}h ago"
    return f"{diff // 86400}d ago"
