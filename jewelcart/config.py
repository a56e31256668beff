"""Runtime settings read from the environment (and a local .env file)."""
from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from functools import cache
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]
load_dotenv(dotenv_path=ROOT_DIR / ".env")


def _get_env(*keys: str, default: str | None = None) -> str | None:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_decimal(*keys: str, default: str) -> Decimal:
    return Decimal(_get_env(*keys, default=default) or default)


def _get_float(*keys: str, default: float) -> float:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return float(v)


@dataclass(frozen=True)
class Settings:
    redis_url: str
    redis_token: str
    storage_namespace: str
    api_base_url: str
    tax_rate: Decimal
    shipping_fee: Decimal
    http_timeout: float

    @property
    def redis_configured(self) -> bool:
        return bool(self.redis_url and self.redis_token)


def load_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings(
        # Upstash uses REST_URL and REST_TOKEN
        redis_url=_get_env("UPSTASH_REDIS_REST_URL", default="") or "",
        redis_token=_get_env("UPSTASH_REDIS_REST_TOKEN", default="") or "",
        storage_namespace=_get_env("JEWELCART_STORAGE_NAMESPACE", default="jewelcart") or "jewelcart",
        api_base_url=(_get_env("JEWELCART_API_URL", "API_URL", default="http://localhost:5000/api") or "").rstrip("/"),
        tax_rate=_get_decimal("JEWELCART_TAX_RATE", default="0.12"),
        shipping_fee=_get_decimal("JEWELCART_SHIPPING_FEE", default="50"),
        http_timeout=_get_float("JEWELCART_HTTP_TIMEOUT", default=10.0),
    )


@cache
def get_settings() -> Settings:
    """Process-wide settings (singleton)."""
    return load_settings()
