"""Runtime configuration for the entitlement and payment services."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Tuple
import os


@dataclass(frozen=True)
class Settings:
    """Configuration resolved from environment variables."""

    admin_emails: Tuple[str, ...]
    payment_api_base_url: str
    payment_country_code: str
    payment_max_attempts: int
    payment_poll_interval: float
    payment_http_timeout: float
    ledger_backend: str
    ledger_sweep_interval: float
    db_host: str
    db_port: int
    db_name: str
    db_user: str
    db_password: str
    jwt_secret_key: str
    jwt_exp_minutes: int
    session_cookie_name: str
    session_cookie_secure: bool

    @property
    def db_config(self) -> dict:
        return {
            "host": self.db_host,
            "port": self.db_port,
            "dbname": self.db_name,
            "user": self.db_user,
            "password": self.db_password,
        }


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def _to_list(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    # Emails are compared exactly, so only surrounding whitespace is dropped.
    return tuple(item.strip() for item in value.split(",") if item.strip())


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Load :class:`Settings` from environment variables."""

    env_mapping = os.environ if env is None else env

    ledger_backend = (env_mapping.get("LEDGER_BACKEND") or "memory").strip().lower()
    if ledger_backend not in {"memory", "postgres"}:
        raise ValueError(f"Unsupported LEDGER_BACKEND {ledger_backend!r}")

    return Settings(
        admin_emails=_to_list(env_mapping.get("ADMIN_EMAILS")),
        payment_api_base_url=env_mapping.get(
            "PAYMENT_API_BASE_URL", "https://api.livrauganda.workers.dev/api"
        ).rstrip("/"),
        payment_country_code=(env_mapping.get("PAYMENT_COUNTRY_CODE") or "256").lstrip("+"),
        payment_max_attempts=max(1, _to_int(env_mapping.get("PAYMENT_MAX_ATTEMPTS"), default=30)),
        payment_poll_interval=max(0.0, _to_float(env_mapping.get("PAYMENT_POLL_INTERVAL"), default=2.0)),
        payment_http_timeout=max(1.0, _to_float(env_mapping.get("PAYMENT_HTTP_TIMEOUT"), default=10.0)),
        ledger_backend=ledger_backend,
        ledger_sweep_interval=max(1.0, _to_float(env_mapping.get("LEDGER_SWEEP_INTERVAL"), default=60.0)),
        db_host=env_mapping.get("DB_HOST", "127.0.0.1"),
        db_port=_to_int(env_mapping.get("DB_PORT"), default=5432),
        db_name=env_mapping.get("DB_NAME", "streamgate"),
        db_user=env_mapping.get("DB_USER", "streamgate"),
        db_password=env_mapping.get("DB_PASSWORD", "streamgate"),
        jwt_secret_key=env_mapping.get("JWT_SECRET_KEY", "dev-secret-change-me"),
        jwt_exp_minutes=max(1, _to_int(env_mapping.get("JWT_EXP_MINUTES"), default=60 * 24)),
        session_cookie_name=env_mapping.get("SESSION_COOKIE_NAME", "session"),
        session_cookie_secure=(env_mapping.get("SESSION_COOKIE_SECURE") or "0").lower() in {"1", "true", "yes"},
    )


__all__ = ["Settings", "load_settings"]
