# app/config.py
import math
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


def _int(name: str, default: int) -> int:
    # zero or negative counts, ports and sizes fall back to the default
    raw = (os.getenv(name) or "").strip()
    try:
        value = int(raw) if raw else default
    except ValueError:
        return default
    return value if value > 0 else default


def _float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    try:
        value = float(raw) if raw else default
    except ValueError:
        return default
    return value if math.isfinite(value) and value > 0 else default


def _bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _csv(name: str, default: str = "") -> tuple[str, ...]:
    raw = os.getenv(name, default) or ""
    return tuple(p.strip() for p in raw.split(",") if p.strip())


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 10000
    log_level: str = "INFO"

    # raw token string; parsed by TokenStore.from_string
    allowed_tokens: str = ""
    expose_auth_reason: bool = False

    ip_rate_window_seconds: int = 60
    ip_rate_max: int = 30
    device_rate_window_seconds: int = 60
    device_rate_max: int = 10
    rate_limit_max_keys: int = 10000
    rate_limit_sweep_seconds: int = 30

    max_body_bytes: int = 64 * 1024
    cors_allow_origins: tuple[str, ...] = field(default_factory=lambda: ("*",))

    email_transport: str = ""
    email_from: str = "onboarding@resend.dev"
    resend_api_key: str = ""
    resend_api_url: str = "https://api.resend.com/emails"
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_starttls: bool = True
    send_timeout_seconds: float = 15.0

    map_provider: str = "google.com"


def load_settings() -> Settings:
    """Resolve every environment variable the service reads, once."""
    load_dotenv()

    # API_TOKEN is the single-token form; both feed the same allow-list
    tokens = " ".join(
        t for t in ((os.getenv("ALLOWED_TOKENS") or "").strip(), (os.getenv("API_TOKEN") or "").strip()) if t
    )

    return Settings(
        host=(os.getenv("HOST") or "0.0.0.0").strip(),
        port=_int("PORT", 10000),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
        allowed_tokens=tokens,
        expose_auth_reason=_bool("EXPOSE_AUTH_REASON", False),
        ip_rate_window_seconds=_int("IP_RATE_WINDOW_SECONDS", 60),
        ip_rate_max=_int("IP_RATE_MAX", 30),
        device_rate_window_seconds=_int("DEVICE_RATE_WINDOW_SECONDS", 60),
        device_rate_max=_int("DEVICE_RATE_MAX", 10),
        rate_limit_max_keys=_int("RATE_LIMIT_MAX_KEYS", 10000),
        rate_limit_sweep_seconds=_int("RATE_LIMIT_SWEEP_SECONDS", 30),
        max_body_bytes=_int("MAX_BODY_BYTES", 64 * 1024),
        cors_allow_origins=_csv("CORS_ALLOW_ORIGINS", "*"),
        email_transport=(os.getenv("EMAIL_TRANSPORT") or "").strip().lower(),
        email_from=(os.getenv("EMAIL_FROM") or "onboarding@resend.dev").strip(),
        resend_api_key=(os.getenv("RESEND_API_KEY") or "").strip(),
        resend_api_url=(os.getenv("RESEND_API_URL") or "https://api.resend.com/emails").strip(),
        smtp_host=(os.getenv("SMTP_HOST") or "").strip(),
        smtp_port=_int("SMTP_PORT", 587),
        smtp_user=(os.getenv("SMTP_USER") or "").strip(),
        smtp_password=os.getenv("SMTP_PASSWORD") or "",
        smtp_starttls=_bool("SMTP_STARTTLS", True),
        send_timeout_seconds=_float("SEND_TIMEOUT_SECONDS", 15.0),
        map_provider=(os.getenv("MAP_PROVIDER") or "google.com").strip(),
    )
