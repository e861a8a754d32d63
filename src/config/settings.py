"""Typed configuration for the service and its integrations."""
from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_LIPDUB_URL = "https://api.lipdub.ai/v1"
DEFAULT_CLOSE_URL = "https://api.close.com/api/v1"
DEFAULT_APP_URL = "http://localhost:3000"
DEFAULT_FROM_EMAIL = "DobleLabs <noreply@doblelabs.com>"


class ConfigError(ValueError):
    """Raised when configuration is invalid or missing."""


def _require(names: list[str]) -> dict[str, str]:
    values = {name: os.environ.get(name, "").strip() for name in names}
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise ConfigError(
            f"Missing required environment variables: {', '.join(missing)}"
        )
    return values


def _optional(name: str, default: str | None = None) -> str | None:
    value = os.environ.get(name, "").strip()
    return value or default


@dataclass(frozen=True)
class SupabaseConfig:
    """Configuration for the Supabase project (Postgres, auth, storage)."""

    url: str
    service_role_key: str
    video_bucket: str = "videos"

    @classmethod
    def from_env(cls) -> SupabaseConfig:
        values = _require(["SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY"])
        return cls(
            url=values["SUPABASE_URL"],
            service_role_key=values["SUPABASE_SERVICE_ROLE_KEY"],
            video_bucket=_optional("SUPABASE_VIDEO_BUCKET", "videos"),  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class LipDubConfig:
    """Configuration for the LipDub lip-sync API."""

    api_key: str
    base_url: str = DEFAULT_LIPDUB_URL
    timeout_s: float = 60.0

    @classmethod
    def from_env(cls) -> LipDubConfig:
        values = _require(["LIPDUB_API_KEY"])
        timeout = _optional("LIPDUB_TIMEOUT_S", "60")
        try:
            timeout_s = float(timeout)  # type: ignore[arg-type]
        except ValueError as exc:
            raise ConfigError(f"LIPDUB_TIMEOUT_S must be a number: {timeout}") from exc
        return cls(
            api_key=values["LIPDUB_API_KEY"],
            base_url=_optional("LIPDUB_API_URL", DEFAULT_LIPDUB_URL).rstrip("/"),  # type: ignore[union-attr]
            timeout_s=timeout_s,
        )


@dataclass(frozen=True)
class StripeConfig:
    """Configuration for Stripe checkout and webhooks."""

    secret_key: str
    webhook_secret: str | None = None

    @classmethod
    def from_env(cls) -> StripeConfig:
        values = _require(["STRIPE_SECRET_KEY"])
        return cls(
            secret_key=values["STRIPE_SECRET_KEY"],
            webhook_secret=_optional("STRIPE_WEBHOOK_SECRET"),
        )


@dataclass(frozen=True)
class EmailConfig:
    """Configuration for transactional email via Resend.

    api_key is optional: without it emails are logged instead of sent.
    """

    api_key: str | None
    from_email: str = DEFAULT_FROM_EMAIL
    app_url: str = DEFAULT_APP_URL

    @classmethod
    def from_env(cls) -> EmailConfig:
        return cls(
            api_key=_optional("RESEND_API_KEY"),
            from_email=_optional("EMAIL_FROM", DEFAULT_FROM_EMAIL),  # type: ignore[arg-type]
            app_url=_optional("APP_URL", DEFAULT_APP_URL).rstrip("/"),  # type: ignore[union-attr]
        )


@dataclass(frozen=True)
class CloseConfig:
    """Configuration for Close CRM."""

    api_key: str
    base_url: str = DEFAULT_CLOSE_URL

    @classmethod
    def from_env(cls) -> CloseConfig:
        api_key = _optional("CLOSE_API_KEY")
        if not api_key:
            raise ConfigError("Close API key not configured")
        return cls(api_key=api_key, base_url=_optional("CLOSE_API_URL", DEFAULT_CLOSE_URL))  # type: ignore[arg-type]


@dataclass(frozen=True)
class AppConfig:
    """Application-level settings."""

    app_url: str = DEFAULT_APP_URL
    admin_user_id: str | None = None
    cron_secret: str | None = None
    cors_origins: tuple[str, ...] = (DEFAULT_APP_URL,)

    @classmethod
    def from_env(cls) -> AppConfig:
        app_url = _optional("APP_URL", DEFAULT_APP_URL).rstrip("/")  # type: ignore[union-attr]
        origins = _optional("CORS_ORIGINS")
        cors_origins = (
            tuple(o.strip() for o in origins.split(",") if o.strip())
            if origins
            else (app_url,)
        )
        return cls(
            app_url=app_url,
            admin_user_id=_optional("ADMIN_USER_ID"),
            cron_secret=_optional("CRON_SECRET"),
            cors_origins=cors_origins,
        )
