import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    facebook_app_id: str
    facebook_app_secret: str
    oauth_redirect_uri: str

    session_ttl_days: int
    broadcast_queue_size: int
    stream_heartbeat_seconds: int
    seed_sample_data: bool


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///crm.db"),
        facebook_app_id=_getenv("FACEBOOK_APP_ID", ""),
        facebook_app_secret=_getenv("FACEBOOK_APP_SECRET", ""),
        oauth_redirect_uri=_getenv("OAUTH_REDIRECT_URI", ""),
        session_ttl_days=_getenv_int("SESSION_TTL_DAYS", 7),
        broadcast_queue_size=_getenv_int("BROADCAST_QUEUE_SIZE", 100),
        stream_heartbeat_seconds=_getenv_int("STREAM_HEARTBEAT_SECONDS", 25),
        seed_sample_data=_getenv("SEED_SAMPLE_DATA") in ("1", "true", "yes"),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "FACEBOOK_APP_ID": s.facebook_app_id,
        "FACEBOOK_APP_SECRET": s.facebook_app_secret,
        "OAUTH_REDIRECT_URI": s.oauth_redirect_uri,
        "SESSION_TTL_DAYS": s.session_ttl_days,
        "BROADCAST_QUEUE_SIZE": s.broadcast_queue_size,
        "STREAM_HEARTBEAT_SECONDS": s.stream_heartbeat_seconds,
        "SEED_SAMPLE_DATA": s.seed_sample_data,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
    }
