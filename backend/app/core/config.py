import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    return lowered in {"1", "true", "yes", "y", "on"}


def _env_float(key: str, default: float) -> float:
    raw = (os.environ.get(key) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class AppConfig:
    """
    Application environment config.
    """
    env: str  # 'development', 'staging', 'production'
    is_staging: bool
    supabase_url: str
    supabase_key: str

    @staticmethod
    def from_env() -> "AppConfig":
        env = (os.environ.get("APP_ENV") or "development").strip().lower()
        is_staging = env == "staging"

        # Staging swaps SUPABASE_URL at the platform level, so one variable is enough here.
        supabase_url = (os.environ.get("SUPABASE_URL") or "").strip()
        supabase_key = (os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or "").strip()

        return AppConfig(
            env=env,
            is_staging=is_staging,
            supabase_url=supabase_url,
            supabase_key=supabase_key,
        )


# Global Config Instance
app_config = AppConfig.from_env()


@dataclass(frozen=True)
class StorageConfig:
    """
    Manuscript blob storage.

    Uploaded files are opaque: they are forwarded to the bucket as-is and only the
    resulting object path is stored on the journal row.
    """

    bucket: str
    max_upload_bytes: int
    allowed_content_types: tuple[str, ...]

    @staticmethod
    def from_env() -> "StorageConfig":
        bucket = (os.environ.get("JOURNAL_FILES_BUCKET") or "journal-files").strip()

        max_mb_raw = (os.environ.get("MAX_UPLOAD_MB") or "20").strip()
        try:
            max_mb = int(max_mb_raw)
        except ValueError:
            max_mb = 20
        if max_mb <= 0:
            max_mb = 20

        raw_types = (
            os.environ.get("JOURNAL_FILE_TYPES")
            or "application/pdf,application/msword,"
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
        )
        types = tuple(t.strip().lower() for t in raw_types.split(",") if t.strip())

        return StorageConfig(
            bucket=bucket,
            max_upload_bytes=max_mb * 1024 * 1024,
            allowed_content_types=types,
        )


@dataclass(frozen=True)
class SentryConfig:
    enabled: bool
    dsn: Optional[str]
    environment: str
    traces_sample_rate: float

    @staticmethod
    def from_env() -> "SentryConfig":
        dsn = (os.environ.get("SENTRY_DSN") or "").strip() or None
        enabled = _env_bool("SENTRY_ENABLED", dsn is not None)
        environment = (
            os.environ.get("SENTRY_ENVIRONMENT") or os.environ.get("APP_ENV") or "development"
        ).strip()
        rate = _env_float("SENTRY_TRACES_SAMPLE_RATE", 0.0)
        rate = min(max(rate, 0.0), 1.0)
        return SentryConfig(enabled=enabled, dsn=dsn, environment=environment, traces_sample_rate=rate)


def parse_admin_emails() -> set[str]:
    """
    ADMIN_EMAILS: comma separated list of emails provisioned as super_admin on first login.
    Only meant for local/demo environments.
    """
    raw = os.environ.get("ADMIN_EMAILS", "")
    return {e.strip().lower() for e in raw.split(",") if e.strip()}
