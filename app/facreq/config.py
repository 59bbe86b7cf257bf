import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    storage_backend: str
    storage_root: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    staging_prefix: str
    vault_prefix: str
    storage_timeout_seconds: float
    bulk_approve_max_workers: int

    content_analysis_backend: str
    content_analysis_url: str
    content_analysis_timeout_seconds: float


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _getenv_float(name: str, default: float) -> float:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///facreq.db"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_root=_getenv("STORAGE_ROOT", os.path.join(os.getcwd(), "storage")),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        # Empty VAULT_PREFIX is allowed here; promotion refuses to run without it.
        staging_prefix=(os.environ.get("STAGING_PREFIX", "staging")).strip().strip("/"),
        vault_prefix=(os.environ.get("VAULT_PREFIX", "vault")).strip().strip("/"),
        storage_timeout_seconds=_getenv_float("STORAGE_TIMEOUT_SECONDS", 30.0),
        bulk_approve_max_workers=_getenv_int("BULK_APPROVE_MAX_WORKERS", 4),
        content_analysis_backend=_getenv("CONTENT_ANALYSIS_BACKEND", "local"),
        content_analysis_url=_getenv("CONTENT_ANALYSIS_URL", ""),
        content_analysis_timeout_seconds=_getenv_float("CONTENT_ANALYSIS_TIMEOUT_SECONDS", 60.0),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_ROOT": s.storage_root,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "STAGING_PREFIX": s.staging_prefix,
        "VAULT_PREFIX": s.vault_prefix,
        "STORAGE_TIMEOUT_SECONDS": s.storage_timeout_seconds,
        "BULK_APPROVE_MAX_WORKERS": s.bulk_approve_max_workers,
        "CONTENT_ANALYSIS_BACKEND": s.content_analysis_backend,
        "CONTENT_ANALYSIS_URL": s.content_analysis_url,
        "CONTENT_ANALYSIS_TIMEOUT_SECONDS": s.content_analysis_timeout_seconds,
        "JSON_SORT_KEYS": False,
        # file upload limits (50MB); per-document-type ceilings live in validation_rules
        "MAX_CONTENT_LENGTH": 50 * 1024 * 1024,
    }
