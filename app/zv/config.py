import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str
    csrf_enabled: bool

    storage_backend: str
    storage_local_root: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    feature_payments: bool
    yookassa_shop_id: str
    yookassa_secret_key: str
    yookassa_api_url: str
    yookassa_return_url: str
    yookassa_verify_webhooks: bool
    public_base_url: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getflag(name: str, default: str) -> bool:
    return _getenv(name, default).lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///zv.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        csrf_enabled=_getflag("CSRF_ENABLED", "1"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_local_root=_getenv("STORAGE_LOCAL_ROOT", ""),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "us-east-1"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        # Payments stay off unless explicitly enabled with the literal "true".
        feature_payments=_getenv("FEATURE_PAYMENTS", "false").lower() == "true",
        yookassa_shop_id=_getenv("YKS_SHOP_ID", ""),
        yookassa_secret_key=_getenv("YKS_SECRET", ""),
        yookassa_api_url=_getenv("YOOKASSA_API_URL", "https://api.yookassa.ru/v3"),
        yookassa_return_url=_getenv("YOOKASSA_RETURN_URL", ""),
        yookassa_verify_webhooks=_getflag("YOOKASSA_VERIFY_WEBHOOKS", "1"),
        public_base_url=_getenv("PUBLIC_BASE_URL", "http://localhost:8080"),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "CSRF_ENABLED": s.csrf_enabled,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_LOCAL_ROOT": s.storage_local_root,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "FEATURE_PAYMENTS": s.feature_payments,
        "YKS_SHOP_ID": s.yookassa_shop_id,
        "YKS_SECRET": s.yookassa_secret_key,
        "YOOKASSA_API_URL": s.yookassa_api_url,
        "YOOKASSA_RETURN_URL": s.yookassa_return_url,
        "YOOKASSA_VERIFY_WEBHOOKS": s.yookassa_verify_webhooks,
        "PUBLIC_BASE_URL": s.public_base_url,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,
        # request body cap; per-type upload limits are enforced in the files module
        "MAX_CONTENT_LENGTH": 50 * 1024 * 1024,
    }
