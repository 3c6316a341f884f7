"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

SECRETS_DIR = Path("/run/secrets")

LOCK_BACKENDS = ("memory", "redis")


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = SECRETS_DIR / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                print(f"[settings] ✓ Loaded {secret_name} from {SECRETS_DIR}")
                return secret_value
        except OSError as e:
            print(f"[settings] ✗ Failed to read {SECRETS_DIR}/{secret_name}: {e}")

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            return secret_value

    return None


def _env_bool(var_name: str, default: bool = False) -> bool:
    return os.environ.get(var_name, str(default)).strip().lower() in ("1", "true", "yes", "on")


def _env_int(var_name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(var_name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{var_name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise RuntimeError(f"{var_name} must be >= {minimum}, got {value}")
    return value


def _env_float(var_name: str, default: float) -> float:
    raw = os.environ.get(var_name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{var_name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise RuntimeError(f"{var_name} must be positive, got {value}")
    return value


@dataclass
class AppConfig:
    """Application configuration container."""
    # Realms
    admin_realm: str = "master"

    # Cluster lock
    lock_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    redis_password: Optional[str] = None

    # Federation
    metadata_request_timeout: float = 10.0
    federation_default_refresh_minutes: int = 60
    federation_backfill_mappers: bool = False
    start_scheduler: bool = True

    # Audit
    audit_log_dir: str = ".runtime/audit"
    audit_log_signing_key: str = ""

    @property
    def redis_url_resolved(self) -> str:
        """Redis URL with the password from secrets spliced in, if any.

        A URL that already carries credentials is returned unchanged.
        """
        if not self.redis_password or "@" in self.redis_url:
            return self.redis_url
        scheme, sep, rest = self.redis_url.partition("://")
        if not sep:
            return self.redis_url
        return f"{scheme}://:{self.redis_password}@{rest}"


def load_settings() -> AppConfig:
    """Load application settings from environment and /run/secrets."""
    admin_realm = os.environ.get("ADMIN_REALM", "master").strip() or "master"

    lock_backend = os.environ.get("LOCK_BACKEND", "memory").strip().lower()
    if lock_backend not in LOCK_BACKENDS:
        raise RuntimeError(f"LOCK_BACKEND must be one of {', '.join(LOCK_BACKENDS)}, got {lock_backend!r}")
    redis_url = os.environ.get("REDIS_URL", "redis://localhost:6379/0").strip()
    redis_password = _load_secret_from_file("redis_password", "REDIS_PASSWORD")

    metadata_request_timeout = _env_float("METADATA_REQUEST_TIMEOUT", 10.0)
    federation_default_refresh_minutes = _env_int("FEDERATION_DEFAULT_REFRESH_MINUTES", 60)
    federation_backfill_mappers = _env_bool("FEDERATION_BACKFILL_MAPPERS", False)
    start_scheduler = _env_bool("SCHEDULER_ENABLED", True)

    audit_log_dir = os.environ.get("AUDIT_LOG_DIR", ".runtime/audit")
    audit_log_signing_key = _load_secret_from_file("audit_log_signing_key", "AUDIT_LOG_SIGNING_KEY") or ""

    print(
        f"[settings] admin_realm={admin_realm}; lock_backend={lock_backend}; "
        f"refresh={federation_default_refresh_minutes}m"
    )
    if not audit_log_signing_key:
        print("[settings] WARNING: AUDIT_LOG_SIGNING_KEY not set, audit events are written unsigned")

    return AppConfig(
        admin_realm=admin_realm,
        lock_backend=lock_backend,
        redis_url=redis_url,
        redis_password=redis_password,
        metadata_request_timeout=metadata_request_timeout,
        federation_default_refresh_minutes=federation_default_refresh_minutes,
        federation_backfill_mappers=federation_backfill_mappers,
        start_scheduler=start_scheduler,
        audit_log_dir=audit_log_dir,
        audit_log_signing_key=audit_log_signing_key,
    )
