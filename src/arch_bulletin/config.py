# src/arch_bulletin/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time; backends validate their own credentials when built.
- The original deployment's unprefixed names (GITHUB_PAT, GITHUB_REPO_OWNER, ...) still work.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "BULLETIN"

STORAGE_PROVIDERS = ("local", "github", "s3", "blob")


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    data_dir: Path

    # ---- Storage selection ----
    storage_provider: str

    # ---- GitHub (commit-versioned) ----
    github_token: str | None
    github_owner: str
    github_repo: str
    github_branch: str
    github_api_url: str

    # ---- S3 (object store) ----
    s3_bucket: str
    s3_region: str
    s3_endpoint_url: str | None
    s3_prefix: str
    s3_conditional_writes: bool

    # ---- Blob store ----
    blob_token: str | None
    blob_api_url: str
    blob_public_url: str
    blob_cas_mode: str

    # ---- Local store ----
    local_data_dir: Path

    # ---- Network / retries ----
    connect_timeout_seconds: float
    request_timeout_seconds: float
    operation_timeout_seconds: float
    retry_attempts: int
    retry_backoff_seconds: float
    retry_backoff_max_seconds: float
    conflict_attempts: int

    # ---- Board rules ----
    max_active_posts: int
    max_upload_bytes: int
    privileged_roles: list[str]

    # ---- Notifications ----
    notification_sink: str

    # ---- Console ----
    console_user: str
    console_role: str

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "arch-bulletin")
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/bulletin"))

        storage_provider = (_first_env(_k("STORAGE_PROVIDER"), "STORAGE_PROVIDER", default="local") or "local")
        storage_provider = storage_provider.strip().lower()
        if storage_provider == "vercel-blob":
            storage_provider = "blob"

        github_token = _first_env(_k("GITHUB_TOKEN"), "GITHUB_PAT", default=None)
        github_owner = (_first_env(_k("GITHUB_OWNER"), "GITHUB_REPO_OWNER", default="") or "").strip()
        github_repo = (
            _first_env(_k("GITHUB_REPO"), "GITHUB_DATA_REPO", default="architecture-bulletin-data") or ""
        ).strip()
        github_branch = (_first_env(_k("GITHUB_BRANCH"), "GITHUB_BRANCH", default="main") or "main").strip()
        github_api_url = _env(_k("GITHUB_API_URL"), "https://api.github.com")

        s3_bucket = (_first_env(_k("S3_BUCKET"), "AWS_S3_BUCKET", default="") or "").strip()
        s3_region = (_first_env(_k("S3_REGION"), "AWS_REGION", default="us-east-1") or "us-east-1").strip()
        s3_endpoint_url = _first_env(_k("S3_ENDPOINT_URL"), "AWS_S3_ENDPOINT_URL", default=None)
        s3_prefix = _env(_k("S3_PREFIX"), "")
        s3_conditional_writes = _env_bool(_k("S3_CONDITIONAL_WRITES"), True)

        blob_token = _first_env(_k("BLOB_TOKEN"), "BLOB_READ_WRITE_TOKEN", default=None)
        blob_api_url = _env(_k("BLOB_API_URL"), "https://blob.vercel-storage.com")
        blob_public_url = _env(_k("BLOB_PUBLIC_URL"), "")
        blob_cas_mode = _env(_k("BLOB_CAS_MODE"), "emulated").strip().lower()

        local_data_dir = _env_path(_k("LOCAL_DATA_DIR"), data_dir / "data")

        connect_timeout_seconds = _env_float(_k("CONNECT_TIMEOUT_SECONDS"), 5.0)
        request_timeout_seconds = _env_float(_k("REQUEST_TIMEOUT_SECONDS"), 15.0)
        # keep the per-operation deadline >= a single request
        operation_timeout_seconds = max(
            _env_float(_k("OPERATION_TIMEOUT_SECONDS"), 30.0),
            request_timeout_seconds,
        )
        retry_attempts = max(1, _env_int(_k("RETRY_ATTEMPTS"), 3))
        retry_backoff_seconds = _env_float(_k("RETRY_BACKOFF_SECONDS"), 0.5)
        retry_backoff_max_seconds = _env_float(_k("RETRY_BACKOFF_MAX_SECONDS"), 8.0)
        conflict_attempts = max(1, _env_int(_k("CONFLICT_ATTEMPTS"), 3))

        max_active_posts = _env_int(_k("MAX_ACTIVE_POSTS"), 50)
        max_upload_bytes = _env_int(_k("MAX_UPLOAD_BYTES"), 10 * 1024 * 1024)
        privileged_roles = [r.lower() for r in _env_list(_k("PRIVILEGED_ROLES"), ["admin"])]

        notification_sink = _env(_k("NOTIFICATION_SINK"), "document").strip().lower()

        console_user = _env(_k("CONSOLE_USER"), "admin")
        console_role = _env(_k("CONSOLE_ROLE"), "admin").strip().lower()

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            storage_provider=storage_provider,
            github_token=github_token,
            github_owner=github_owner,
            github_repo=github_repo,
            github_branch=github_branch,
            github_api_url=github_api_url,
            s3_bucket=s3_bucket,
            s3_region=s3_region,
            s3_endpoint_url=s3_endpoint_url,
            s3_prefix=s3_prefix,
            s3_conditional_writes=s3_conditional_writes,
            blob_token=blob_token,
            blob_api_url=blob_api_url,
            blob_public_url=blob_public_url,
            blob_cas_mode=blob_cas_mode,
            local_data_dir=local_data_dir,
            connect_timeout_seconds=connect_timeout_seconds,
            request_timeout_seconds=request_timeout_seconds,
            operation_timeout_seconds=operation_timeout_seconds,
            retry_attempts=retry_attempts,
            retry_backoff_seconds=retry_backoff_seconds,
            retry_backoff_max_seconds=retry_backoff_max_seconds,
            conflict_attempts=conflict_attempts,
            max_active_posts=max_active_posts,
            max_upload_bytes=max_upload_bytes,
            privileged_roles=privileged_roles,
            notification_sink=notification_sink,
            console_user=console_user,
            console_role=console_role,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
