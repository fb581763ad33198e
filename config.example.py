# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets. Use .env (local, gitignored).

Names in parentheses are the unprefixed variables of older deployments; they are read
when the BULLETIN_* variable is not set.

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "BULLETIN_APP_NAME": "App display name (default: arch-bulletin).",
    "BULLETIN_LOG_LEVEL": "Console logging level (default: INFO).",
    "BULLETIN_DATA_DIR": "Local data directory for logs (default: .local/bulletin).",
    # Storage selection
    "BULLETIN_STORAGE_PROVIDER": "local | github | s3 | blob (STORAGE_PROVIDER; default: local).",
    # GitHub (commit-versioned)
    "BULLETIN_GITHUB_TOKEN": "Personal access token with contents:write (GITHUB_PAT).",
    "BULLETIN_GITHUB_OWNER": "Owner of the data repository (GITHUB_REPO_OWNER).",
    "BULLETIN_GITHUB_REPO": "Data repository name (GITHUB_DATA_REPO; default: architecture-bulletin-data).",
    "BULLETIN_GITHUB_BRANCH": "Branch holding the data (GITHUB_BRANCH; default: main).",
    "BULLETIN_GITHUB_API_URL": "API root, for GitHub Enterprise (default: https://api.github.com).",
    # S3
    "BULLETIN_S3_BUCKET": "Bucket name (AWS_S3_BUCKET).",
    "BULLETIN_S3_REGION": "Region (AWS_REGION; default: us-east-1).",
    "BULLETIN_S3_ENDPOINT_URL": "Endpoint for S3-compatible stores (AWS_S3_ENDPOINT_URL).",
    "BULLETIN_S3_PREFIX": "Key prefix inside the bucket (default: none).",
    "BULLETIN_S3_CONDITIONAL_WRITES": "Use If-Match / If-None-Match writes (default: true).",
    # Blob store
    "BULLETIN_BLOB_TOKEN": "Read/write token (BLOB_READ_WRITE_TOKEN).",
    "BULLETIN_BLOB_API_URL": "Blob API root (default: https://blob.vercel-storage.com).",
    "BULLETIN_BLOB_PUBLIC_URL": "Public base URL of the store, used for reads.",
    "BULLETIN_BLOB_CAS_MODE": "emulated | rejected (default: emulated).",
    # Local store
    "BULLETIN_LOCAL_DATA_DIR": "Root of the local document tree (default: <data_dir>/data).",
    # Network / retries
    "BULLETIN_CONNECT_TIMEOUT_SECONDS": "Connect timeout per request (default: 5).",
    "BULLETIN_REQUEST_TIMEOUT_SECONDS": "Read/write timeout per request (default: 15).",
    "BULLETIN_OPERATION_TIMEOUT_SECONDS": "Deadline per storage call, never below the request timeout (default: 30).",
    "BULLETIN_RETRY_ATTEMPTS": "Attempts for transient failures (default: 3).",
    "BULLETIN_RETRY_BACKOFF_SECONDS": "Initial backoff (default: 0.5).",
    "BULLETIN_RETRY_BACKOFF_MAX_SECONDS": "Backoff cap (default: 8).",
    "BULLETIN_CONFLICT_ATTEMPTS": "Re-read/re-apply rounds for append-style edits (default: 3).",
    # Board rules
    "BULLETIN_MAX_ACTIVE_POSTS": "Active post ceiling unless settings.json overrides it (default: 50).",
    "BULLETIN_MAX_UPLOAD_BYTES": "Upload size limit (default: 10485760).",
    "BULLETIN_PRIVILEGED_ROLES": "Roles treated as admin (default: admin).",
    # Notifications
    "BULLETIN_NOTIFICATION_SINK": "document | log (default: document).",
    # Console
    "BULLETIN_CONSOLE_USER": "Username the console acts as (default: admin).",
    "BULLETIN_CONSOLE_ROLE": "Role of the console user (default: admin).",
}
