"""Global configuration values."""

import os
from pathlib import Path

# Root directory for persisted data (JSON document store lives under DATA_DIR/store)
DATA_DIR = Path(os.environ.get("DATA_DIR", "./data"))

# Document store backend: "json" (persisted under DATA_DIR) or "memory"
STORE_BACKEND = os.environ.get("STORE_BACKEND", "json").lower()

# Header set by the upstream auth proxy carrying the authenticated user id
IDENTITY_HEADER = os.environ.get("IDENTITY_HEADER", "X-User-Id")

SECRET_KEY = os.environ.get("SECRET_KEY", "skillswap-secret-key")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Only allow skills from the fixed catalog when editing profiles
ENFORCE_SKILL_CATALOG = os.environ.get("ENFORCE_SKILL_CATALOG", "true").lower() in ("1", "true", "yes")
