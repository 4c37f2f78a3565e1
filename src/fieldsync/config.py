"""Paths, constants, and data directory setup."""

import logging
import os
from pathlib import Path

# Base directories
PROJECT_ROOT = Path(__file__).parent.parent.parent


def _load_env() -> None:
    """Load .env file from project root if present. Existing env vars take priority."""
    env_file = PROJECT_ROOT / ".env"
    if not env_file.exists():
        return
    with open(env_file) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()
            if not os.environ.get(key):
                os.environ[key] = value


_env_initialized = False


def init() -> None:
    """Load .env and set env-dependent constants. Safe to call multiple times."""
    global _env_initialized
    if _env_initialized:
        return
    _load_env()
    _init_env_vars()
    _env_initialized = True


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except (ValueError, TypeError):
        logging.getLogger(__name__).warning(
            "Invalid %s env var, defaulting to %d", name, default
        )
        return default


def _init_env_vars() -> None:
    """Read environment variables into module-level constants."""
    global SUPABASE_URL, SUPABASE_ANON_KEY, SUPABASE_ACCESS_TOKEN
    global PHOTO_BUCKET, BACKEND_TIMEOUT, SYNC_POLL_INTERVAL_SECONDS

    SUPABASE_URL = os.environ.get("SUPABASE_URL", "").rstrip("/")
    SUPABASE_ANON_KEY = os.environ.get("SUPABASE_ANON_KEY", "")
    SUPABASE_ACCESS_TOKEN = os.environ.get("SUPABASE_ACCESS_TOKEN", "")
    PHOTO_BUCKET = os.environ.get("FIELDSYNC_PHOTO_BUCKET", "manhole-photos")
    BACKEND_TIMEOUT = _int_env("FIELDSYNC_BACKEND_TIMEOUT", 30)
    SYNC_POLL_INTERVAL_SECONDS = _int_env("FIELDSYNC_POLL_INTERVAL", 5)


DATA_DIR = PROJECT_ROOT / "data"
DB_PATH = DATA_DIR / "fieldsync.db"
PERMISSIONS_PATH = DATA_DIR / "permissions.yaml"
MONITOR_LOG_FILE = DATA_DIR / "sync_monitor.log"

# Hosted backend (filled from env by init())
SUPABASE_URL = ""
SUPABASE_ANON_KEY = ""
SUPABASE_ACCESS_TOKEN = ""
PHOTO_BUCKET = "manhole-photos"
BACKEND_TIMEOUT = 30  # seconds, per HTTP call

# Sync status polling
SYNC_POLL_INTERVAL_SECONDS = 5

# Record kinds on the backend
PROJECTS_TABLE = "projects"
CHAMBERS_TABLE = "chambers"

# Client-minted placeholder ids start with this prefix
TEMP_ID_PREFIX = "tmp-"

# Natural key used to re-find a project created offline
PROJECT_LOOKUP_FIELDS = ("project_number", "name", "client")

# Photo slots on a chamber record, in promotion order
PHOTO_SLOTS = ("internal", "external")
DEFAULT_PHOTO_EXTENSION = "jpg"
DEFAULT_PHOTO_MIME = "image/jpeg"
PHOTO_CACHE_CONTROL = "3600"

# Offline list cache keys
CACHE_KEYS = ("projects", "chambers")


def ensure_data_dirs() -> None:
    """Create all required data directories if they don't exist."""
    init()
    DATA_DIR.mkdir(parents=True, exist_ok=True)
