from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv

from imagine_stories.common.paths import data_dir, repo_root

load_dotenv(dotenv_path=repo_root() / ".env")

# --- Database ----------------------------------------------------------------
DATABASE_PATH = os.getenv("DATABASE_PATH", str(data_dir() / "imagine.db"))

# --- Admin gate --------------------------------------------------------------
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")
SESSION_SECRET = os.getenv("SESSION_SECRET", "") or ADMIN_PASSWORD
SESSION_MAX_AGE = int(os.getenv("SESSION_MAX_AGE", str(60 * 60 * 24 * 7)))
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "0").strip() in {"1", "true", "yes"}

# --- Models ------------------------------------------------------------------
TEXT_PROVIDER = os.getenv("TEXT_PROVIDER", "openai").strip().lower()
IMAGE_PROVIDER = os.getenv("IMAGE_PROVIDER", "openai").strip().lower()
STORY_MODEL = os.getenv("STORY_MODEL", "gpt-4o-mini")
IMAGE_MODEL = os.getenv("IMAGE_MODEL", "dall-e-2")
IMAGE_SIZE = os.getenv("IMAGE_SIZE", "512x512")
GEMINI_TEXT_MODEL = os.getenv("GEMINI_TEXT_MODEL", "gemini-2.5-pro")
GEMINI_IMAGE_MODEL = os.getenv("GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image")
PROMPT_TEMPLATES_PATH = os.getenv("PROMPT_TEMPLATES_PATH", "")

# Deadlines in seconds
TEXT_TIMEOUT_S = float(os.getenv("TEXT_TIMEOUT_S", "60"))
IMAGE_TIMEOUT_S = float(os.getenv("IMAGE_TIMEOUT_S", "90"))
UPLOAD_TIMEOUT_S = float(os.getenv("UPLOAD_TIMEOUT_S", "30"))

# --- Artifact store ----------------------------------------------------------
ARTIFACT_STORE = os.getenv("ARTIFACT_STORE", "local").strip().lower()
MEDIA_DIR = os.getenv("MEDIA_DIR", str(repo_root() / "media"))
SUPABASE_URL = os.getenv("SUPABASE_URL", "").rstrip("/")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
SUPABASE_STORAGE_BUCKET = os.getenv("SUPABASE_STORAGE_BUCKET", "")
GCS_BUCKET_NAME = os.getenv("GCS_BUCKET_NAME", "")
IMAGE_PREFIX = os.getenv("IMAGE_PREFIX", "imagine-by-lai/story-")
BACKUP_PREFIX = os.getenv("BACKUP_PREFIX", "backups/")

# Signed read URLs are issued for a date far enough out to never matter.
SIGNED_URL_EXPIRES_AT = datetime(2491, 3, 9, tzinfo=timezone.utc)

# --- Logging -----------------------------------------------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def configure_logging() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
