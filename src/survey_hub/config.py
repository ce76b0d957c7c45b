from __future__ import annotations

import os
from pathlib import Path


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# ---------------------------------------------------------------------------
# Project paths
# ---------------------------------------------------------------------------

# Root of the project (repo root)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Local sample exports (optional, used by the UI upload fallback)
DATA_DIR = PROJECT_ROOT / "data"

# ---------------------------------------------------------------------------
# App identity
# ---------------------------------------------------------------------------

APP_NAME = "Survey Intelligence Hub"
APP_VERSION = "0.1.0"

LOG_LEVEL = os.getenv("SURVEY_HUB_LOG_LEVEL", "INFO").strip().upper() or "INFO"

# ---------------------------------------------------------------------------
# Dataset storage endpoints
#
# The schema CSV and the raw-responses CSV are hosted as plain files (bucket,
# CDN, ...). These defaults only pre-fill the UI; the core always receives
# URLs as explicit arguments.
# ---------------------------------------------------------------------------

SCHEMA_URL = os.getenv("SURVEY_HUB_SCHEMA_URL", "").strip()
RESPONSES_URL = os.getenv("SURVEY_HUB_RESPONSES_URL", "").strip()

FETCH_TIMEOUT_SECONDS = _env_int("SURVEY_HUB_FETCH_TIMEOUT_SECONDS", 60)

# 0 = a failed fetch is fatal for the load. Reloading is the caller's decision.
FETCH_RETRIES = _env_int("SURVEY_HUB_FETCH_RETRIES", 0)

# ---------------------------------------------------------------------------
# Normalization heuristics
# ---------------------------------------------------------------------------

# Max raw values inspected per question when guessing the index mode
INDEX_SAMPLE_LIMIT = _env_int("SURVEY_HUB_INDEX_SAMPLE_LIMIT", 1000)

# Below this many numeric samples an index-mode decision is logged as borderline
INDEX_MIN_CONFIDENT_SAMPLE = _env_int("SURVEY_HUB_INDEX_MIN_CONFIDENT_SAMPLE", 30)

# A calendar day counts as "active" for duration metrics from this many responses
ACTIVE_DAY_THRESHOLD = _env_int("SURVEY_HUB_ACTIVE_DAY_THRESHOLD", 10)

# ---------------------------------------------------------------------------
# Qualtrics export client
#
# Credentials are read here for the UI only and passed to QualtricsClient
# explicitly.
# ---------------------------------------------------------------------------

QUALTRICS_BASE_URL = os.getenv("QUALTRICS_BASE_URL", "").strip()
QUALTRICS_API_TOKEN = os.getenv("QUALTRICS_API_TOKEN", "").strip()
QUALTRICS_POLL_INTERVAL_SECONDS = _env_float("QUALTRICS_POLL_INTERVAL_SECONDS", 2.0)
QUALTRICS_POLL_ATTEMPTS = _env_int("QUALTRICS_POLL_ATTEMPTS", 30)
QUALTRICS_TIMEOUT_SECONDS = _env_int("QUALTRICS_TIMEOUT_SECONDS", 60)
