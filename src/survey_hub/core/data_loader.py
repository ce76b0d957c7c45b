from __future__ import annotations

import logging
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from survey_hub.config import FETCH_RETRIES, FETCH_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class DataLoaderError(Exception):
    """Raised when a dataset file cannot be fetched from storage."""


def build_session(retries: int = FETCH_RETRIES) -> requests.Session:
    """
    Build a requests Session for storage fetches.

    retries=0 (default) means a failed fetch fails the load. Callers that
    want transient-error retries opt in explicitly.
    """
    session = requests.Session()

    retry = Retry(
        total=retries,
        connect=retries,
        read=retries,
        status=retries,
        backoff_factor=0.6,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retry, pool_connections=4, pool_maxsize=4)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    return session


def fetch_csv_text(
    url: str,
    *,
    session: Optional[requests.Session] = None,
    timeout_seconds: int = FETCH_TIMEOUT_SECONDS,
) -> str:
    """
    GET one CSV file and return its text.

    Any transport error or non-2xx status raises DataLoaderError.
    """
    if not url or not url.strip():
        raise DataLoaderError("No URL given for dataset file.")

    sess = session or build_session()
    logger.info("Fetching %s", url)

    try:
        resp = sess.get(url, timeout=timeout_seconds)
    except requests.RequestException as exc:
        raise DataLoaderError(f"Fetch failed on storage bucket: {exc}") from exc

    if not resp.ok:
        raise DataLoaderError(f"Fetch failed on storage bucket (status={resp.status_code}) for {url}")

    # Storage often serves CSV as octet-stream; don't trust ISO-8859-1 guesses
    if not resp.encoding or resp.encoding.lower() == "iso-8859-1":
        resp.encoding = "utf-8"
    return resp.text
