from __future__ import annotations

import logging
import sys
from pathlib import Path

# Ensure the src/ directory is on sys.path so we can import survey_hub
ROOT_DIR = Path(__file__).resolve().parent
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from survey_hub.config import LOG_LEVEL  # type: ignore
from survey_hub.ui.app import run_app  # type: ignore


if __name__ == "__main__":
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    run_app()
