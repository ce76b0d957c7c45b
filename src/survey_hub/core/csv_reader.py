from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd

logger = logging.getLogger(__name__)

# C tokenizer message for an unterminated quote; the row is the first record it swallowed
_UNCLOSED_QUOTE_RE = re.compile(r"EOF inside string starting at row (\d+)")


@dataclass
class CsvTable:
    """Header-keyed rows of a CSV export, every cell kept as text."""
    headers: List[str] = field(default_factory=list)
    rows: List[Dict[str, str]] = field(default_factory=list)


def _read_frame(text: str, nrows: Optional[int] = None) -> pd.DataFrame:
    return pd.read_csv(
        io.StringIO(text),
        dtype=str,
        keep_default_na=False,
        na_filter=False,
        skip_blank_lines=True,
        on_bad_lines="skip",
        # never promote the first column to an index (trailing commas)
        index_col=False,
        nrows=nrows,
    )


def read_csv_text(text: str) -> CsvTable:
    """
    Parse CSV text with the first row as field names.

    Best effort only:
      - rows with too many fields are skipped
      - rows with too few fields are padded with ""
      - an unterminated quote keeps the rows before it
      - empty / header-less input yields an empty table
    Nothing is coerced: "0", "NA", "" all stay strings.
    """
    if not text or not text.strip():
        return CsvTable()

    # Exports saved from Excel usually carry a BOM on the first header
    text = text.lstrip("\ufeff")

    try:
        df = _read_frame(text)
    except pd.errors.EmptyDataError:
        return CsvTable()
    except pd.errors.ParserError as exc:
        m = _UNCLOSED_QUOTE_RE.search(str(exc))
        if m is None:
            logger.warning("CSV text could not be parsed: %s", exc)
            return CsvTable()
        # row counts the header too
        keep = max(int(m.group(1)) - 1, 0)
        logger.warning("Unterminated quote in CSV row %s; keeping the %s rows before it.", m.group(1), keep)
        try:
            df = _read_frame(text, nrows=keep)
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as retry_exc:
            logger.warning("CSV text could not be parsed: %s", retry_exc)
            return CsvTable()

    df = df.fillna("")
    headers = [str(c) for c in df.columns]
    df.columns = headers
    return CsvTable(headers=headers, rows=df.to_dict(orient="records"))
