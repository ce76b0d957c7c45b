from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from survey_hub.core.csv_reader import read_csv_text

logger = logging.getLogger(__name__)

# Timestamp columns, first non-empty wins (Qualtrics: StartDate/RecordedDate, Digivey: TakeTime)
TIMESTAMP_COLS = ["StartDate", "RecordedDate", "TakeTime"]

# Vendor header-repeat / ImportId rows carry these in the timestamp cell
PLACEHOLDER_MARKERS = ("Date", "{", "ImportId")

ResponseRecord = Dict[str, str]


@dataclass
class ResponseParseResult:
    headers: List[str] = field(default_factory=list)
    records: List[ResponseRecord] = field(default_factory=list)
    discarded_rows: int = 0

    @property
    def has_timestamp_column(self) -> bool:
        return any(c in self.headers for c in TIMESTAMP_COLS)


def record_timestamp(row: Mapping[str, str]) -> Optional[str]:
    for col in TIMESTAMP_COLS:
        v = row.get(col)
        if v:
            return str(v)
    return None


def is_response_row(row: Mapping[str, str]) -> bool:
    """
    A real submission has a timestamp that is not a vendor placeholder
    (Qualtrics repeats the header text and an ImportId JSON row under the header).
    """
    ts = record_timestamp(row)
    if not ts:
        return False
    return not any(marker in ts for marker in PLACEHOLDER_MARKERS)


def parse_responses_csv_detailed(csv_text: str) -> ResponseParseResult:
    table = read_csv_text(csv_text)
    result = ResponseParseResult(headers=table.headers)

    for row in table.rows:
        if is_response_row(row):
            result.records.append(row)
        else:
            result.discarded_rows += 1

    if result.discarded_rows:
        logger.info("Discarded %s metadata/placeholder rows from responses.", result.discarded_rows)
    if table.headers and not result.has_timestamp_column:
        logger.warning("Responses export has none of %s; every row was discarded.", TIMESTAMP_COLS)

    return result


def parse_responses_csv(csv_text: str) -> List[ResponseRecord]:
    """Parse a raw-responses export, keeping only real submissions."""
    return parse_responses_csv_detailed(csv_text).records
