from __future__ import annotations

import re
from typing import List, Mapping, Sequence

import pandas as pd

from survey_hub.core.schema_parser import QuestionDefinition

METADATA_HEADERS = ["ResponseId", "StartDate", "Duration (in seconds)", "Finished"]

# Questions whose text or id mentions any of these never reach the table
PII_PATTERN = re.compile(r"name|email|phone|contact|address", re.IGNORECASE)

MISSING = "-"


def is_pii_question(question: QuestionDefinition) -> bool:
    return bool(PII_PATTERN.search(question.text + question.id))


def scrubbed_headers(questions: Sequence[QuestionDefinition]) -> List[str]:
    return METADATA_HEADERS + [q.id for q in questions if not is_pii_question(q)]


def build_scrubbed_table(
    records: Sequence[Mapping[str, str]],
    questions: Sequence[QuestionDefinition],
    limit: int = 50,
) -> pd.DataFrame:
    """First `limit` records, metadata plus non-PII question columns."""
    if not records:
        return pd.DataFrame()

    headers = scrubbed_headers(questions)
    rows = [{h: (r.get(h) or MISSING) for h in headers} for r in records[:limit]]
    return pd.DataFrame(rows, columns=headers)
