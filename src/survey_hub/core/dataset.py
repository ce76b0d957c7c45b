from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import requests

from survey_hub.config import FETCH_TIMEOUT_SECONDS
from survey_hub.core.data_loader import build_session, fetch_csv_text
from survey_hub.core.filter_engine import FilterConstraintSet, filter_responses
from survey_hub.core.index_mode import IndexModeDecision
from survey_hub.core.normalizer import NormalizationReport, normalize_dataset
from survey_hub.core.response_parser import TIMESTAMP_COLS, parse_responses_csv_detailed
from survey_hub.core.schema_parser import QuestionDefinition, parse_schema_csv_detailed

logger = logging.getLogger(__name__)


class DatasetError(Exception):
    """Raised when a schema/responses pair cannot be turned into a dataset."""


@dataclass
class SurveyDataset:
    """
    One loaded survey: parsed questions, the raw submissions and their
    normalized copies. Built once per schema+responses pair.
    """
    questions: List[QuestionDefinition]
    raw_records: List[Dict[str, str]]
    records: List[Dict[str, str]]
    column_map: Dict[str, str] = field(default_factory=dict)
    index_modes: Dict[str, IndexModeDecision] = field(default_factory=dict)
    report: NormalizationReport = field(default_factory=NormalizationReport)
    skipped_schema_rows: int = 0
    discarded_response_rows: int = 0

    @property
    def total(self) -> int:
        return len(self.records)

    def question(self, question_id: str) -> Optional[QuestionDefinition]:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    def filter(self, filters: FilterConstraintSet) -> List[Mapping[str, str]]:
        return filter_responses(self.records, self.questions, filters)


def load_dataset_from_text(schema_text: str, responses_text: str) -> SurveyDataset:
    """Parse both exports and normalize the responses against the schema."""
    schema = parse_schema_csv_detailed(schema_text)
    responses = parse_responses_csv_detailed(responses_text)

    if not responses.has_timestamp_column:
        raise DatasetError(
            f"Responses file is not a usable export: expected one of {', '.join(TIMESTAMP_COLS)} columns."
        )

    result = normalize_dataset(responses.records, schema.questions, headers=responses.headers)

    logger.info(
        "Dataset loaded: %s questions, %s responses (%s resolved columns, %s 1-based-null).",
        len(schema.questions),
        len(result.records),
        len(result.column_map),
        sum(1 for d in result.index_modes.values() if d.one_based_null),
    )

    return SurveyDataset(
        questions=schema.questions,
        raw_records=responses.records,
        records=result.records,
        column_map=result.column_map,
        index_modes=result.index_modes,
        report=result.report,
        skipped_schema_rows=schema.skipped_rows,
        discarded_response_rows=responses.discarded_rows,
    )


def load_dataset(
    schema_url: str,
    responses_url: str,
    *,
    session: Optional[requests.Session] = None,
    timeout_seconds: int = FETCH_TIMEOUT_SECONDS,
) -> SurveyDataset:
    """
    Fetch both CSVs from storage and load them.

    Raises DataLoaderError on any fetch failure; nothing is retried here.
    """
    if not schema_url or not responses_url:
        raise DatasetError("Missing datasets. Please re-initialize via Edit.")

    sess = session or build_session()
    schema_text = fetch_csv_text(schema_url, session=sess, timeout_seconds=timeout_seconds)
    responses_text = fetch_csv_text(responses_url, session=sess, timeout_seconds=timeout_seconds)
    return load_dataset_from_text(schema_text, responses_text)
