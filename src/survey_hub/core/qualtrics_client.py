from __future__ import annotations

import io
import logging
import re
import time
import zipfile
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional

import pandas as pd
import requests

from survey_hub.config import (
    QUALTRICS_POLL_ATTEMPTS,
    QUALTRICS_POLL_INTERVAL_SECONDS,
    QUALTRICS_TIMEOUT_SECONDS,
)
from survey_hub.core.data_loader import build_session
from survey_hub.core.schema_parser import strip_html

logger = logging.getLogger(__name__)

SCHEMA_HEADERS = ["Q#", "SourceLabel", "Type", "QText", "Choices", "Rows", "Columns", "BlockName"]

TRASH_BLOCK = "Trash / Unused Questions"

_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_DIGITS_RE = re.compile(r"\d+")


class QualtricsExportError(Exception):
    """Raised when the Qualtrics API call or response export fails."""


@dataclass
class SurveySummary:
    id: str
    name: str
    is_active: bool
    creation_date: str
    last_modified_date: str


@dataclass
class SurveyImport:
    """The two CSV artifacts of one survey plus card metadata."""
    schema_csv: str
    responses_csv: str
    metadata: Dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Survey definition (JSON) -> schema rows
# ---------------------------------------------------------------------------

def _join_display(obj: Any, order: Any) -> str:
    """Join the display text of Choices/Answers/Columns in their declared order."""
    if not isinstance(obj, dict):
        return ""
    keys = [str(k) for k in order] if isinstance(order, list) else list(obj.keys())
    labels: List[str] = []
    for k in keys:
        item = obj.get(k)
        if not isinstance(item, dict):
            continue
        text = item.get("Display")
        if text is None:
            text = item.get("Text")
        if text is None:
            text = item.get("Label", "")
        text = strip_html(text)
        if text:
            labels.append(text)
    return "; ".join(labels)


def _block_names(definition: Mapping[str, Any]) -> Dict[str, str]:
    names: Dict[str, str] = {}
    for bid, block in (definition.get("Blocks") or {}).items():
        names[bid] = (block or {}).get("Description") or ""
    for el in definition.get("SurveyElements") or []:
        if el.get("Element") != "BL":
            continue
        payload = el.get("Payload") or {}
        if not isinstance(payload, dict):
            continue
        bid = payload.get("ID") or payload.get("BlockID") or el.get("PrimaryAttribute")
        if bid:
            names[bid] = payload.get("Description") or names.get(bid, "")
    return names


def _question_blocks(definition: Mapping[str, Any], names: Mapping[str, str]) -> Dict[str, str]:
    blocks: Dict[str, str] = {}
    for bid, block in (definition.get("Blocks") or {}).items():
        for be in (block or {}).get("BlockElements") or []:
            if be.get("Type") == "Question":
                blocks[be.get("QuestionID")] = names.get(bid, "")
    for el in definition.get("SurveyElements") or []:
        if el.get("Element") != "BL":
            continue
        payload = el.get("Payload") or {}
        if not isinstance(payload, dict):
            continue
        name = payload.get("Description") or ""
        for be in payload.get("BlockElements") or []:
            if be.get("Type") == "Question":
                qid = be.get("QuestionID")
                blocks[qid] = name or blocks.get(qid, "")
    return blocks


def _question_type(payload: Mapping[str, Any]) -> str:
    qtype = str(payload.get("QuestionType") or "").upper()
    selector = str(payload.get("Selector") or "").upper()
    if qtype == "MC":
        return "Multi" if selector.startswith("MA") else "Single"
    if qtype == "MATRIX":
        return "Matrix"
    if qtype in {"TE", "ML"}:
        return "Verbatim"
    if qtype in {"DB", "GR", "TB"}:
        return "Info"
    return str(payload.get("QuestionType") or "")


def _question_rows(
    payload: Mapping[str, Any],
    primary_attribute: str,
    blocks: Mapping[str, str],
) -> List[Dict[str, str]]:
    qid = payload.get("QuestionID") or primary_attribute or ""
    tag = payload.get("DataExportTag") or ""
    text = strip_html(_BR_RE.split(str(payload.get("QuestionText") or ""))[0])
    block = blocks.get(qid, "")
    qtype = _question_type(payload)

    choices = _join_display(payload.get("Choices"), payload.get("ChoiceOrder"))
    answers = _join_display(payload.get("Answers"), payload.get("AnswerOrder")) or _join_display(
        payload.get("SubQuestions"), payload.get("SubQuestionOrder")
    )
    columns = _join_display(payload.get("Columns"), payload.get("ColumnOrder"))

    row_labels = answers
    if qtype == "Matrix":
        # Qualtrics grids: Choices are the statements, Answers the scale
        row_labels, columns, choices = choices, answers or columns, ""

    rows = [{
        "Q#": tag or qid,
        "SourceLabel": block or tag,
        "Type": qtype,
        "QText": text or "(No text)",
        "Choices": choices,
        "Rows": row_labels,
        "Columns": columns,
        "BlockName": block,
    }]

    for source in (payload.get("Choices"), payload.get("Answers") or payload.get("SubQuestions")):
        if not isinstance(source, dict):
            continue
        for key, item in source.items():
            if not isinstance(item, dict) or item.get("TextEntry") not in (True, "true"):
                continue
            label = strip_html(item.get("Display") or item.get("Text") or "") or "Other"
            rows.append({
                "Q#": f"{tag}_{key}_TEXT",
                "SourceLabel": block,
                "Type": "Verbatim",
                "QText": f"{text} - {label} - Text",
                "Choices": "",
                "Rows": "",
                "Columns": "",
                "BlockName": block,
            })
    return rows


def _sort_key(row: Mapping[str, str]):
    qid = str(row.get("Q#") or "")
    m = _DIGITS_RE.search(qid.split("_")[0])
    return (int(m.group(0)) if m else 999_999, qid)


def build_questionnaire_rows(definition: Mapping[str, Any]) -> List[Dict[str, str]]:
    """
    Turn a Qualtrics survey definition (v3 `result` object) into schema rows
    using the Q#/QText/Type/Choices/Rows/Columns/BlockName layout.
    """
    names = _block_names(definition)
    blocks = _question_blocks(definition, names)
    rows: List[Dict[str, str]] = []

    elements = definition.get("SurveyElements")
    if isinstance(elements, list):
        for el in elements:
            if el.get("Element") == "SQ":
                rows.extend(_question_rows(el.get("Payload") or {}, el.get("PrimaryAttribute") or "", blocks))
    elif isinstance(definition.get("Questions"), dict):
        for qid, payload in definition["Questions"].items():
            rows.extend(_question_rows(payload or {}, qid, blocks))

    rows = [r for r in rows if (r.get("BlockName") or "") != TRASH_BLOCK]
    rows = [r for r in rows if str(r["Q#"]).upper().startswith("Q")]
    return sorted(rows, key=_sort_key)


def schema_rows_to_csv(rows: List[Dict[str, str]]) -> str:
    return pd.DataFrame(rows, columns=SCHEMA_HEADERS).to_csv(index=False)


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------

class QualtricsClient:
    """
    Minimal Qualtrics v3 API client.

    Base URL and token are always passed in; nothing is read from the
    environment here.
    """

    def __init__(
        self,
        base_url: str,
        api_token: str,
        *,
        session: Optional[requests.Session] = None,
        poll_interval_seconds: float = QUALTRICS_POLL_INTERVAL_SECONDS,
        poll_attempts: int = QUALTRICS_POLL_ATTEMPTS,
        timeout_seconds: int = QUALTRICS_TIMEOUT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not base_url or not api_token:
            raise QualtricsExportError("Qualtrics base URL and API token are required.")
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.session = session or build_session()
        self.poll_interval_seconds = poll_interval_seconds
        self.poll_attempts = poll_attempts
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        headers = {"X-API-TOKEN": self.api_token, **kwargs.pop("headers", {})}
        url = f"{self.base_url}/API/v3{path}"
        try:
            resp = self.session.request(method, url, headers=headers, timeout=self.timeout_seconds, **kwargs)
        except requests.RequestException as exc:
            raise QualtricsExportError(f"HTTP error while calling {path}: {exc}") from exc
        if not resp.ok:
            raise QualtricsExportError(f"Qualtrics call {path} failed (status={resp.status_code}).")
        return resp

    def _json_result(self, resp: requests.Response) -> Dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as exc:
            raise QualtricsExportError(f"Non-JSON response from Qualtrics (status={resp.status_code}).") from exc
        return (data or {}).get("result") or {}

    def list_surveys(self) -> List[SurveySummary]:
        result = self._json_result(self._request("GET", "/surveys"))
        return [
            SurveySummary(
                id=e.get("id", ""),
                name=e.get("name", ""),
                is_active=bool(e.get("isActive")),
                creation_date=e.get("creationDate", ""),
                last_modified_date=e.get("lastModifiedDate", ""),
            )
            for e in result.get("elements") or []
        ]

    def get_survey_definition(self, survey_id: str) -> Dict[str, Any]:
        resp = self._request("GET", f"/survey-definitions/{survey_id}", headers={"Accept": "application/json"})
        return self._json_result(resp)

    def export_responses_csv(self, survey_id: str) -> str:
        """Run a labelled CSV export, wait for it, and return the CSV text from the zip."""
        start = self._json_result(self._request(
            "POST",
            f"/surveys/{survey_id}/export-responses",
            json={"format": "csv", "useLabels": True},
        ))
        progress_id = start.get("progressId")
        if not progress_id:
            raise QualtricsExportError("Failed to start Qualtrics export.")

        file_id: Optional[str] = None
        for attempt in range(self.poll_attempts):
            self._sleep(self.poll_interval_seconds)
            poll = self._json_result(self._request("GET", f"/surveys/{survey_id}/export-responses/{progress_id}"))
            if poll.get("status") == "failed":
                raise QualtricsExportError("Qualtrics export failed on server.")
            logger.debug("Export %s at %s%% (attempt %s).", progress_id, poll.get("percentComplete"), attempt + 1)
            if poll.get("percentComplete") == 100:
                file_id = poll.get("fileId")
                break

        if not file_id:
            raise QualtricsExportError("Export timed out.")

        resp = self._request("GET", f"/surveys/{survey_id}/export-responses/{file_id}/file")
        try:
            with zipfile.ZipFile(io.BytesIO(resp.content)) as zf:
                name = next((n for n in zf.namelist() if n.lower().endswith(".csv")), None)
                if name is None:
                    raise QualtricsExportError("No CSV found in Qualtrics export zip.")
                return zf.read(name).decode("utf-8-sig", errors="replace")
        except zipfile.BadZipFile as exc:
            raise QualtricsExportError("Qualtrics export file is not a zip archive.") from exc

    def import_survey(self, survey_id: str, survey_name: str) -> SurveyImport:
        definition = self.get_survey_definition(survey_id)
        schema_csv = schema_rows_to_csv(build_questionnaire_rows(definition))
        responses_csv = self.export_responses_csv(survey_id)
        logger.info("Imported Qualtrics survey %s (%s).", survey_id, survey_name)

        today = date.today()
        return SurveyImport(
            schema_csv=schema_csv,
            responses_csv=responses_csv,
            metadata={
                "name": survey_name,
                "year": str(today.year),
                "promoter": "Qualtrics Source",
                "dates": f"{today.strftime('%b')} {today.day}",
                "venue": "Online Survey",
                "location": "Global",
            },
        )
