from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from survey_hub.core.csv_reader import read_csv_text

logger = logging.getLogger(__name__)

# Header aliases, first present wins (Qualtrics first, then Digivey)
ID_COLS = ["Q#", "QuestionID", "Question #"]
TEXT_COLS = ["QText", "Question Text", "Text"]
TYPE_COLS = ["Type", "Question Type"]
CHOICE_COLS = ["Choices", "Answer Choices"]
BLOCK_COLS = ["BlockName", "Block", "SourceLabel"]

DEFAULT_TYPE = "Verbatim"
DEFAULT_BLOCK = "General"

# Ids carrying this marker are free-text companions of another question
TEXT_COMPANION_MARKER = "_TEXT"

# Canonical labels for bare geo prompts (matched on lower-cased, stripped text)
GEO_PROMPTS = {
    "zip": "Zip Code",
    "zipcode": "Zip Code",
    "postal": "Postal Code",
    "postalcode": "Postal Code",
    "zip / postal code": "Zip / Postal Code",
    "zip/postal code": "Zip / Postal Code",
}

_HTML_TAG_RE = re.compile(r"<[^>]*>?")
_WS_RE = re.compile(r"\s+")
_TEXT_SUFFIX_RE = re.compile(r"_(\d+_)?TEXT$")


class QuestionKind(Enum):
    """Decoding variant of a question."""
    SINGLE = "single"
    MULTI = "multi"
    MATRIX = "matrix"
    RANKING = "ranking"
    VERBATIM = "verbatim"
    INFO = "info"


@dataclass(frozen=True)
class QuestionDefinition:
    id: str
    text: str
    type: str
    choices: Tuple[str, ...] = ()
    rows: Tuple[str, ...] = ()
    columns: Tuple[str, ...] = ()
    block: str = DEFAULT_BLOCK

    @property
    def type_lower(self) -> str:
        return self.type.strip().lower()

    @property
    def is_matrix_like(self) -> bool:
        t = self.type_lower
        return "matrix" in t or "likert" in t

    @property
    def is_choice_based(self) -> bool:
        """Vendor type carries coded options (Single, Multi, Matrix/Likert)."""
        t = self.type_lower
        return t == "single" or "multi" in t or self.is_matrix_like

    @property
    def is_multi_valued(self) -> bool:
        """Answers spread over synthetic sub-fields (filtering looks at all of them)."""
        t = self.type_lower
        return "multi" in t or "matrix" in t

    @property
    def options(self) -> Tuple[str, ...]:
        """The index basis for decoding: columns for grids, choices otherwise."""
        return self.columns if self.is_matrix_like else self.choices

    @property
    def kind(self) -> QuestionKind:
        t = self.type_lower
        if t == "single":
            return QuestionKind.SINGLE
        if self.is_matrix_like or "multi" in t:
            if "rank" in self.text.lower():
                return QuestionKind.RANKING
            return QuestionKind.MATRIX if self.is_matrix_like else QuestionKind.MULTI
        if "info" in t:
            return QuestionKind.INFO
        return QuestionKind.VERBATIM


@dataclass
class SchemaParseResult:
    questions: List[QuestionDefinition] = field(default_factory=list)
    skipped_rows: int = 0


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def strip_html(value: Any) -> str:
    """Drop HTML tags and collapse whitespace."""
    if value is None:
        return ""
    text = _HTML_TAG_RE.sub("", str(value)).strip()
    return _WS_RE.sub(" ", text)


def normalize_question_text(value: Any) -> str:
    text = strip_html(value)
    return GEO_PROMPTS.get(text.lower(), text)


def format_display_id(question_id: str) -> str:
    """Q7_10_TEXT -> 'Q7 Other'."""
    return _TEXT_SUFFIX_RE.sub(" Other", question_id)


def split_list(value: Any) -> Tuple[str, ...]:
    """'A; B;; C ' -> ('A', 'B', 'C')."""
    if value is None:
        return ()
    return tuple(p.strip() for p in str(value).split(";") if p.strip())


def _first_present(row: Mapping[str, Any], cols: Sequence[str]) -> Optional[str]:
    for c in cols:
        v = row.get(c)
        if v is not None and str(v).strip() != "":
            return str(v)
    return None


# ---------------------------------------------------------------------------
# Row -> QuestionDefinition
# ---------------------------------------------------------------------------

def question_from_row(row: Mapping[str, Any]) -> Optional[QuestionDefinition]:
    """
    Build one question from a schema row, or None when the row is not a
    first-class question (no id, or a *_TEXT companion field).

    Single-row matrix promotion: a Matrix with columns but no rows is a
    horizontal single-select scale, so it becomes Single with the columns
    as its choices.
    """
    qid = (_first_present(row, ID_COLS) or "").strip()
    if not qid or TEXT_COMPANION_MARKER in qid:
        return None

    qtype = (_first_present(row, TYPE_COLS) or DEFAULT_TYPE).strip()
    choices = split_list(_first_present(row, CHOICE_COLS))
    rows = split_list(row.get("Rows"))
    columns = split_list(row.get("Columns"))

    if qtype.lower() == "matrix" and not rows and columns:
        qtype = "Single"
        choices = columns
        columns = ()

    return QuestionDefinition(
        id=qid,
        text=normalize_question_text(_first_present(row, TEXT_COLS)),
        type=qtype,
        choices=choices,
        rows=rows,
        columns=columns,
        block=(_first_present(row, BLOCK_COLS) or DEFAULT_BLOCK).strip(),
    )


def parse_schema_rows(rows: Sequence[Mapping[str, Any]]) -> SchemaParseResult:
    result = SchemaParseResult()
    seen: Dict[str, int] = {}

    for i, row in enumerate(rows):
        q = question_from_row(row)
        if q is None:
            logger.debug("Schema row %s skipped (no id or text companion).", i)
            result.skipped_rows += 1
            continue
        if q.id in seen:
            logger.warning(
                "Duplicate question id %s in schema row %s (first seen in row %s); keeping the first.",
                q.id, i, seen[q.id],
            )
            result.skipped_rows += 1
            continue
        seen[q.id] = i
        result.questions.append(q)

    return result


def parse_schema_csv(csv_text: str) -> List[QuestionDefinition]:
    """
    Parse a Qualtrics or Digivey schema export into ordered questions.

    Never raises on malformed content: bad rows are skipped and an
    unreadable file yields an empty list.
    """
    return parse_schema_csv_detailed(csv_text).questions


def parse_schema_csv_detailed(csv_text: str) -> SchemaParseResult:
    table = read_csv_text(csv_text)
    result = parse_schema_rows(table.rows)
    logger.info(
        "Parsed schema: %s questions, %s rows skipped.",
        len(result.questions), result.skipped_rows,
    )
    return result
