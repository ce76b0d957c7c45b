from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from survey_hub.core.column_resolver import resolve_columns
from survey_hub.core.index_mode import IndexModeDecision, detect_index_modes
from survey_hub.core.schema_parser import QuestionDefinition, QuestionKind

logger = logging.getLogger(__name__)

# Intentional non-answers, compared lower-cased
SENTINEL_MARKERS = {".empty.", ".timeout.", ".dropped."}

# "1:2,3:4" / "1=2; 3=4" (row:column pairs, Digivey grids)
_KEY_VALUE_RE = re.compile(r"^\d+[:=]\d+(?:[,;\s]+\d+[:=]\d+)*[,;\s]*$")
_PAIR_SPLIT_RE = re.compile(r"[,;\s]+")
_PAIR_RE = re.compile(r"(\d+)[:=](\d+)")

# "1;3", "2, 5", "$3"
_NUMERIC_LIST_RE = re.compile(r"^[\d$,;\s]+$")
_TOKEN_SPLIT_RE = re.compile(r"[,;]")
_LEADING_INT_RE = re.compile(r"^\d+")

LABEL_JOINER = "; "

Fields = Dict[str, str]


@dataclass
class NormalizationReport:
    """What could not be decoded. Nothing here ever aborts normalization."""
    record_count: int = 0
    unresolved_questions: List[str] = field(default_factory=list)
    ambiguous_tokens: Dict[str, int] = field(default_factory=dict)

    def add_ambiguous(self, question_id: str, count: int) -> None:
        if count:
            self.ambiguous_tokens[question_id] = self.ambiguous_tokens.get(question_id, 0) + count

    @property
    def ambiguous_total(self) -> int:
        return sum(self.ambiguous_tokens.values())


@dataclass
class NormalizationResult:
    records: List[Dict[str, str]]
    column_map: Dict[str, str]
    index_modes: Dict[str, IndexModeDecision]
    report: NormalizationReport


# ---------------------------------------------------------------------------
# Token resolution
# ---------------------------------------------------------------------------

def _leading_int(text: str) -> Optional[int]:
    m = _LEADING_INT_RE.match(text)
    return int(m.group(0)) if m else None


def resolve_token(raw: str, options: Sequence[str], one_based_null: bool) -> Optional[str]:
    """
    Map one raw token to an option label, or None.

    1-based-null mode: "0" is no answer, N is options[N-1].
    Standard mode: exact label match first, then N as options[N-1].
    """
    clean = raw.replace("$", "").strip()
    if clean == "":
        return None

    idx = _leading_int(clean)

    if one_based_null:
        if idx is None or idx == 0:
            return None
        return options[idx - 1] if idx <= len(options) else None

    for opt in options:
        if opt.strip() == clean:
            return opt

    if idx is not None and 0 < idx <= len(options):
        return options[idx - 1]
    return None


def is_key_value_list(value: str) -> bool:
    return bool(_KEY_VALUE_RE.match(value))


def is_numeric_list(value: str) -> bool:
    return bool(_NUMERIC_LIST_RE.match(value)) and any(ch.isdigit() for ch in value)


def sub_field(question_id: str, n: int) -> str:
    return f"{question_id}_{n}"


# ---------------------------------------------------------------------------
# Per-kind decoders: (question, raw value, 1-based-null) -> (fields, unresolved tokens)
# ---------------------------------------------------------------------------

def decode_key_value_matrix(q: QuestionDefinition, value: str) -> Tuple[Fields, int]:
    """Row index picks the sub-field, column index (1-based) picks the label."""
    fields: Fields = {}
    missed = 0
    for pair in _PAIR_SPLIT_RE.split(value):
        if not pair:
            continue
        m = _PAIR_RE.fullmatch(pair)
        if m is None:
            missed += 1
            continue
        row_idx, col_idx = int(m.group(1)), int(m.group(2))
        if 0 < col_idx <= len(q.columns):
            fields[sub_field(q.id, row_idx)] = q.columns[col_idx - 1]
        else:
            missed += 1
    return fields, missed


def _decode_ranking(q: QuestionDefinition, value: str, one_based_null: bool) -> Tuple[Fields, int]:
    # Position i in the list is the rank given to choices[i]
    fields: Fields = {}
    labels: List[str] = []
    missed = 0
    for i, part in enumerate(_TOKEN_SPLIT_RE.split(value)):
        rank = part.replace("$", "").strip()
        if not rank:
            continue
        if i >= len(q.choices):
            missed += 1
            continue
        fields[sub_field(q.id, i + 1)] = rank
        labels.append(f"{q.choices[i]} (#{rank})")
    if labels:
        fields[q.id] = LABEL_JOINER.join(labels)
    return fields, missed


def _decode_matrix(q: QuestionDefinition, value: str, one_based_null: bool) -> Tuple[Fields, int]:
    # One token per row, in row order
    fields: Fields = {}
    missed = 0
    for r, part in enumerate(_TOKEN_SPLIT_RE.split(value)):
        resolved = resolve_token(part, q.options, one_based_null)
        if resolved:
            fields[sub_field(q.id, r + 1)] = resolved
        elif part.strip():
            missed += 1
    return fields, missed


def _decode_multi(q: QuestionDefinition, value: str, one_based_null: bool) -> Tuple[Fields, int]:
    fields: Fields = {}
    labels: List[str] = []
    missed = 0
    for part in _TOKEN_SPLIT_RE.split(value):
        resolved = resolve_token(part, q.options, one_based_null)
        if resolved:
            labels.append(resolved)
            fields[sub_field(q.id, len(labels))] = resolved
        elif part.strip():
            missed += 1
    if labels:
        fields[q.id] = LABEL_JOINER.join(labels)
    return fields, missed


def _decode_single(q: QuestionDefinition, value: str, one_based_null: bool) -> Tuple[Fields, int]:
    # First token that resolves wins, the rest are ignored
    parts = _TOKEN_SPLIT_RE.split(value)
    for part in parts:
        resolved = resolve_token(part, q.options, one_based_null)
        if resolved:
            return {q.id: resolved}, 0
    return {}, sum(1 for p in parts if p.strip())


def _decode_nothing(q: QuestionDefinition, value: str, one_based_null: bool) -> Tuple[Fields, int]:
    return {}, 0


DECODERS: Dict[QuestionKind, Callable[[QuestionDefinition, str, bool], Tuple[Fields, int]]] = {
    QuestionKind.SINGLE: _decode_single,
    QuestionKind.MULTI: _decode_multi,
    QuestionKind.MATRIX: _decode_matrix,
    QuestionKind.RANKING: _decode_ranking,
    QuestionKind.VERBATIM: _decode_nothing,
    QuestionKind.INFO: _decode_nothing,
}


# ---------------------------------------------------------------------------
# Record normalization
# ---------------------------------------------------------------------------

def _normalize_metadata(row: Mapping[str, str], out: Dict[str, str]) -> None:
    # Digivey names: TakeTime / Duration. Only ever adds the Qualtrics names.
    if row.get("TakeTime") and not row.get("StartDate"):
        out["StartDate"] = row["TakeTime"]
    if row.get("Duration") and not row.get("Duration (in seconds)"):
        out["Duration (in seconds)"] = row["Duration"]


def normalize_record(
    row: Mapping[str, str],
    questions: Sequence[QuestionDefinition],
    column_map: Mapping[str, str],
    one_based: Mapping[str, bool],
    report: Optional[NormalizationReport] = None,
) -> Dict[str, str]:
    """Return a normalized copy of one response record. `row` is not modified."""
    out: Dict[str, str] = dict(row)
    _normalize_metadata(row, out)

    for q in questions:
        col = column_map.get(q.id)
        if col is None:
            continue

        val = str(row.get(col) or "").strip()
        if not val or val.lower() in SENTINEL_MARKERS:
            out[q.id] = ""
            continue

        is_one_based = one_based.get(q.id, False)
        # A bare 0 in 1-based mode is a skip, never option 0
        if is_one_based and val == "0":
            out[q.id] = ""
            continue

        # Fuzzy-matched column: keep the raw value under the canonical id
        if col != q.id:
            out[q.id] = val

        if q.is_matrix_like and is_key_value_list(val):
            fields, missed = decode_key_value_matrix(q, val)
        elif q.is_choice_based and is_numeric_list(val):
            fields, missed = DECODERS[q.kind](q, val, is_one_based)
        else:
            continue

        out.update(fields)
        if report is not None:
            report.add_ambiguous(q.id, missed)

    return out


def normalize_responses(
    records: Sequence[Mapping[str, str]],
    questions: Sequence[QuestionDefinition],
    column_map: Optional[Mapping[str, str]] = None,
    index_modes: Optional[Mapping[str, IndexModeDecision]] = None,
    report: Optional[NormalizationReport] = None,
) -> List[Dict[str, str]]:
    """
    Rewrite raw codes into canonical labels for every record.

    Column resolution and index-mode detection run here when not supplied.
    Returns new records; the input records are left untouched.
    """
    if not records or not questions:
        return [dict(r) for r in records]

    if column_map is None:
        column_map = resolve_columns(questions, list(records[0].keys()))
    if index_modes is None:
        index_modes = detect_index_modes(records, questions, column_map)

    one_based = {qid: d.one_based_null for qid, d in index_modes.items()}
    return [normalize_record(r, questions, column_map, one_based, report) for r in records]


def normalize_dataset(
    records: Sequence[Mapping[str, str]],
    questions: Sequence[QuestionDefinition],
    headers: Optional[Sequence[str]] = None,
) -> NormalizationResult:
    """Resolve, detect and normalize in one pass, collecting a report."""
    if headers is None:
        headers = list(records[0].keys()) if records else []

    column_map = resolve_columns(questions, headers)
    index_modes = detect_index_modes(records, questions, column_map)

    report = NormalizationReport(
        record_count=len(records),
        unresolved_questions=[q.id for q in questions if q.id not in column_map],
    )
    normalized = normalize_responses(records, questions, column_map, index_modes, report)

    if report.ambiguous_total:
        logger.info(
            "Normalized %s records; %s token(s) matched no option in %s question(s).",
            len(normalized), report.ambiguous_total, len(report.ambiguous_tokens),
        )
    return NormalizationResult(
        records=normalized,
        column_map=column_map,
        index_modes=dict(index_modes),
        report=report,
    )
