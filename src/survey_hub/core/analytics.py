from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

import pandas as pd

from survey_hub.core.schema_parser import QuestionDefinition, QuestionKind
from survey_hub.core.normalizer import sub_field

_LEADING_FLOAT_RE = re.compile(r"^\s*-?\d+(?:\.\d+)?")
_FIRST_INT_RE = re.compile(r"\d+")

NPS_SCALE_SIZE = 11


@dataclass(frozen=True)
class OptionAnalysis:
    is_numeric: bool
    value: float


@dataclass
class MatrixRowTally:
    name: str
    counts: Dict[str, int]
    total: int
    average: Optional[str] = None


@dataclass
class QuestionTally:
    """
    Per-question aggregate handed to the rendering layer.

    kind is one of 'chart' (single/multi), 'matrix' (grids and rankings),
    'text' (verbatims) or 'info'.
    """
    question_id: str
    kind: str
    total: int = 0
    counts: Dict[str, int] = field(default_factory=dict)
    mean: Optional[str] = None
    nps_score: Optional[int] = None
    nps_breakdown: Optional[Dict[str, str]] = None
    rows: List[MatrixRowTally] = field(default_factory=list)
    columns: List[str] = field(default_factory=list)
    responses: List[str] = field(default_factory=list)

    def percentages(self) -> Dict[str, float]:
        if not self.total:
            return {k: 0.0 for k in self.counts}
        return {k: round(v / self.total * 100, 1) for k, v in self.counts.items()}


# ---------------------------------------------------------------------------
# Option value heuristics
# ---------------------------------------------------------------------------

def analyze_option(text: str) -> OptionAnalysis:
    """'$25' -> 25.0, '7 - Very likely' -> 7.0, 'Yes' -> not numeric."""
    clean = str(text).replace("$", "").replace(",", "")
    m = _LEADING_FLOAT_RE.match(clean)
    if m:
        return OptionAnalysis(is_numeric=True, value=float(m.group(0)))
    return OptionAnalysis(is_numeric=False, value=0.0)


def detect_currency(text: str, options: Sequence[str]) -> bool:
    return "$" in text or any("$" in o for o in options)


def format_currency(value: float) -> str:
    return f"${value:.2f}"


def calculate_mean_from_map(counts: Mapping[str, int], value_map: Mapping[str, float]) -> Optional[str]:
    """Weighted mean of the mapped option values, labels without a value are ignored."""
    total = 0
    weighted = 0.0
    for label, count in counts.items():
        if label in value_map:
            weighted += value_map[label] * count
            total += count
    if not total:
        return None
    return f"{weighted / total:.2f}"


def option_value_map(options: Sequence[str]) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for opt in options:
        a = analyze_option(opt)
        if a.is_numeric:
            out[opt] = a.value
    return out


def is_nps_question(question: QuestionDefinition) -> bool:
    """0-10 scale (11 numeric options including 0 and 10) asking about recommending."""
    options = question.options
    if len(options) != NPS_SCALE_SIZE:
        return False
    nums = []
    for opt in options:
        m = _FIRST_INT_RE.search(opt)
        if m:
            nums.append(int(m.group(0)))
    return len(nums) == NPS_SCALE_SIZE and 0 in nums and 10 in nums and "recommend" in question.text.lower()


# ---------------------------------------------------------------------------
# Tallies
# ---------------------------------------------------------------------------

def _sub_keys(record: Mapping[str, str], question_id: str) -> List[str]:
    prefix = question_id + "_"
    return [k for k in record if k.startswith(prefix)]


def collect_verbatims(records: Sequence[Mapping[str, str]], question: QuestionDefinition) -> List[str]:
    qid = question.id
    answers = [r[qid] for r in records if (r.get(qid) or "").strip()]
    if answers or not records:
        return answers

    # Open-ended grids arrive as sub-fields only
    keys = _sub_keys(records[0], qid)
    out: List[str] = []
    for r in records:
        parts = [r[k] for k in keys if (r.get(k) or "").strip()]
        if parts:
            out.append(" | ".join(parts))
    return out


def _tally_choices(
    records: Sequence[Mapping[str, str]],
    question: QuestionDefinition,
    value_map: Optional[Mapping[str, float]],
) -> QuestionTally:
    qid = question.id
    counts: Dict[str, int] = {c: 0 for c in question.choices}
    answered = 0
    single = question.kind == QuestionKind.SINGLE
    nps = single and is_nps_question(question)
    promoters = passives = detractors = 0

    for r in records:
        if not single:
            keys = _sub_keys(r, qid)
            if keys:
                found = False
                for k in keys:
                    if r[k] in counts:
                        counts[r[k]] += 1
                        found = True
            else:
                val = r.get(qid) or ""
                found = bool(val)
                for part in val.split(","):
                    if part.strip() in counts:
                        counts[part.strip()] += 1
            if found:
                answered += 1
            continue

        val = r.get(qid)
        if val and val in counts:
            counts[val] += 1
            answered += 1
            if nps:
                m = _FIRST_INT_RE.search(val)
                score = int(m.group(0)) if m else -1
                if score >= 9:
                    promoters += 1
                elif score >= 7:
                    passives += 1
                elif score >= 0:
                    detractors += 1

    tally = QuestionTally(question_id=qid, kind="chart", total=answered, counts=counts)

    if single:
        values = value_map if value_map is not None else option_value_map(question.choices)
        mean = calculate_mean_from_map(counts, values)
        if mean is not None and detect_currency(question.text, question.choices):
            mean = format_currency(float(mean))
        tally.mean = mean

    if nps and answered:
        tally.nps_score = round((promoters - detractors) / answered * 100)
        tally.nps_breakdown = {
            "promoters": f"{promoters / answered * 100:.1f}",
            "passives": f"{passives / answered * 100:.1f}",
            "detractors": f"{detractors / answered * 100:.1f}",
        }
    return tally


def _tally_matrix(
    records: Sequence[Mapping[str, str]],
    question: QuestionDefinition,
    value_map: Optional[Mapping[str, float]],
) -> QuestionTally:
    qid = question.id
    columns = list(question.columns)
    currency = detect_currency(question.text, columns)
    values = value_map if value_map is not None else option_value_map(columns)

    rows: List[MatrixRowTally] = []
    for i, label in enumerate(question.rows):
        key = sub_field(qid, i + 1)
        counts = {c: 0 for c in columns}
        for r in records:
            val = r.get(key)
            if val and val in counts:
                counts[val] += 1
        mean = calculate_mean_from_map(counts, values)
        if mean is not None and currency:
            mean = format_currency(float(mean))
        rows.append(MatrixRowTally(name=label, counts=counts, total=sum(counts.values()), average=mean))

    row_keys = [sub_field(qid, i + 1) for i in range(len(question.rows))]
    answered = sum(1 for r in records if any((r.get(k) or "").strip() for k in row_keys))
    return QuestionTally(question_id=qid, kind="matrix", total=answered, rows=rows, columns=columns)


def _tally_ranking(records: Sequence[Mapping[str, str]], question: QuestionDefinition) -> QuestionTally:
    qid = question.id
    keys = [sub_field(qid, i + 1) for i in range(len(question.choices))]

    max_rank = 0
    for r in records:
        for k in keys:
            a = analyze_option(r.get(k) or "0")
            if a.is_numeric and a.value > max_rank:
                max_rank = int(a.value)
    if max_rank == 0:
        max_rank = len(question.choices)
    rank_cols = [str(n) for n in range(1, max_rank + 1)]

    rows: List[MatrixRowTally] = []
    for label, key in zip(question.choices, keys):
        counts = {c: 0 for c in rank_cols}
        rank_sum = 0
        for r in records:
            rank = r.get(key)
            if rank and rank in counts:
                counts[rank] += 1
                rank_sum += int(rank)
        n = sum(counts.values())
        rows.append(MatrixRowTally(
            name=label, counts=counts, total=n,
            average=f"{rank_sum / n:.2f}" if n else None,
        ))

    answered = sum(1 for r in records if any(r.get(k) for k in keys))
    return QuestionTally(question_id=qid, kind="matrix", total=answered, rows=rows, columns=rank_cols)


def tally_question(
    records: Sequence[Mapping[str, str]],
    question: QuestionDefinition,
    value_map: Optional[Mapping[str, float]] = None,
) -> QuestionTally:
    """
    Aggregate normalized records for one question.

    value_map overrides the numeric value of option labels for means
    (e.g. a mapping produced by an external scale analysis).
    """
    kind = question.kind
    if kind == QuestionKind.INFO:
        return QuestionTally(question_id=question.id, kind="info")
    if kind == QuestionKind.VERBATIM:
        answers = collect_verbatims(records, question)
        return QuestionTally(question_id=question.id, kind="text", total=len(answers), responses=answers)
    if kind == QuestionKind.RANKING:
        return _tally_ranking(records, question)
    if kind == QuestionKind.MATRIX:
        return _tally_matrix(records, question, value_map)
    return _tally_choices(records, question, value_map)


def tally_to_frame(tally: QuestionTally) -> pd.DataFrame:
    """Tabular view of a tally for display/export."""
    if tally.kind == "matrix":
        out = pd.DataFrame(
            [{"Row": row.name, **row.counts, "Total": row.total, "Average": row.average} for row in tally.rows]
        )
        return out
    if tally.kind == "text":
        return pd.DataFrame({"Response": tally.responses})

    pct = tally.percentages()
    return pd.DataFrame(
        [{"Option": label, "Count": count, "Percent": pct.get(label, 0.0)} for label, count in tally.counts.items()]
    )
