from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Sequence

from survey_hub.config import INDEX_MIN_CONFIDENT_SAMPLE, INDEX_SAMPLE_LIMIT
from survey_hub.core.schema_parser import QuestionDefinition

logger = logging.getLogger(__name__)

# Values ignored while sampling (exact, as exported)
SAMPLE_SKIP_MARKERS = {".empty.", ".Timeout."}

# 0-10 satisfaction / NPS scale: 11 options, Digivey codes them 1..11
ELEVEN_POINT_SCALE = 11

_DIGITS_RE = re.compile(r"^\d+$")


@dataclass(frozen=True)
class IndexModeDecision:
    """
    Outcome of the index-mode guess for one question.

    one_based_null: raw codes are 1-based ordinals and a bare "0" means no answer.
    low_confidence: fewer numeric samples than INDEX_MIN_CONFIDENT_SAMPLE backed the guess.
    """
    question_id: str
    one_based_null: bool
    option_count: int
    max_observed: int
    min_observed: Optional[int]
    numeric_count: int
    low_confidence: bool


def detect_index_mode(
    sample: Iterable[str],
    option_count: int,
    question_id: str = "",
    min_confident_sample: int = INDEX_MIN_CONFIDENT_SAMPLE,
) -> IndexModeDecision:
    """
    Guess whether the raw codes in `sample` are 1-based with 0 as null.

    Only purely numeric values count. The question is 1-based-null when the
    largest code equals the number of options, which covers the 0-10 scale
    coded 1..11. Anything else stays in standard mode (label match first,
    1-based index as a fallback).
    """
    max_found = 0
    min_found: Optional[int] = None
    numeric = 0

    for raw in sample:
        val = str(raw or "").strip()
        if not val or val in SAMPLE_SKIP_MARKERS:
            continue
        if not _DIGITS_RE.match(val):
            continue
        numeric += 1
        n = int(val)
        if n > max_found:
            max_found = n
        # 0 is a suspected null, keep it out of the minimum
        if n != 0 and (min_found is None or n < min_found):
            min_found = n

    one_based = False
    if numeric and option_count:
        if max_found == option_count:
            one_based = True
        elif option_count == ELEVEN_POINT_SCALE and max_found == ELEVEN_POINT_SCALE:
            one_based = True

    return IndexModeDecision(
        question_id=question_id,
        one_based_null=one_based,
        option_count=option_count,
        max_observed=max_found,
        min_observed=min_found,
        numeric_count=numeric,
        low_confidence=0 < numeric < min_confident_sample,
    )


def detect_index_modes(
    records: Sequence[Mapping[str, str]],
    questions: Iterable[QuestionDefinition],
    column_map: Mapping[str, str],
    sample_limit: int = INDEX_SAMPLE_LIMIT,
    min_confident_sample: int = INDEX_MIN_CONFIDENT_SAMPLE,
) -> Dict[str, IndexModeDecision]:
    """
    Decide the index mode of every choice-based question with options and a
    resolved column, from the first `sample_limit` records.
    """
    decisions: Dict[str, IndexModeDecision] = {}
    head = records[:sample_limit]

    for q in questions:
        col = column_map.get(q.id)
        if col is None or not q.is_choice_based:
            continue
        options = q.options
        if not options:
            continue

        decision = detect_index_mode(
            (r.get(col, "") for r in head),
            option_count=len(options),
            question_id=q.id,
            min_confident_sample=min_confident_sample,
        )
        decisions[q.id] = decision

        if decision.one_based_null and decision.low_confidence:
            logger.warning(
                "Question %s marked 1-based-null from only %s numeric samples (max=%s, options=%s).",
                q.id, decision.numeric_count, decision.max_observed, decision.option_count,
            )
        elif decision.one_based_null:
            logger.info(
                "Question %s marked 1-based-null (max=%s, options=%s).",
                q.id, decision.max_observed, decision.option_count,
            )

    return decisions

