from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from survey_hub.core.schema_parser import QuestionDefinition

logger = logging.getLogger(__name__)


def resolve_column(question_id: str, headers: Sequence[str]) -> Optional[str]:
    """
    Exact header match first, then the first header of the form
    '<id> ...' or '<id>.<...>' (Digivey appends sub-labels: 'Q7 - Other').
    """
    if question_id in headers:
        return question_id
    for h in headers:
        if h.startswith(question_id + " ") or h.startswith(question_id + "."):
            return h
    return None


def resolve_columns(
    questions: Iterable[QuestionDefinition],
    headers: Sequence[str],
) -> Dict[str, str]:
    """Map question id -> response header. Unresolvable questions are left out."""
    headers = list(headers)
    column_map: Dict[str, str] = {}
    missing: List[str] = []

    for q in questions:
        col = resolve_column(q.id, headers)
        if col is None:
            missing.append(q.id)
            continue
        if col != q.id:
            logger.debug("Question %s resolved to column %r.", q.id, col)
        column_map[q.id] = col

    if missing:
        logger.info("No response column for %s question(s): %s", len(missing), ", ".join(missing))

    return column_map
