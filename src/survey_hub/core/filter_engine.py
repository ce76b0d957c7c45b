from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Sequence

from survey_hub.core.schema_parser import QuestionDefinition

# question id -> selected canonical labels
FilterConstraintSet = Mapping[str, Iterable[str]]


def _record_labels(record: Mapping[str, str], question_id: str) -> List[str]:
    """All labels a record holds for a question: canonical field plus every sub-field."""
    prefix = question_id + "_"
    labels: List[str] = []
    for key, val in record.items():
        if not val or not (key == question_id or key.startswith(prefix)):
            continue
        labels.extend(p.strip() for p in str(val).split(";"))
    return labels


def record_matches(
    record: Mapping[str, str],
    question: QuestionDefinition,
    selected: Iterable[str],
) -> bool:
    selected_set = set(selected)
    if not selected_set:
        return True
    if question.is_multi_valued:
        return any(label in selected_set for label in _record_labels(record, question.id))
    return record.get(question.id) in selected_set


def filter_responses(
    records: Sequence[Mapping[str, str]],
    questions: Sequence[QuestionDefinition],
    filters: FilterConstraintSet,
) -> List[Mapping[str, str]]:
    """
    Keep records that satisfy every active constraint.

    AND across questions, OR across the labels selected for one question.
    Empty selections and unknown question ids impose no constraint.
    """
    by_id = {q.id: q for q in questions}
    active = [
        (by_id[qid], set(labels))
        for qid, labels in filters.items()
        if qid in by_id
    ]
    active = [(q, labels) for q, labels in active if labels]
    if not active:
        return list(records)

    return [
        r for r in records
        if all(record_matches(r, q, labels) for q, labels in active)
    ]


def toggle_filter(filters: FilterConstraintSet, question_id: str, value: str) -> Dict[str, List[str]]:
    """
    Add `value` to the question's selection, or remove it if already selected.
    A question left with nothing selected is dropped from the result.
    """
    updated: Dict[str, List[str]] = {qid: list(labels) for qid, labels in filters.items()}
    current = updated.get(question_id, [])
    if value in current:
        current = [v for v in current if v != value]
    else:
        current = current + [value]

    if current:
        updated[question_id] = current
    else:
        updated.pop(question_id, None)
    return updated
