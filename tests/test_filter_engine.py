from survey_hub.core.filter_engine import filter_responses, record_matches, toggle_filter
from survey_hub.core.schema_parser import QuestionDefinition

Q1 = QuestionDefinition(id="Q1", text="Colour", type="Single", choices=("A", "B"))
Q2 = QuestionDefinition(id="Q2", text="Topics", type="Multi", choices=("X", "Y", "Z"))
Q3 = QuestionDefinition(id="Q3", text="Rate", type="Matrix", rows=("Food", "Music"), columns=("Low", "High"))
QUESTIONS = [Q1, Q2, Q3]

RECORDS = [
    {"ResponseId": "R1", "Q1": "A", "Q2": "X; Z", "Q2_1": "X", "Q2_2": "Z", "Q3": "1:2", "Q3_1": "High"},
    {"ResponseId": "R2", "Q1": "B", "Q2": "Y", "Q2_1": "Y", "Q3": "1:1,2:1", "Q3_1": "Low", "Q3_2": "Low"},
    {"ResponseId": "R3", "Q1": "", "Q2": "", "Q3": ""},
]


def _ids(records):
    return [r["ResponseId"] for r in records]


def test_single_question_constraint():
    assert _ids(filter_responses(RECORDS, QUESTIONS, {"Q1": ["A"]})) == ["R1"]


def test_or_within_question():
    assert _ids(filter_responses(RECORDS, QUESTIONS, {"Q1": ["A", "B"]})) == ["R1", "R2"]


def test_and_across_questions():
    assert _ids(filter_responses(RECORDS, QUESTIONS, {"Q1": ["B"], "Q2": ["X"]})) == []
    assert _ids(filter_responses(RECORDS, QUESTIONS, {"Q1": ["A"], "Q2": ["Z"]})) == ["R1"]


def test_multi_matches_any_sub_field():
    assert _ids(filter_responses(RECORDS, QUESTIONS, {"Q2": ["Z"]})) == ["R1"]


def test_matrix_matches_row_labels():
    assert _ids(filter_responses(RECORDS, QUESTIONS, {"Q3": ["Low"]})) == ["R2"]


def test_empty_and_unknown_constraints_are_ignored():
    assert _ids(filter_responses(RECORDS, QUESTIONS, {})) == ["R1", "R2", "R3"]
    assert _ids(filter_responses(RECORDS, QUESTIONS, {"Q1": []})) == ["R1", "R2", "R3"]
    assert _ids(filter_responses(RECORDS, QUESTIONS, {"Q99": ["A"]})) == ["R1", "R2", "R3"]


def test_filtered_records_are_a_subset_in_order():
    out = filter_responses(RECORDS, QUESTIONS, {"Q2": ["X", "Y"]})
    assert out == [RECORDS[0], RECORDS[1]]


def test_single_does_not_split_labels():
    record = {"Q1": "A; B"}
    assert not record_matches(record, Q1, ["A"])
    assert record_matches(record, Q1, ["A; B"])


def test_toggle_filter_adds_and_removes():
    filters = toggle_filter({}, "Q1", "A")
    assert filters == {"Q1": ["A"]}

    filters = toggle_filter(filters, "Q1", "B")
    assert filters == {"Q1": ["A", "B"]}

    filters = toggle_filter(filters, "Q1", "A")
    assert filters == {"Q1": ["B"]}


def test_toggle_filter_drops_emptied_question():
    original = {"Q1": ["A"], "Q2": ["X"]}
    filters = toggle_filter(original, "Q1", "A")
    assert filters == {"Q2": ["X"]}
    assert original == {"Q1": ["A"], "Q2": ["X"]}
