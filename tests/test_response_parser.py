from survey_hub.core.response_parser import (
    is_response_row,
    parse_responses_csv,
    parse_responses_csv_detailed,
)

QUALTRICS_RESPONSES = (
    "StartDate,EndDate,ResponseId,Q1\n"
    "Start Date,End Date,Response ID,Favourite colour?\n"
    '"{""ImportId"":""startDate""}","{""ImportId"":""endDate""}","{""ImportId"":""_recordId""}","{""ImportId"":""QID1""}"\n'
    "2024-03-04 14:05:00,2024-03-04 14:09:00,R_1,2\n"
    "2024-03-04 15:00:00,2024-03-04 15:04:00,R_2,3\n"
)


def test_qualtrics_header_rows_are_discarded():
    result = parse_responses_csv_detailed(QUALTRICS_RESPONSES)
    assert [r["ResponseId"] for r in result.records] == ["R_1", "R_2"]
    assert result.discarded_rows == 2
    assert result.has_timestamp_column


def test_digivey_take_time_is_accepted():
    text = "TakeTime,Duration,Q1\n3/4/2024 2:05 PM,300,1\n,120,2\n"
    records = parse_responses_csv(text)
    assert records == [{"TakeTime": "3/4/2024 2:05 PM", "Duration": "300", "Q1": "1"}]


def test_rows_without_timestamp_columns_are_excluded():
    result = parse_responses_csv_detailed("ResponseId,Q1\nR_1,2\n")
    assert result.records == []
    assert result.discarded_rows == 1
    assert not result.has_timestamp_column


def test_placeholder_markers():
    assert not is_response_row({"StartDate": "Start Date"})
    assert not is_response_row({"RecordedDate": '{"ImportId":"recordedDate"}'})
    assert not is_response_row({"TakeTime": "ImportId"})
    assert not is_response_row({"StartDate": ""})
    assert is_response_row({"StartDate": "", "RecordedDate": "2024-03-04 14:05:00"})


def test_empty_text():
    assert parse_responses_csv("") == []


def test_trailing_commas_keep_timestamps_aligned():
    records = parse_responses_csv("StartDate,Q1\n2024-01-01,2,\n2024-01-02,3,\n")
    assert records == [
        {"StartDate": "2024-01-01", "Q1": "2"},
        {"StartDate": "2024-01-02", "Q1": "3"},
    ]
