from survey_hub.core.metrics import extract_project_metrics

RECORDS = [
    {
        "SystemID": "DWL",
        "TakeTime": "2024-03-04 14:05:00",
        "Duration": "120",
        "Finished": "True",
        "Q1": "Red",
        "Q2": "",
    },
    {
        "SystemID": "ECS-07",
        "TakeTime": "2024-03-04 15:10:00",
        "Duration": "60",
        "Finished": "False",
        "Q1": "Blue",
        "Q2": "A",
    },
]


def test_empty_records():
    m = extract_project_metrics([])
    assert m.total_respondents == "n = 0"
    assert m.avg_duration == "0m 0s"
    assert m.date_range == "-"
    assert m.source == "Digivey Source"


def test_metrics_over_active_days():
    m = extract_project_metrics(RECORDS, source="Festival", active_day_threshold=1)
    assert m.online_percent == 50
    assert m.onsite_percent == 50
    assert m.avg_duration == "1m 30s"
    assert m.progress_percent == 50
    assert m.total_respondents == "n = 2"
    assert m.total_days == "1 days"
    assert m.date_range == "Mar 4, 2:05 PM - Mar 4, 3:10 PM"
    assert m.engagement == "1.5Qs"
    assert m.survey_length == "2Questions"
    assert m.source == "Festival"


def test_quiet_days_are_left_out_of_duration():
    m = extract_project_metrics(RECORDS, active_day_threshold=10)
    assert m.avg_duration == "0m 0s"
    assert m.total_days == "0 days"


def test_explicit_counters_take_precedence():
    records = [
        {"StartDate": "2024-03-04 10:00:00", "ActualAnswers": "20", "TotalQuestions": "52", "Status": "Offline"},
        {"StartDate": "2024-03-04 11:00:00", "ActualAnswers": "30", "TotalQuestions": "52", "Status": "Online"},
    ]
    m = extract_project_metrics(records, active_day_threshold=1)
    assert m.engagement == "25.0Qs"
    assert m.survey_length == "52Questions"
    assert m.onsite_percent == 50
    assert m.online_percent == 50


def test_unparseable_dates_are_skipped():
    m = extract_project_metrics([{"StartDate": "not a date", "Termination": "Normal"}])
    assert m.date_range == "-"
    assert m.progress_percent == 100
