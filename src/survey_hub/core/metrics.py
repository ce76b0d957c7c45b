from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence

import pandas as pd

from survey_hub.config import ACTIVE_DAY_THRESHOLD

DEFAULT_SOURCE = "Digivey Source"

# SystemID values: Qualtrics web link vs Eventcore on-site kiosks
ONLINE_SYSTEM_ID = "DWL"
ONSITE_SYSTEM_PREFIX = "ECS-"

_Q_NUMBER_RE = re.compile(r"^Q(\d+)")


@dataclass
class ProjectMetrics:
    """Topline snapshot of a dataset, pre-formatted for cards."""
    online_percent: int
    onsite_percent: int
    date_range: str
    avg_duration: str
    engagement: str
    survey_length: str
    progress_percent: int
    total_respondents: str
    source: str
    total_days: str


def _empty_metrics(source: str) -> ProjectMetrics:
    return ProjectMetrics(
        online_percent=0,
        onsite_percent=0,
        date_range="-",
        avg_duration="0m 0s",
        engagement="0Qs",
        survey_length="0Questions",
        progress_percent=0,
        total_respondents="n = 0",
        source=source,
        total_days="0 days",
    )


def _to_float(value: object) -> Optional[float]:
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return None


def _format_timestamp(ts: pd.Timestamp) -> str:
    # "Mar 4, 2:05 PM"
    hour = ts.hour % 12 or 12
    suffix = "AM" if ts.hour < 12 else "PM"
    return f"{ts.strftime('%b')} {ts.day}, {hour}:{ts.minute:02d} {suffix}"


def _is_finished(record: Mapping[str, str]) -> bool:
    return str(record.get("Finished", "")).strip().lower() in {"true", "1"} or record.get("Termination") == "Normal"


def _answered_questions(record: Mapping[str, str]) -> float:
    actual = _to_float(record.get("ActualAnswers") or "")
    if actual is not None:
        return actual
    return float(sum(1 for k, v in record.items() if k.startswith("Q") and v != ""))


def _survey_length(first: Mapping[str, str]) -> int:
    total = _to_float(first.get("TotalQuestions") or "")
    if total is not None:
        return int(total)
    numbers: List[int] = []
    for key in first:
        m = _Q_NUMBER_RE.match(key)
        if m:
            numbers.append(int(m.group(1)))
    return max(numbers, default=0)


def extract_project_metrics(
    records: Sequence[Mapping[str, str]],
    source: str = DEFAULT_SOURCE,
    active_day_threshold: int = ACTIVE_DAY_THRESHOLD,
) -> ProjectMetrics:
    """
    Session-level metrics over normalized records.

    Average duration only counts responses taken on "active" days (at least
    `active_day_threshold` responses), which keeps test/soft-launch days out.
    """
    if not records:
        return _empty_metrics(source)

    total = len(records)

    online = onsite = 0
    for r in records:
        system_id = str(r.get("SystemID") or "")
        status = str(r.get("Status") or "")
        if system_id == ONLINE_SYSTEM_ID:
            online += 1
        elif system_id.startswith(ONSITE_SYSTEM_PREFIX):
            onsite += 1
        elif status == "Offline":
            onsite += 1
        elif status != "":
            online += 1

    df = pd.DataFrame({
        "ts": [r.get("TakeTime") or r.get("StartDate") or r.get("RecordedDate") or "" for r in records],
        "duration": [_to_float(r.get("Duration") or r.get("Duration (in seconds)") or "") for r in records],
    })
    df["ts"] = pd.to_datetime(df["ts"], errors="coerce", format="mixed")
    dated = df.dropna(subset=["ts"]).copy()
    dated["day"] = dated["ts"].dt.date

    day_counts = dated["day"].value_counts()
    active_days = set(day_counts[day_counts >= active_day_threshold].index)

    date_range = "-"
    if not dated.empty:
        date_range = f"{_format_timestamp(dated['ts'].min())} - {_format_timestamp(dated['ts'].max())}"

    active = dated[dated["day"].isin(active_days)]["duration"].dropna()
    avg_sec = float(active.mean()) if not active.empty else 0.0
    avg_duration = f"{int(avg_sec // 60)}m {round(avg_sec % 60)}s"

    engagement = sum(_answered_questions(r) for r in records) / total
    finished = sum(1 for r in records if _is_finished(r))

    return ProjectMetrics(
        online_percent=round(online / total * 100),
        onsite_percent=round(onsite / total * 100),
        date_range=date_range,
        avg_duration=avg_duration,
        engagement=f"{engagement:.1f}Qs",
        survey_length=f"{_survey_length(records[0])}Questions",
        progress_percent=round(finished / total * 100),
        total_respondents=f"n = {total:,}",
        source=source,
        total_days=f"{len(active_days)} days",
    )
