from __future__ import annotations

import traceback
from typing import Dict, List, Optional

import pandas as pd
import streamlit as st

from survey_hub.config import (
    APP_NAME,
    APP_VERSION,
    QUALTRICS_API_TOKEN,
    QUALTRICS_BASE_URL,
    RESPONSES_URL,
    SCHEMA_URL,
)
from survey_hub.core.analytics import tally_question, tally_to_frame
from survey_hub.core.data_loader import DataLoaderError
from survey_hub.core.dataset import (
    DatasetError,
    SurveyDataset,
    load_dataset,
    load_dataset_from_text,
)
from survey_hub.core.metrics import extract_project_metrics
from survey_hub.core.qualtrics_client import QualtricsClient, QualtricsExportError
from survey_hub.core.schema_parser import QuestionKind, format_display_id
from survey_hub.core.table_view import build_scrubbed_table

FILTERABLE_KINDS = {QuestionKind.SINGLE, QuestionKind.MULTI}


def _read_upload(upload) -> str:
    return upload.getvalue().decode("utf-8-sig", errors="replace")


def _set_dataset(dataset: Optional[SurveyDataset], error: Optional[str] = None, source: str = "") -> None:
    st.session_state["dataset"] = dataset
    st.session_state["load_error"] = error
    st.session_state["source"] = source


def _render_loader() -> None:
    with st.sidebar:
        st.header("Dataset")
        tab_url, tab_upload, tab_qualtrics = st.tabs(["Storage URLs", "Upload", "Qualtrics"])

        with tab_url:
            schema_url = st.text_input("Schema CSV URL", value=SCHEMA_URL)
            responses_url = st.text_input("Responses CSV URL", value=RESPONSES_URL)
            if st.button("Load from storage"):
                try:
                    with st.spinner("Fetching exports..."):
                        _set_dataset(load_dataset(schema_url, responses_url), source="Digivey Source")
                except (DataLoaderError, DatasetError) as exc:
                    _set_dataset(None, error=str(exc))

        with tab_upload:
            schema_file = st.file_uploader("Schema CSV", type=["csv"], key="schema_upload")
            responses_file = st.file_uploader("Responses CSV", type=["csv"], key="responses_upload")
            if st.button("Load uploads", disabled=not (schema_file and responses_file)):
                try:
                    ds = load_dataset_from_text(_read_upload(schema_file), _read_upload(responses_file))
                    _set_dataset(ds, source="Digivey Source")
                except DatasetError as exc:
                    _set_dataset(None, error=str(exc))

        with tab_qualtrics:
            survey_id = st.text_input("Survey ID", value="")
            if st.button("Import survey", disabled=not survey_id.strip()):
                try:
                    client = QualtricsClient(QUALTRICS_BASE_URL, QUALTRICS_API_TOKEN)
                    with st.spinner("Exporting responses from Qualtrics..."):
                        imported = client.import_survey(survey_id.strip(), survey_id.strip())
                    ds = load_dataset_from_text(imported.schema_csv, imported.responses_csv)
                    _set_dataset(ds, source=imported.metadata.get("promoter", "Qualtrics Source"))
                except (QualtricsExportError, DatasetError) as exc:
                    _set_dataset(None, error=str(exc))


def _render_error(error: str) -> None:
    st.error(f"Error: {error}")
    if st.button("Return to Workspace"):
        _set_dataset(None)
        st.rerun()


def _render_filters(dataset: SurveyDataset) -> Dict[str, List[str]]:
    filters: Dict[str, List[str]] = {}
    with st.sidebar:
        st.header("Filters")
        for q in dataset.questions:
            if q.kind not in FILTERABLE_KINDS or not q.choices:
                continue
            selected = st.multiselect(f"{format_display_id(q.id)} · {q.text}", options=list(q.choices), key=f"flt_{q.id}")
            # Deselecting everything removes the constraint
            if selected:
                filters[q.id] = selected
    return filters


def _render_topline(dataset: SurveyDataset, filtered: List[Dict[str, str]], source: str) -> None:
    metrics = extract_project_metrics(filtered, source=source or "Digivey Source")

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Respondents", f"{len(filtered):,} / {dataset.total:,}")
    c2.metric("Avg duration", metrics.avg_duration)
    c3.metric("Engagement", metrics.engagement)
    c4.metric("Completed", f"{metrics.progress_percent}%")
    st.caption(f"{metrics.source} · {metrics.date_range} · {metrics.total_days} · {metrics.survey_length}")

    report = dataset.report
    if report.unresolved_questions or report.ambiguous_total:
        with st.expander("Decoding notes", expanded=False):
            if report.unresolved_questions:
                st.write(f"No response column for: {', '.join(report.unresolved_questions)}")
            if report.ambiguous_tokens:
                st.dataframe(
                    pd.DataFrame(
                        [{"Question": k, "Unmatched tokens": v} for k, v in report.ambiguous_tokens.items()]
                    ),
                    use_container_width=True,
                )


def _render_questions(dataset: SurveyDataset, filtered: List[Dict[str, str]]) -> None:
    search = st.text_input("Search questions", value="").strip().lower()
    for q in dataset.questions:
        if search and search not in q.id.lower() and search not in q.text.lower():
            continue
        tally = tally_question(filtered, q)
        if tally.kind == "info":
            continue
        with st.expander(f"{format_display_id(q.id)} · {q.text}  (n = {tally.total})", expanded=False):
            if tally.mean:
                st.write(f"Mean: {tally.mean}")
            if tally.nps_score is not None:
                st.write(f"NPS: {tally.nps_score}  {tally.nps_breakdown}")
            st.dataframe(tally_to_frame(tally), use_container_width=True)


def _render_records(dataset: SurveyDataset, filtered: List[Dict[str, str]]) -> None:
    with st.expander("PII-scrubbed records", expanded=False):
        st.dataframe(build_scrubbed_table(filtered, dataset.questions), use_container_width=True)


def run_app() -> None:
    st.set_page_config(page_title=APP_NAME, page_icon="📊", layout="wide")
    st.title(APP_NAME)
    st.caption(f"Version {APP_VERSION}")

    _render_loader()

    error = st.session_state.get("load_error")
    if error:
        _render_error(error)
        return

    dataset: Optional[SurveyDataset] = st.session_state.get("dataset")
    if dataset is None:
        st.info("Load a schema + responses pair to start.")
        return

    try:
        filters = _render_filters(dataset)
        filtered = list(dataset.filter(filters))
        _render_topline(dataset, filtered, st.session_state.get("source", ""))
        _render_questions(dataset, filtered)
        _render_records(dataset, filtered)
    except Exception:
        st.error("Unexpected error while rendering the dataset.")
        st.text_area("Traceback", value=traceback.format_exc(), height=260)
