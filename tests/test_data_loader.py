import pytest
import requests

from survey_hub.core.data_loader import DataLoaderError, build_session, fetch_csv_text


class FakeResponse:
    def __init__(self, text="", status_code=200, encoding=None):
        self.text = text
        self.status_code = status_code
        self.encoding = encoding

    @property
    def ok(self):
        return 200 <= self.status_code < 400


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        if self.error is not None:
            raise self.error
        return self.response


def test_fetch_returns_text():
    session = FakeSession(FakeResponse("A,B\n1,2\n", encoding="utf-8"))
    text = fetch_csv_text("https://bucket/schema.csv", session=session, timeout_seconds=5)
    assert text == "A,B\n1,2\n"
    assert session.calls == [("https://bucket/schema.csv", 5)]


def test_missing_encoding_defaults_to_utf8():
    response = FakeResponse("x", encoding="ISO-8859-1")
    fetch_csv_text("https://bucket/a.csv", session=FakeSession(response))
    assert response.encoding == "utf-8"


def test_non_success_status_raises():
    session = FakeSession(FakeResponse("Not found", status_code=404))
    with pytest.raises(DataLoaderError, match="status=404"):
        fetch_csv_text("https://bucket/missing.csv", session=session)


def test_transport_error_raises():
    session = FakeSession(error=requests.ConnectionError("refused"))
    with pytest.raises(DataLoaderError, match="Fetch failed"):
        fetch_csv_text("https://bucket/a.csv", session=session)


def test_blank_url_raises():
    with pytest.raises(DataLoaderError):
        fetch_csv_text("  ", session=FakeSession(FakeResponse("")))


def test_build_session_does_not_retry_by_default():
    session = build_session()
    adapter = session.get_adapter("https://bucket/a.csv")
    assert adapter.max_retries.total == 0


def test_build_session_opt_in_retries():
    adapter = build_session(retries=3).get_adapter("http://bucket/a.csv")
    assert adapter.max_retries.total == 3
