from __future__ import annotations

import pytest

from PapersKit.FullText.errors import (
    NoPdfFound,
    NotCached,
    PollingTimedOut,
    RemoteApiError,
    no_pdf_message,
    require_markdown,
    timed_out_message,
)
from PapersKit.FullText.store import LocalExtractionStore
from PapersKit.FullText.types import ExtractionMeta


def test_no_pdf_message_points_at_landing_page() -> None:
    err = NoPdfFound("W1", title="Deep Learning", doi="https://doi.org/10.1000/xyz")

    message = no_pdf_message(err, library_configured=True)

    assert message.splitlines()[0] == 'No PDF found for "Deep Learning".'
    assert "https://doi.org/10.1000/xyz" in message
    assert "ZOTERO_API_KEY" not in message


def test_no_pdf_message_without_doi_or_library() -> None:
    err = NoPdfFound("W2")

    message = no_pdf_message(err, library_configured=False)

    assert '"W2"' in message
    assert "no DOI" in message
    assert "ZOTERO_USER_ID" in message and "ZOTERO_API_KEY" in message


def test_landing_url_accepts_bare_doi() -> None:
    assert NoPdfFound("W3", doi="10.1/abc").landing_url == "https://doi.org/10.1/abc"
    assert NoPdfFound("W3").landing_url is None


def test_timed_out_message_names_work() -> None:
    err = PollingTimedOut("W4", title="Attention", attempts=55)

    assert "after 55 checks" in str(err)
    assert timed_out_message(err).startswith('"Attention" did not appear in Zotero')


@pytest.mark.parametrize(
    "kwargs, expected",
    [
        ({"service": "zotero", "status": 403}, "zotero request failed (HTTP 403): denied"),
        ({"service": "datalab"}, "datalab request failed: denied"),
        ({}, "request failed: denied"),
    ],
)
def test_remote_api_error_format(kwargs, expected: str) -> None:
    assert str(RemoteApiError("denied", **kwargs)) == expected


def test_require_markdown(tmp_path) -> None:
    store = LocalExtractionStore(tmp_path)
    store.write("ABCD2345", "# Text", None, ExtractionMeta(item_key="ABCD2345"))

    assert require_markdown(store, "ABCD2345") == "# Text"
    with pytest.raises(NotCached):
        require_markdown(store, "MISSING1")
