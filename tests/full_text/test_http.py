from __future__ import annotations

import asyncio
from typing import List

import httpx
import pytest

from PapersKit.FullText.clients.http import (
    build_async_client,
    is_pdf_response,
    request_with_retries,
)
from PapersKit.FullText.config.models import HttpConfig
from PapersKit.FullText.errors import RemoteApiError
from tests.full_text.fakes import RecordingSleep

URL = "https://example.org/resource"


def _scripted(responses: List[httpx.Response]):
    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return responses[min(len(calls), len(responses)) - 1]

    return handler, calls


def _request(handler, *, cfg=None, sleep=None, **kwargs) -> httpx.Response:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return asyncio.run(
        request_with_retries(
            client, "GET", URL, cfg=cfg or HttpConfig(), service="test", sleep=sleep, **kwargs
        )
    )


def test_successful_request_no_retries() -> None:
    handler, calls = _scripted([httpx.Response(200, text="ok")])

    response = _request(handler)

    assert response.text == "ok"
    assert len(calls) == 1


def test_transient_503_is_retried() -> None:
    handler, calls = _scripted([httpx.Response(503), httpx.Response(503), httpx.Response(200)])
    sleep = RecordingSleep()

    response = _request(handler, sleep=sleep)

    assert response.status_code == 200
    assert len(calls) == 3
    assert len(sleep.delays) == 2


def test_retry_after_header_sets_wait() -> None:
    handler, _ = _scripted(
        [httpx.Response(429, headers={"Retry-After": "7"}), httpx.Response(200)]
    )
    sleep = RecordingSleep()

    _request(handler, sleep=sleep)

    assert sleep.delays == [7.0]


def test_retry_after_is_capped() -> None:
    handler, _ = _scripted(
        [httpx.Response(503, headers={"Retry-After": "3600"}), httpx.Response(200)]
    )
    sleep = RecordingSleep()

    _request(handler, cfg=HttpConfig(max_retry_after_s=10), sleep=sleep)

    assert sleep.delays == [10.0]


def test_exhausted_retries_raise_with_last_status() -> None:
    handler, calls = _scripted([httpx.Response(502, text="bad gateway")])

    with pytest.raises(RemoteApiError) as excinfo:
        _request(handler, cfg=HttpConfig(max_attempts=3), sleep=RecordingSleep())

    assert excinfo.value.status == 502
    assert len(calls) == 3


def test_client_errors_are_not_retried() -> None:
    handler, calls = _scripted([httpx.Response(404, text="missing")])

    with pytest.raises(RemoteApiError) as excinfo:
        _request(handler, sleep=RecordingSleep())

    assert excinfo.value.status == 404
    assert "test request failed (HTTP 404)" in str(excinfo.value)
    assert len(calls) == 1


def test_status_returned_when_not_raising() -> None:
    handler, _ = _scripted([httpx.Response(404)])

    assert _request(handler, raise_for_status=False).status_code == 404


def test_transport_errors_become_remote_api_error() -> None:
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RemoteApiError) as excinfo:
        _request(handler, cfg=HttpConfig(max_attempts=2), sleep=RecordingSleep())

    assert excinfo.value.status is None
    assert len(attempts) == 2


def test_invalid_url_becomes_remote_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.InvalidURL("Invalid IPv6 address")

    with pytest.raises(RemoteApiError) as excinfo:
        _request(handler, sleep=RecordingSleep())

    assert excinfo.value.service == "test"
    assert "Invalid IPv6 address" in str(excinfo.value)


def test_is_pdf_response() -> None:
    assert is_pdf_response(httpx.Response(200, headers={"content-type": "application/pdf"}))
    assert not is_pdf_response(httpx.Response(200, headers={"content-type": "text/html"}))
    assert not is_pdf_response(httpx.Response(404, headers={"content-type": "application/pdf"}))


def test_build_async_client_user_agent_includes_mailto() -> None:
    client = build_async_client(HttpConfig(user_agent="paperskit/test"), mailto="me@example.org")

    assert client.headers["User-Agent"] == "paperskit/test (mailto:me@example.org)"
    assert client.follow_redirects
