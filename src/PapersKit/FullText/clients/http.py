"""Shared async HTTP plumbing for the collaborator clients.

Provides:
- ``build_async_client``: an ``httpx.AsyncClient`` configured from ``HttpConfig``
- Retry-After aware Tenacity wait strategy
- ``request_with_retries``: one request under the retry policy, with final
  failures mapped to :class:`RemoteApiError`
"""

from __future__ import annotations

import asyncio
import email.utils
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

import httpx
import tenacity
from tenacity import RetryCallState, retry_if_exception, retry_if_result

from ..config.models import HttpConfig
from ..errors import RemoteApiError

LOGGER = logging.getLogger(__name__)

__all__ = [
    "RETRYABLE_EXCEPTIONS",
    "build_async_client",
    "is_pdf_response",
    "request_with_retries",
]

RETRYABLE_EXCEPTIONS = (
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.TimeoutException,
    httpx.RemoteProtocolError,
)

SleepFn = Callable[[float], Awaitable[None]]


def build_async_client(
    cfg: HttpConfig,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    mailto: Optional[str] = None,
) -> httpx.AsyncClient:
    """Create the shared ``httpx.AsyncClient``.

    Redirects are followed because PDF hosts and the Zotero file endpoint
    answer with a redirect to storage.
    """
    user_agent = cfg.user_agent
    if mailto:
        user_agent = f"{user_agent} (mailto:{mailto})"
    timeout = httpx.Timeout(cfg.timeout_read_s, connect=cfg.timeout_connect_s)
    return httpx.AsyncClient(
        transport=transport,
        timeout=timeout,
        headers={"User-Agent": user_agent, "Accept": "*/*"},
        follow_redirects=True,
    )


def is_pdf_response(response: httpx.Response) -> bool:
    """True for a 2xx response whose content type names a PDF."""
    content_type = response.headers.get("content-type", "")
    return response.is_success and "application/pdf" in content_type.lower()


class _WaitRetryAfter(tenacity.wait.wait_base):
    """Wait strategy that prefers the Retry-After header over exponential backoff."""

    def __init__(self, fallback: tenacity.wait.wait_base, cap_s: float) -> None:
        self.fallback = fallback
        self.cap_s = cap_s

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is None or outcome.failed:
            return self.fallback(retry_state)

        response = outcome.result()
        header = getattr(response, "headers", {}).get("Retry-After")
        retry_after_s: Optional[float] = None
        if header:
            try:
                retry_after_s = float(int(header))
            except ValueError:
                try:
                    dt = email.utils.parsedate_to_datetime(header)
                    retry_after_s = max(0.0, (dt - datetime.now(dt.tzinfo)).total_seconds())
                except (TypeError, ValueError):
                    retry_after_s = None

        if retry_after_s is not None and retry_after_s > 0:
            wait_s = min(retry_after_s, self.cap_s)
            LOGGER.debug(f"Using Retry-After header: {wait_s}s (capped at {self.cap_s}s)")
            return wait_s
        return self.fallback(retry_state)


def _log_before_sleep(service: str, method: str, url: str) -> Callable[[RetryCallState], None]:
    def _hook(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            reason = type(outcome.exception()).__name__
        elif outcome is not None:
            reason = f"HTTP {outcome.result().status_code}"
        else:
            reason = "unknown"
        LOGGER.warning(
            f"{service}: retrying {method} {url} after {reason} "
            f"(attempt {retry_state.attempt_number})"
        )

    return _hook


def _build_retrying(
    cfg: HttpConfig, *, service: str, method: str, url: str, sleep: Optional[SleepFn]
) -> tenacity.AsyncRetrying:
    statuses = set(cfg.retry_statuses)
    wait = _WaitRetryAfter(
        fallback=tenacity.wait_random_exponential(multiplier=0.5, max=8.0),
        cap_s=cfg.max_retry_after_s,
    )
    return tenacity.AsyncRetrying(
        stop=tenacity.stop_after_attempt(cfg.max_attempts),
        wait=wait,
        retry=(
            retry_if_exception(lambda exc: isinstance(exc, RETRYABLE_EXCEPTIONS))
            | retry_if_result(lambda resp: getattr(resp, "status_code", None) in statuses)
        ),
        before_sleep=_log_before_sleep(service, method, url),
        # Hand back the last response (or re-raise the last exception) instead of RetryError.
        retry_error_callback=lambda state: state.outcome.result(),
        sleep=sleep or asyncio.sleep,
    )


async def request_with_retries(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    cfg: HttpConfig,
    service: str,
    raise_for_status: bool = True,
    sleep: Optional[SleepFn] = None,
    **kwargs: Any,
) -> httpx.Response:
    """Issue one request under the retry policy.

    Retries on the configured statuses and on transport errors. Transport
    failures that survive the retries become :class:`RemoteApiError`; with
    ``raise_for_status`` so do final 4xx/5xx responses.
    """
    retrying = _build_retrying(cfg, service=service, method=method, url=url, sleep=sleep)
    try:
        response = await retrying(client.request, method, url, **kwargs)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise RemoteApiError(str(exc) or type(exc).__name__, service=service, url=url) from exc

    if raise_for_status and response.status_code >= 400:
        raise RemoteApiError(
            response.text[:500],
            status=response.status_code,
            service=service,
            url=url,
        )
    return response
