"""Interactive fallback coordinator: sampling, then elicitation, then polling.

Each state runs one step against the caller's :class:`FallbackEnvironment`
and feeds its :class:`StepResult` to :func:`next_state` until a terminal
state is reached.

Polling waits ``initial_delay_s``, then checks the library up to ``retries``
times, ``interval_s`` apart. Progress is reported against a total of
``retries + 1``: once after the initial wait and once after every check. A
successful check reports ``progress == total`` and stops immediately.
Task cancellation propagates out of the sleeps.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Tuple
from urllib.parse import urlsplit

from ..config.models import PollingConfig
from ..errors import ExtractionFailed, NoPdfFound, RemoteApiError
from ..sources import PdfHit
from ..sources.direct_url import fetch_pdf
from ..types import DirectUrl, ProcessingMode, WorkRecord, WorkTextResult
from .types import (
    Capabilities,
    EnvironmentUnavailable,
    FallbackEnvironment,
    FallbackOutcome,
    FallbackState,
    StepResult,
    next_state,
)

if TYPE_CHECKING:
    from ..acquisition import AcquisitionPipeline

LOGGER = logging.getLogger(__name__)

__all__ = ["InteractiveFallbackCoordinator", "parse_sampled_url", "sampling_prompt"]


def sampling_prompt(work: WorkRecord) -> str:
    title = f' titled "{work.title}"' if work.title else ""
    return (
        f"Find a direct, freely accessible PDF download URL for the scholarly work "
        f"with DOI {work.bare_doi}{title}. Reply with only the URL, or the word "
        f"none if you do not know one."
    )


def parse_sampled_url(reply: Optional[str]) -> Optional[str]:
    """The reply as an http(s) URL, or ``None`` for empty, "none" or anything else."""
    if not reply:
        return None
    candidate = reply.strip().strip("<>\"'`").strip()
    if not candidate or candidate.lower().rstrip(".") == "none":
        return None
    try:
        parts = urlsplit(candidate)
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.netloc or " " in candidate:
        return None
    return candidate


class InteractiveFallbackCoordinator:
    def __init__(
        self,
        pipeline: "AcquisitionPipeline",
        *,
        polling: Optional[PollingConfig] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self.pipeline = pipeline
        self.polling = polling or PollingConfig()
        self._sleep = sleep or asyncio.sleep

    async def run(
        self,
        err: NoPdfFound,
        env: FallbackEnvironment,
        *,
        mode: Optional[ProcessingMode] = None,
    ) -> FallbackOutcome:
        """Walk the fallback states for the work ``err`` describes."""
        work = err.work or await self.pipeline.metadata.get_work(err.work_id)
        caps = Capabilities(
            sampling=env.supports_sampling,
            elicitation=env.supports_elicitation,
            library_configured=self.pipeline.library_configured,
            has_doi=bool(work.bare_doi),
        )
        landing_url = err.landing_url

        state = next_state(FallbackState.START, caps)
        result: Optional[WorkTextResult] = None
        attempts = 0

        while not state.terminal:
            LOGGER.info(f"Fallback for {work.short_id}: {state.value}")
            if state is FallbackState.TRY_SAMPLING:
                result = await self._try_sampling(work, env, mode)
                step = StepResult.FOUND if result is not None else StepResult.NOT_FOUND
            elif state is FallbackState.TRY_ELICITATION:
                step = await self._try_elicitation(work, env, landing_url or "")
            else:
                result, attempts = await self._poll(work, env, mode)
                step = StepResult.FOUND if result is not None else StepResult.EXHAUSTED
            state = next_state(state, caps, step)

        LOGGER.info(f"Fallback for {work.short_id} ended: {state.value}")
        return FallbackOutcome(
            state=state,
            result=result if state is FallbackState.FOUND else None,
            landing_url=landing_url,
            library_configured=caps.library_configured,
            attempts=attempts,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _try_sampling(
        self, work: WorkRecord, env: FallbackEnvironment, mode: Optional[ProcessingMode]
    ) -> Optional[WorkTextResult]:
        try:
            reply = await env.sample(sampling_prompt(work))
        except EnvironmentUnavailable as exc:
            LOGGER.info(f"Sampling unavailable: {exc}")
            return None

        url = parse_sampled_url(reply)
        if url is None:
            LOGGER.info(f"Sampling gave no usable URL for {work.short_id}")
            return None

        data = await fetch_pdf(
            self.pipeline.http_client,
            url,
            http_cfg=self.pipeline.settings.http,
            sleep=self.pipeline.sleep,
        )
        if not data:
            return None
        hit = PdfHit(
            pdf_bytes=data,
            source=DirectUrl(url=url),
            cache_key=work.short_id,
            filename=f"{work.short_id}.pdf",
        )
        try:
            return await self.pipeline.extract_and_store(work, hit, mode=mode)
        except (ExtractionFailed, RemoteApiError) as exc:
            LOGGER.info(f"Sampled URL {url} did not extract: {exc}")
            return None

    async def _try_elicitation(
        self, work: WorkRecord, env: FallbackEnvironment, landing_url: str
    ) -> StepResult:
        title = work.title or work.short_id
        message = (
            f'No PDF was found for "{title}". Open {landing_url} and save the paper '
            f"to your Zotero library, then accept to continue."
        )
        try:
            action = await env.elicit_url(message, landing_url)
        except EnvironmentUnavailable as exc:
            LOGGER.info(f"Elicitation unavailable: {exc}")
            return StepResult.ERROR
        if action == "accept":
            return StepResult.ACCEPTED
        return StepResult.DECLINED

    async def _poll(
        self, work: WorkRecord, env: FallbackEnvironment, mode: Optional[ProcessingMode]
    ) -> Tuple[Optional[WorkTextResult], int]:
        """Check the library until the work shows up with a PDF.

        Returns the result (or ``None`` on exhaustion) and the number of checks made.
        Library search failures propagate.
        """
        cfg = self.polling
        total = cfg.total

        await self._sleep(cfg.initial_delay_s)
        progress = 1
        await env.report_progress(progress, total, "Waiting for the paper to appear in Zotero")

        for attempt in range(1, cfg.retries + 1):
            try:
                result = await self.pipeline.try_library(work, mode=mode)
            except ExtractionFailed as exc:
                LOGGER.warning(f"Library PDF for {work.short_id} did not extract: {exc}")
                result = None

            if result is not None:
                await env.report_progress(total, total, "Found in Zotero")
                return result, attempt

            progress += 1
            await env.report_progress(progress, total, f"Checked Zotero ({attempt}/{cfg.retries})")
            if attempt < cfg.retries:
                await self._sleep(cfg.interval_s)

        return None, cfg.retries
