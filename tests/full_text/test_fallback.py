from __future__ import annotations

import asyncio

import httpx
import pytest

from PapersKit.FullText.acquisition import acquire_with_fallback
from PapersKit.FullText.config.models import PollingConfig
from PapersKit.FullText.errors import NoPdfFound, PollingTimedOut
from PapersKit.FullText.fallback import (
    Capabilities,
    FallbackState,
    InteractiveFallbackCoordinator,
    StepResult,
    next_state,
    parse_sampled_url,
    sampling_prompt,
)
from PapersKit.FullText.types import DirectUrl, RemoteLibrary
from tests.full_text.fakes import (
    PDF_BYTES,
    FakeEnvironment,
    FakeExtractor,
    FakeLibrary,
    FakeMetadata,
    RecordingSleep,
    make_work,
)

PARENT = "PRNT2345"
ATTACHMENT = "ATCH2345"
DOI = "10.1000/xyz"

ALL = Capabilities(sampling=True, elicitation=True, library_configured=True, has_doi=True)


def _library() -> FakeLibrary:
    library = FakeLibrary()
    library.add_parent(PARENT, title="Deep Learning", doi=DOI)
    library.add_attachment(ATTACHMENT, PARENT, "paper.pdf", PDF_BYTES)
    return library


def _pipeline(build_pipeline, library):
    return build_pipeline(FakeMetadata(make_work("W1")), library=library, extractor=FakeExtractor())


def _run(pipeline, env, *, polling=None, sleep=None, work_id="W1"):
    coordinator = InteractiveFallbackCoordinator(
        pipeline, polling=polling or PollingConfig(), sleep=sleep or RecordingSleep()
    )
    return asyncio.run(
        acquire_with_fallback(pipeline, work_id, coordinator=coordinator, environment=env)
    )


# --- Transition function ----------------------------------------------------


def test_start_prefers_sampling() -> None:
    assert next_state(FallbackState.START, ALL) is FallbackState.TRY_SAMPLING


def test_start_without_sampling_goes_to_elicitation() -> None:
    caps = Capabilities(sampling=False, elicitation=True, library_configured=True, has_doi=True)

    assert next_state(FallbackState.START, caps) is FallbackState.TRY_ELICITATION


@pytest.mark.parametrize(
    "caps",
    [
        Capabilities(sampling=True, elicitation=True, library_configured=True, has_doi=False),
        Capabilities(sampling=False, elicitation=False, library_configured=True, has_doi=True),
        Capabilities(sampling=False, elicitation=True, library_configured=False, has_doi=True),
    ],
)
def test_start_unavailable(caps: Capabilities) -> None:
    assert next_state(FallbackState.START, caps) is FallbackState.UNAVAILABLE


@pytest.mark.parametrize(
    "state, result, expected",
    [
        (FallbackState.TRY_SAMPLING, StepResult.FOUND, FallbackState.FOUND),
        (FallbackState.TRY_SAMPLING, StepResult.NOT_FOUND, FallbackState.TRY_ELICITATION),
        (FallbackState.TRY_ELICITATION, StepResult.ACCEPTED, FallbackState.POLLING),
        (FallbackState.TRY_ELICITATION, StepResult.DECLINED, FallbackState.DECLINED),
        (FallbackState.TRY_ELICITATION, StepResult.ERROR, FallbackState.UNAVAILABLE),
        (FallbackState.POLLING, StepResult.FOUND, FallbackState.FOUND),
        (FallbackState.POLLING, StepResult.EXHAUSTED, FallbackState.TIMED_OUT),
    ],
)
def test_transitions(state, result, expected) -> None:
    assert next_state(state, ALL, result) is expected


def test_sampling_miss_without_elicitation_is_unavailable() -> None:
    caps = Capabilities(sampling=True, elicitation=False, library_configured=True, has_doi=True)

    assert (
        next_state(FallbackState.TRY_SAMPLING, caps, StepResult.NOT_FOUND)
        is FallbackState.UNAVAILABLE
    )


@pytest.mark.parametrize(
    "state",
    [FallbackState.FOUND, FallbackState.TIMED_OUT, FallbackState.DECLINED, FallbackState.UNAVAILABLE],
)
def test_terminal_states_are_fixed_points(state: FallbackState) -> None:
    assert state.terminal
    assert next_state(state, ALL, StepResult.FOUND) is state


# --- Sampling helpers -------------------------------------------------------


@pytest.mark.parametrize(
    "reply, expected",
    [
        ("https://example.org/a.pdf", "https://example.org/a.pdf"),
        ("  <https://example.org/a.pdf>\n", "https://example.org/a.pdf"),
        ("none", None),
        ("None.", None),
        ("", None),
        (None, None),
        ("ftp://example.org/a.pdf", None),
        ("I think it is https://example.org/a.pdf", None),
        ("http://[::1", None),
        ("https://[not-a-host/paper.pdf", None),
    ],
)
def test_parse_sampled_url(reply, expected) -> None:
    assert parse_sampled_url(reply) == expected


def test_sampling_prompt_names_doi_and_title() -> None:
    prompt = sampling_prompt(make_work())

    assert DOI in prompt and "Deep Learning" in prompt


# --- Coordinator ------------------------------------------------------------


def test_polling_finds_work_on_tenth_check(build_pipeline) -> None:
    library = _library()

    def add_when_checked_nine_times(progress, total):
        if progress == 10:
            library.search_results[DOI] = [PARENT]

    env = FakeEnvironment(elicitation=True, on_progress=add_when_checked_nine_times)
    pipeline = _pipeline(build_pipeline, library)
    sleep = RecordingSleep()

    result = _run(pipeline, env, sleep=sleep)

    assert result.source == RemoteLibrary(item_key=ATTACHMENT)
    assert [p for p, _, _ in env.progress] == list(range(1, 11)) + [56]
    assert {t for _, t, _ in env.progress} == {56}
    assert env.progress[-1][0] == env.progress[-1][1]
    assert sleep.delays == [5.0] + [2.0] * 9
    assert env.elicitations == [(env.elicitations[0][0], f"https://doi.org/{DOI}")]


def test_polling_exhaustion_raises_timed_out(build_pipeline) -> None:
    env = FakeEnvironment(elicitation=True)
    pipeline = _pipeline(build_pipeline, _library())

    with pytest.raises(PollingTimedOut) as excinfo:
        _run(pipeline, env, polling=PollingConfig(initial_delay_s=0, interval_s=0, retries=3))

    assert excinfo.value.attempts == 3
    assert [p for p, _, _ in env.progress] == [1, 2, 3, 4]
    assert env.progress[-1][1] == 4


def test_declined_elicitation_reraises_with_outcome(build_pipeline) -> None:
    env = FakeEnvironment(elicitation=True, elicit_action="decline")
    pipeline = _pipeline(build_pipeline, _library())

    with pytest.raises(NoPdfFound) as excinfo:
        _run(pipeline, env)

    outcome = excinfo.value.outcome
    assert outcome.state is FallbackState.DECLINED
    assert outcome.landing_url == f"https://doi.org/{DOI}"
    assert env.progress == []


def test_cancelled_elicitation_counts_as_declined(build_pipeline) -> None:
    env = FakeEnvironment(elicitation=True, elicit_action="cancel")
    pipeline = _pipeline(build_pipeline, _library())

    with pytest.raises(NoPdfFound) as excinfo:
        _run(pipeline, env)

    assert excinfo.value.outcome.state is FallbackState.DECLINED


def test_elicitation_error_is_unavailable(build_pipeline) -> None:
    env = FakeEnvironment(elicitation=True, elicit_error=True)
    pipeline = _pipeline(build_pipeline, _library())

    with pytest.raises(NoPdfFound) as excinfo:
        _run(pipeline, env)

    assert excinfo.value.outcome.state is FallbackState.UNAVAILABLE


def test_no_library_means_no_elicitation(build_pipeline) -> None:
    env = FakeEnvironment(elicitation=True)
    pipeline = build_pipeline(FakeMetadata(make_work("W1")), extractor=FakeExtractor())

    with pytest.raises(NoPdfFound) as excinfo:
        _run(pipeline, env)

    assert excinfo.value.outcome.state is FallbackState.UNAVAILABLE
    assert not excinfo.value.outcome.library_configured
    assert env.elicitations == []


def test_work_without_doi_skips_interaction(build_pipeline) -> None:
    env = FakeEnvironment(sampling=True, elicitation=True, sample_reply="https://x.org/a.pdf")
    pipeline = build_pipeline(
        FakeMetadata(make_work("W1", doi=None)), library=_library(), extractor=FakeExtractor()
    )

    with pytest.raises(NoPdfFound) as excinfo:
        _run(pipeline, env)

    assert excinfo.value.outcome.state is FallbackState.UNAVAILABLE
    assert env.prompts == [] and env.elicitations == []


def test_sampled_url_is_fetched_and_extracted(build_pipeline, store) -> None:
    sampled = "https://repository.example.edu/paper.pdf"

    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == sampled:
            return httpx.Response(200, content=PDF_BYTES, headers={"content-type": "application/pdf"})
        return httpx.Response(404)

    env = FakeEnvironment(sampling=True, elicitation=True, sample_reply=sampled)
    pipeline = build_pipeline(
        FakeMetadata(make_work("W1")), library=_library(), extractor=FakeExtractor(), handler=handler
    )

    result = _run(pipeline, env)

    assert result.source == DirectUrl(url=sampled)
    assert result.cache_key == "W1"
    assert store.has("W1")
    assert env.elicitations == []


def test_unusable_sample_falls_through_to_elicitation(build_pipeline) -> None:
    env = FakeEnvironment(sampling=True, elicitation=True, sample_reply="none", elicit_action="decline")
    pipeline = _pipeline(build_pipeline, _library())

    with pytest.raises(NoPdfFound) as excinfo:
        _run(pipeline, env)

    assert len(env.prompts) == 1
    assert len(env.elicitations) == 1
    assert excinfo.value.outcome.state is FallbackState.DECLINED


def test_malformed_sampled_url_falls_through_to_elicitation(build_pipeline) -> None:
    env = FakeEnvironment(
        sampling=True,
        elicitation=True,
        sample_reply="https://[not-a-host/paper.pdf",
        elicit_action="decline",
    )
    pipeline = _pipeline(build_pipeline, _library())

    with pytest.raises(NoPdfFound) as excinfo:
        _run(pipeline, env)

    assert len(env.prompts) == 1
    assert len(env.elicitations) == 1
    assert excinfo.value.outcome.state is FallbackState.DECLINED
