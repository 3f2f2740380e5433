"""Core types for the interactive fallback.

This module defines the state machine the coordinator walks once the
automatic sources are exhausted:

- FallbackState: states, four of them terminal
- StepResult: what the step run in the current state produced
- Capabilities: what the caller's environment and configuration allow
- next_state: the pure transition function
- FallbackEnvironment: the protocol a caller implements (MCP context, terminal)
- FallbackOutcome: what the coordinator hands back

Transitions::

    START ──► TRY_SAMPLING ──► TRY_ELICITATION ──► POLLING ──► FOUND
      │            │                 │                 └──────► TIMED_OUT
      │            └──► FOUND        ├──► DECLINED
      └────────────────────────────► └──► UNAVAILABLE
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Literal, Optional, Protocol

from ..errors import PapersError

if TYPE_CHECKING:
    from ..types import WorkTextResult

__all__ = [
    "Capabilities",
    "ElicitationAction",
    "EnvironmentUnavailable",
    "FallbackEnvironment",
    "FallbackOutcome",
    "FallbackState",
    "StepResult",
    "next_state",
]


class FallbackState(str, Enum):
    START = "start"
    TRY_SAMPLING = "try_sampling"
    TRY_ELICITATION = "try_elicitation"
    POLLING = "polling"
    FOUND = "found"
    TIMED_OUT = "timed_out"
    DECLINED = "declined"
    UNAVAILABLE = "unavailable"

    @property
    def terminal(self) -> bool:
        return self in (
            FallbackState.FOUND,
            FallbackState.TIMED_OUT,
            FallbackState.DECLINED,
            FallbackState.UNAVAILABLE,
        )


class StepResult(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    ERROR = "error"
    EXHAUSTED = "exhausted"


ElicitationAction = Literal["accept", "decline", "cancel"]


@dataclass(frozen=True)
class Capabilities:
    """What the fallback may attempt for one request.

    Attributes:
        sampling: the environment can ask a model for a PDF URL
        elicitation: the environment can ask the user to act
        library_configured: a reference library is available for polling
        has_doi: the work has a DOI to point the model and the user at
    """

    sampling: bool
    elicitation: bool
    library_configured: bool
    has_doi: bool

    @property
    def can_sample(self) -> bool:
        return self.has_doi and self.sampling

    @property
    def can_elicit(self) -> bool:
        return self.has_doi and self.library_configured and self.elicitation


def next_state(
    state: FallbackState, caps: Capabilities, result: Optional[StepResult] = None
) -> FallbackState:
    """Pure transition function; terminal states map to themselves."""
    if state.terminal:
        return state

    if state is FallbackState.START:
        if caps.can_sample:
            return FallbackState.TRY_SAMPLING
        return FallbackState.TRY_ELICITATION if caps.can_elicit else FallbackState.UNAVAILABLE

    if state is FallbackState.TRY_SAMPLING:
        if result is StepResult.FOUND:
            return FallbackState.FOUND
        return FallbackState.TRY_ELICITATION if caps.can_elicit else FallbackState.UNAVAILABLE

    if state is FallbackState.TRY_ELICITATION:
        if not caps.can_elicit:
            return FallbackState.UNAVAILABLE
        if result is StepResult.ACCEPTED:
            return FallbackState.POLLING
        if result is StepResult.DECLINED:
            return FallbackState.DECLINED
        return FallbackState.UNAVAILABLE

    # POLLING
    if result is StepResult.FOUND:
        return FallbackState.FOUND
    return FallbackState.TIMED_OUT


class EnvironmentUnavailable(PapersError):
    """The environment could not perform a sampling or elicitation request."""


class FallbackEnvironment(Protocol):
    """Interactive capabilities supplied by the caller.

    ``sample`` and ``elicit_url`` raise :class:`EnvironmentUnavailable` when
    the request cannot be carried out.
    """

    @property
    def supports_sampling(self) -> bool: ...

    @property
    def supports_elicitation(self) -> bool: ...

    async def sample(self, prompt: str) -> Optional[str]: ...

    async def elicit_url(self, message: str, url: str) -> ElicitationAction: ...

    async def report_progress(
        self, progress: float, total: float, message: Optional[str] = None
    ) -> None: ...


@dataclass(frozen=True)
class FallbackOutcome:
    state: FallbackState
    result: Optional["WorkTextResult"] = None
    landing_url: Optional[str] = None
    library_configured: bool = False
    attempts: int = 0

    @property
    def timed_out(self) -> bool:
        return self.state is FallbackState.TIMED_OUT
